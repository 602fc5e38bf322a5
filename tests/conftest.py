"""
Pytest configuration and shared fixtures.
"""

import threading
import time

import pytest

from campdash.errors import IngestError
from campdash.models import Record
from campdash.sources import TableSource

SCENARIO_TABLE = [
    ["banner"],
    ["blank"],
    ["SiteA", "RegionA", "Owner1", "Result1"],
    ["Camp1", "Seoul", "Kim", "Entered(New)"],
    ["Camp2", "Seoul", "Lee", "Rejected"],
    ["Camp3", "Busan", "Kim", "Entered(New)"],
]

KOREAN_HEADER = [
    "No",
    "캠핑장명",
    "지역(광역)",
    "지역(시/군/구)",
    "주소",
    "연락처",
    "홈페이지",
    "등록일",
    "컨택 MD",
    "컨택일자",
    "결과",
    "사유",
    "비고",
]

KOREAN_TABLE = [
    ["고캠핑 DB 영업 현황"],
    [""],
    KOREAN_HEADER,
    ["1", "솔숲캠핑장", "강원", "평창군", "", "", "", "", "김MD", "2024-05-01", "입점(신규)", "", "관심 많음"],
    ["2", "바다캠핑장", "부산", "기장군", "", "", "", "", "이MD", "2024-05-02", "거절", "수수료 부담", "수수료 때문에 거절"],
    ["3", "", "부산", "해운대구", "", "", "", "", "이MD", "2024-05-03", "보류", "", ""],
    ["4", "달빛캠핑장", "강원", "홍천군", "", "", "", "", "", "", "", "", ""],
]


class _FailingSource(TableSource):
    def __init__(self, exc: IngestError) -> None:
        self.exc = exc

    def fetch_table(self, source_id, range_id):
        raise self.exc


def _make_record(record_id, site, region=None, owner=None, result=None, reason=None, notes=None, district=None):
    return Record(
        id=record_id,
        site_name=site,
        region_wide=region,
        region_detail=district,
        contact_owner=owner,
        result=result,
        reason=reason,
        notes=notes,
    )


@pytest.fixture
def scenario_table():
    return [list(row) for row in SCENARIO_TABLE]


@pytest.fixture
def korean_table():
    return [list(row) for row in KOREAN_TABLE]


@pytest.fixture
def sample_records():
    return [
        _make_record(1, "Pine Camp", "Seoul", "Kim", "Entered(New)", notes="Very interested"),
        _make_record(2, "River Camp", "Seoul", "Lee", "Rejected", reason="Fees too high"),
        _make_record(3, "Lake Camp", "Busan", "Kim", "Rejected", reason="Already listed elsewhere"),
        _make_record(4, "Hill Camp", "Busan", "Park", "Entered(New)"),
        _make_record(5, "Forest Camp", None, None, None, notes="no answer, try later"),
        _make_record(6, "Beach Camp", "Seoul", "Kim", "Rejected", reason="Fees too high"),
    ]


@pytest.fixture
def make_record():
    return _make_record


@pytest.fixture
def failing_source():
    return _FailingSource


class _GatedSource(TableSource):
    """Blocks inside fetch_table until `open_gate` is called; counts fetches."""

    def __init__(self, table, *, gated=True):
        self.table = [list(row) for row in table]
        self.calls = 0
        self.entered = threading.Event()
        self._gate = threading.Event()
        if not gated:
            self._gate.set()

    def open_gate(self):
        self._gate.set()

    def fetch_table(self, source_id, range_id):
        self.calls += 1
        self.entered.set()
        assert self._gate.wait(5), "gate never opened"
        return [list(row) for row in self.table]


def wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        time.sleep(0.01)


@pytest.fixture
def gated_source():
    return _GatedSource


@pytest.fixture
def wait_for():
    return wait_until
