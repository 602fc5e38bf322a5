"""Ingestion rules, outcome labels and source settings.

The header keywords, synonym lists and default column indices change whenever
the spreadsheet layout does, so they live here as data and can be replaced
from a JSON file without touching the ingestion code.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple

from campdash.errors import SourceNotConfigured
from campdash.models import CanonicalField

logger = logging.getLogger(__name__)

SOURCE_MODES = {"csv", "service_account"}
DEFAULT_TIMEOUT_SECONDS = 30.0

HEADER_KEYWORDS: Tuple[str, ...] = (
    "캠핑장",
    "지역",
    "담당",
    "컨택",
    "결과",
    "사유",
    "비고",
    "site",
    "region",
    "district",
    "owner",
    "contact",
    "result",
    "reason",
    "notes",
)

# Resolution order matters: a header cell claimed by an earlier field is not
# reused, so the narrower region_detail synonyms run before region_wide.
FIELD_SYNONYMS: Dict[str, Tuple[str, ...]] = {
    CanonicalField.SITE_NAME.value: ("캠핑장명", "캠핑장", "업체명", "상호", "site", "campsite", "campname"),
    CanonicalField.REGION_DETAIL.value: ("지역+시/군", "지역+시군", "시/군/구", "시군구", "district", "regiondetail", "city"),
    CanonicalField.REGION_WIDE.value: ("지역+광역", "시/도", "광역", "province", "regionwide", "region"),
    CanonicalField.CONTACT_DATE.value: ("컨택일", "컨택+일자", "연락일", "contactdate", "date"),
    CanonicalField.CONTACT_OWNER.value: ("컨택+md", "담당md", "담당자", "담당", "md", "owner", "manager", "salesrep"),
    CanonicalField.RESULT.value: ("결과", "result", "status", "outcome"),
    CanonicalField.REASON.value: ("사유", "reason"),
    CanonicalField.NOTES.value: ("비고", "메모", "특이사항", "note", "memo", "comment"),
}

DEFAULT_INDICES: Dict[str, int] = {
    CanonicalField.SITE_NAME.value: 1,
    CanonicalField.REGION_WIDE.value: 2,
    CanonicalField.REGION_DETAIL.value: 3,
    CanonicalField.CONTACT_OWNER.value: 8,
    CanonicalField.CONTACT_DATE.value: 9,
    CanonicalField.RESULT.value: 10,
    CanonicalField.REASON.value: 11,
    CanonicalField.NOTES.value: 12,
}


@dataclass(frozen=True)
class IngestConfig:
    header_keywords: Tuple[str, ...] = HEADER_KEYWORDS
    header_min_matches: int = 3
    header_offset: int = 0
    header_search_rows: int = 10
    site_marker: str = "캠핑장명"
    site_marker_column: int = 1
    field_synonyms: Dict[str, Tuple[str, ...]] = field(default_factory=lambda: dict(FIELD_SYNONYMS))
    default_indices: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_INDICES))


@dataclass(frozen=True)
class OutcomeLabels:
    success: Tuple[str, ...] = ("입점(신규)", "Entered(New)")
    negative: Tuple[str, ...] = ("거절", "Rejected")

    def is_success(self, value: Optional[str]) -> bool:
        return value is not None and value in self.success

    def is_negative(self, value: Optional[str]) -> bool:
        return value is not None and value in self.negative


def _as_str_tuple(values: Optional[Iterable[object]], default: Tuple[str, ...]) -> Tuple[str, ...]:
    if not values or isinstance(values, str):
        return default
    out = tuple(str(v).strip() for v in values if v is not None and str(v).strip())
    return out or default


def _as_int(value: object, default: int, *, minimum: int = 0) -> int:
    try:
        out = int(value)  # type: ignore[arg-type]
    except Exception:
        return default
    return max(minimum, out)


def normalize_ingest_config(raw: dict) -> IngestConfig:
    """Build an IngestConfig from a loosely-typed dict, keeping defaults for bad values."""
    known_fields = {f.value for f in CanonicalField}

    synonyms = dict(FIELD_SYNONYMS)
    for name, values in (raw.get("field_synonyms") or {}).items():
        if name not in known_fields:
            logger.warning("Ignoring synonyms for unknown field %r", name)
            continue
        synonyms[name] = _as_str_tuple(values, FIELD_SYNONYMS.get(name, ()))

    defaults = dict(DEFAULT_INDICES)
    for name, value in (raw.get("default_indices") or {}).items():
        if name not in known_fields:
            logger.warning("Ignoring default index for unknown field %r", name)
            continue
        defaults[name] = _as_int(value, DEFAULT_INDICES.get(name, 0))

    return IngestConfig(
        header_keywords=_as_str_tuple(raw.get("header_keywords"), HEADER_KEYWORDS),
        header_min_matches=_as_int(raw.get("header_min_matches", 3), 3, minimum=1),
        header_offset=_as_int(raw.get("header_offset", 0), 0),
        header_search_rows=_as_int(raw.get("header_search_rows", 10), 10, minimum=1),
        site_marker=str(raw.get("site_marker") or "캠핑장명").strip(),
        site_marker_column=_as_int(raw.get("site_marker_column", 1), 1),
        field_synonyms=synonyms,
        default_indices=defaults,
    )


def normalize_outcomes(raw: dict) -> OutcomeLabels:
    base = OutcomeLabels()
    return OutcomeLabels(
        success=_as_str_tuple(raw.get("success"), base.success),
        negative=_as_str_tuple(raw.get("negative"), base.negative),
    )


def load_ingest_config(path: Optional[Path | str] = None) -> IngestConfig:
    if path is None:
        return IngestConfig()
    cfg_path = Path(path)
    if not cfg_path.exists():
        logger.warning("Ingest config %s not found; using built-in rules", cfg_path)
        return IngestConfig()
    try:
        with cfg_path.open("r", encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, ValueError) as exc:
        raise SourceNotConfigured(f"Ingest config {cfg_path} could not be read: {exc}") from exc
    return normalize_ingest_config(raw if isinstance(raw, dict) else {})


# ---------------- Environment ----------------
def _get_str_env(name: str, default: str = "") -> str:
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_float_env(name: str, default: float) -> float:
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


@dataclass(frozen=True)
class SourceSettings:
    mode: str = "csv"
    spreadsheet_id: str = ""
    sheet_gid: str = "0"
    sheet_range: str = ""
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    ingest_config_path: Optional[str] = None
    service_account_file: Optional[str] = None


def read_source_settings() -> SourceSettings:
    mode = _get_str_env("CAMPDASH_SOURCE_MODE", "csv").lower()
    if mode not in SOURCE_MODES:
        raise SourceNotConfigured(f"CAMPDASH_SOURCE_MODE '{mode}' is not valid. Allowed values: {sorted(SOURCE_MODES)}.")
    timeout = _get_float_env("CAMPDASH_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS)
    return SourceSettings(
        mode=mode,
        spreadsheet_id=_get_str_env("CAMPDASH_SPREADSHEET_ID"),
        sheet_gid=_get_str_env("CAMPDASH_SHEET_GID", "0"),
        sheet_range=_get_str_env("CAMPDASH_SHEET_RANGE"),
        timeout_seconds=timeout if timeout > 0 else DEFAULT_TIMEOUT_SECONDS,
        ingest_config_path=_get_str_env("CAMPDASH_INGEST_CONFIG") or None,
        service_account_file=_get_str_env("GOOGLE_SERVICE_ACCOUNT_FILE") or None,
    )


@lru_cache(maxsize=1)
def get_source_settings() -> SourceSettings:
    return read_source_settings()
