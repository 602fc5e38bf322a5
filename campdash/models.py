from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

RawTable = List[List[str]]


class CanonicalField(str, Enum):
    SITE_NAME = "site_name"
    REGION_WIDE = "region_wide"
    REGION_DETAIL = "region_detail"
    CONTACT_OWNER = "contact_owner"
    CONTACT_DATE = "contact_date"
    RESULT = "result"
    REASON = "reason"
    NOTES = "notes"


@dataclass(frozen=True)
class ColumnMapping:
    """Canonical field -> column index for one fetch, plus how each index was chosen."""

    indices: Dict[str, Optional[int]]
    strategies: Dict[str, str] = field(default_factory=dict)
    defaults: Dict[str, int] = field(default_factory=dict)

    def index_of(self, name: str) -> Optional[int]:
        return self.indices.get(name)

    def fallback_of(self, name: str) -> Optional[int]:
        """Default index to try when the mapped cell is empty (never another field's column)."""
        default = self.defaults.get(name)
        if default is None or default == self.indices.get(name):
            return None
        claimed = {idx for key, idx in self.indices.items() if key != name and idx is not None}
        return None if default in claimed else default


@dataclass(frozen=True)
class Record:
    id: int
    site_name: str
    region_wide: Optional[str] = None
    region_detail: Optional[str] = None
    contact_owner: Optional[str] = None
    contact_date: Optional[str] = None
    result: Optional[str] = None
    reason: Optional[str] = None
    notes: Optional[str] = None
    fields: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"id": self.id}
        out.update(self.fields)
        for f in CanonicalField:
            out[f.value] = getattr(self, f.value)
        return out


# ---------------- Aggregate view ----------------
@dataclass(frozen=True)
class GroupCount:
    name: str
    count: int
    percentage: float


@dataclass(frozen=True)
class DistrictCount:
    region: str
    name: str
    count: int
    percentage: float


@dataclass(frozen=True)
class OwnerRank:
    name: str
    total_contacts: int
    success_count: int
    conversion_rate: str
    rank: int
    incentive: bool


@dataclass(frozen=True)
class InsightSummary:
    notes_count: int
    sentiment: Dict[str, int]
    categories: Dict[str, int]
    result_category: str
    template_id: str
    summary: str


@dataclass(frozen=True)
class AggregateView:
    kpis: Dict[str, int]
    regions: List[GroupCount]
    districts: List[DistrictCount]
    owners: List[GroupCount]
    results: List[GroupCount]
    reasons: List[GroupCount]
    top_reasons: List[GroupCount]
    owner_ranking: List[OwnerRank]
    insights: InsightSummary
    options: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def incentive_recipients(self) -> List[OwnerRank]:
        return [o for o in self.owner_ranking if o.incentive]

    def districts_by_region(self) -> Dict[str, List[DistrictCount]]:
        nested: Dict[str, List[DistrictCount]] = {}
        for d in self.districts:
            nested.setdefault(d.region, []).append(d)
        return nested
