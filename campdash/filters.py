from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from campdash.models import Record


@dataclass(frozen=True)
class FilterState:
    region: str = ""
    owner: str = ""
    result: str = ""
    reason: str = ""
    query: str = ""

    def is_empty(self) -> bool:
        return not any([self.region, self.owner, self.result, self.reason, self.query])


def _as_str(value: object) -> str:
    if value is None:
        return ""
    return str(value)


def normalize_filters(raw: Optional[dict]) -> FilterState:
    raw = raw or {}
    return FilterState(
        # Categorical values are compared exactly, so only the free-text query is trimmed.
        region=_as_str(raw.get("region")),
        owner=_as_str(raw.get("owner") or raw.get("md")),
        result=_as_str(raw.get("result")),
        reason=_as_str(raw.get("reason")),
        query=_as_str(raw.get("query")).strip(),
    )


def matches(record: Record, filters: FilterState) -> bool:
    if filters.region and record.region_wide != filters.region:
        return False
    if filters.owner and record.contact_owner != filters.owner:
        return False
    if filters.result and record.result != filters.result:
        return False
    if filters.reason and record.reason != filters.reason:
        return False
    if filters.query:
        q = filters.query.lower()
        haystack = [record.site_name or "", record.notes or ""]
        if not any(q in h.lower() for h in haystack):
            return False
    return True


def apply_filters(records: Iterable[Record], filters: FilterState) -> List[Record]:
    return [r for r in records if matches(r, filters)]


def filter_options(records: Iterable[Record]) -> Dict[str, List[str]]:
    """Distinct non-empty values per filterable dimension, over the unfiltered records."""
    regions, owners, results, reasons = set(), set(), set(), set()
    for r in records:
        if r.region_wide:
            regions.add(r.region_wide)
        if r.contact_owner:
            owners.add(r.contact_owner)
        if r.result:
            results.add(r.result)
        if r.reason:
            reasons.add(r.reason)
    return {
        "regions": sorted(regions),
        "owners": sorted(owners),
        "results": sorted(results),
        "reasons": sorted(reasons),
    }
