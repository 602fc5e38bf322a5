from __future__ import annotations

from typing import Dict, List, Optional

import pandas as pd

from campdash.config import OutcomeLabels
from campdash.models import CanonicalField, DistrictCount, GroupCount

UNSPECIFIED = "unspecified"


def share_pct(count: int, total: int) -> float:
    return round(count / total * 100, 1) if total else 0.0


def bucket_key(value: object) -> str:
    if value is None or pd.isna(value):
        return UNSPECIFIED
    s = str(value).strip()
    return s or UNSPECIFIED


def dimension_keys(df: pd.DataFrame, col: str) -> pd.Series:
    """Column values with missing/blank folded into the sentinel bucket."""
    if col not in df.columns:
        return pd.Series([UNSPECIFIED] * len(df), index=df.index, dtype=object)
    return df[col].map(bucket_key).astype(object)


def ordered_counts(keys: pd.Series | pd.DataFrame) -> pd.Series:
    """Counts per key, descending; ties keep first-seen order."""
    if isinstance(keys, pd.DataFrame):
        counts = keys.groupby(list(keys.columns), sort=False).size()
    else:
        counts = keys.groupby(keys, sort=False).size()
    return counts.sort_values(ascending=False, kind="stable")


def group_counts(df: pd.DataFrame, col: str, *, limit: Optional[int] = None) -> List[GroupCount]:
    if df.empty:
        return []
    total = len(df)
    counts = ordered_counts(dimension_keys(df, col))
    if limit is not None:
        counts = counts.head(limit)
    return [GroupCount(name=str(k), count=int(v), percentage=share_pct(int(v), total)) for k, v in counts.items()]


def district_counts(df: pd.DataFrame) -> List[DistrictCount]:
    if df.empty:
        return []
    total = len(df)
    pairs = pd.DataFrame(
        {
            "region": dimension_keys(df, CanonicalField.REGION_WIDE.value),
            "district": dimension_keys(df, CanonicalField.REGION_DETAIL.value),
        }
    )
    counts = ordered_counts(pairs)
    return [
        DistrictCount(region=str(region), name=str(district), count=int(v), percentage=share_pct(int(v), total))
        for (region, district), v in counts.items()
    ]


def compute_kpis(df: pd.DataFrame, outcomes: OutcomeLabels) -> Dict[str, int]:
    if df.empty:
        return {"total_sites": 0, "contacts": 0, "success": 0, "negative": 0}
    owners = dimension_keys(df, CanonicalField.CONTACT_OWNER.value)
    results = df[CanonicalField.RESULT.value]
    return {
        "total_sites": int(len(df)),
        "contacts": int(owners.ne(UNSPECIFIED).sum()),
        "success": int(results.map(outcomes.is_success).sum()),
        "negative": int(results.map(outcomes.is_negative).sum()),
    }


def compute_overview(df: pd.DataFrame, outcomes: OutcomeLabels) -> Dict[str, object]:
    return {
        "kpis": compute_kpis(df, outcomes),
        "regions": group_counts(df, CanonicalField.REGION_WIDE.value),
        "districts": district_counts(df),
        "owners": group_counts(df, CanonicalField.CONTACT_OWNER.value),
        "results": group_counts(df, CanonicalField.RESULT.value),
        "reasons": group_counts(df, CanonicalField.REASON.value),
    }
