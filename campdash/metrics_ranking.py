from __future__ import annotations

from typing import List

import pandas as pd

from campdash.config import OutcomeLabels
from campdash.metrics_overview import UNSPECIFIED, dimension_keys, ordered_counts, share_pct
from campdash.models import CanonicalField, GroupCount, OwnerRank

TOP_REASONS_LIMIT = 10
INCENTIVE_SLOTS = 2


def conversion_rate(success_count: int, total_contacts: int) -> str:
    if total_contacts <= 0:
        return "0.0"
    return f"{round(success_count / total_contacts * 100, 1):.1f}"


def compute_top_reasons(df: pd.DataFrame, outcomes: OutcomeLabels, *, limit: int = TOP_REASONS_LIMIT) -> List[GroupCount]:
    """Most frequent reasons among negative outcomes; blank reasons are left out."""
    if df.empty:
        return []
    negative = df[df[CanonicalField.RESULT.value].map(outcomes.is_negative).astype(bool)]
    reasons = negative[CanonicalField.REASON.value].map(lambda v: "" if v is None or pd.isna(v) else str(v).strip())
    reasons = reasons[reasons.ne("")]
    if reasons.empty:
        return []
    total = len(reasons)
    counts = ordered_counts(reasons).head(max(0, limit))
    return [GroupCount(name=str(k), count=int(v), percentage=share_pct(int(v), total)) for k, v in counts.items()]


def compute_owner_ranking(df: pd.DataFrame, outcomes: OutcomeLabels, *, slots: int = INCENTIVE_SLOTS) -> List[OwnerRank]:
    """Owners by success count (descending, first-seen ties); the first `slots` ranks earn the incentive."""
    if df.empty:
        return []
    frame = pd.DataFrame(
        {
            "owner": dimension_keys(df, CanonicalField.CONTACT_OWNER.value),
            "success": df[CanonicalField.RESULT.value].map(outcomes.is_success).astype(int),
        }
    )
    frame = frame[frame["owner"].ne(UNSPECIFIED)]
    if frame.empty:
        return []
    stats = (
        frame.groupby("owner", sort=False)
        .agg(total_contacts=("success", "size"), success_count=("success", "sum"))
        .sort_values("success_count", ascending=False, kind="stable")
    )
    ranking: List[OwnerRank] = []
    for position, (name, row) in enumerate(stats.iterrows()):
        total = int(row["total_contacts"])
        success = int(row["success_count"])
        ranking.append(
            OwnerRank(
                name=str(name),
                total_contacts=total,
                success_count=success,
                conversion_rate=conversion_rate(success, total),
                rank=position + 1,
                incentive=position < slots,
            )
        )
    return ranking
