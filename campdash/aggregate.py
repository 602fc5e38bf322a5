from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, Iterable, List, Optional

from campdash.charts import build_charts
from campdash.config import OutcomeLabels
from campdash.filters import FilterState, apply_filters, filter_options, normalize_filters
from campdash.ingest import records_frame
from campdash.metrics_insights import compute_insights
from campdash.metrics_overview import compute_overview
from campdash.metrics_ranking import compute_owner_ranking, compute_top_reasons
from campdash.models import AggregateView, Record


def aggregate(
    records: Iterable[Record],
    filters: Optional[FilterState | dict] = None,
    outcomes: Optional[OutcomeLabels] = None,
) -> AggregateView:
    """Recompute every subview from scratch for (records x filters). Never raises on sparse data."""
    records = list(records)
    filt = filters if isinstance(filters, FilterState) else normalize_filters(filters)
    outcomes = outcomes or OutcomeLabels()

    filtered: List[Record] = apply_filters(records, filt)
    df = records_frame(filtered)

    overview = compute_overview(df, outcomes)
    return AggregateView(
        kpis=overview["kpis"],
        regions=overview["regions"],
        districts=overview["districts"],
        owners=overview["owners"],
        results=overview["results"],
        reasons=overview["reasons"],
        top_reasons=compute_top_reasons(df, outcomes),
        owner_ranking=compute_owner_ranking(df, outcomes),
        insights=compute_insights(df, outcomes),
        options=filter_options(records),
    )


def view_payload(view: AggregateView, filters: FilterState, *, with_charts: bool = True) -> Dict[str, Any]:
    payload = asdict(view)
    payload["filters"] = asdict(filters)
    payload["incentive_recipients"] = [asdict(o) for o in view.incentive_recipients]
    payload["districts_by_region"] = {
        region: [asdict(d) for d in rows] for region, rows in view.districts_by_region().items()
    }
    payload["charts"] = build_charts(view) if with_charts else {}
    return payload
