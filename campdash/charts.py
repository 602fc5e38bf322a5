from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List, Optional

import altair as alt
import pandas as pd

from campdash.models import AggregateView, GroupCount

alt.data_transformers.disable_max_rows()


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def _frame(rows: List[GroupCount]) -> pd.DataFrame:
    return pd.DataFrame([asdict(r) for r in rows], columns=["name", "count", "percentage"])


def region_bar_chart(regions: List[GroupCount]) -> Optional[Dict[str, Any]]:
    if not regions:
        return None
    hover = alt.selection_point(fields=["name"], on="mouseover", empty=True)
    chart = (
        alt.Chart(_frame(regions))
        .mark_bar(color="#0088FE")
        .encode(
            x=alt.X("name:N", title="Region", sort=None, axis=alt.Axis(labelAngle=-45)),
            y=alt.Y("count:Q", title="Sites", axis=alt.Axis(format="d", gridDash=[4, 4], domain=False, ticks=False)),
            opacity=alt.condition(hover, alt.value(1), alt.value(0.4)),
            tooltip=[alt.Tooltip("name:N", title="Region"), alt.Tooltip("count:Q", title="Sites")],
        )
        .add_params(hover)
        .properties(height=320)
    )
    return to_vega_spec(chart)


def share_pie_chart(rows: List[GroupCount], *, title: str, donut: bool = False) -> Optional[Dict[str, Any]]:
    if not rows:
        return None
    base = alt.Chart(_frame(rows))
    arc = base.mark_arc(innerRadius=60, outerRadius=80, padAngle=0.05) if donut else base.mark_arc()
    chart = arc.encode(
        theta=alt.Theta("count:Q"),
        color=alt.Color("name:N", title=title, sort=None),
        tooltip=[
            alt.Tooltip("name:N", title=title),
            alt.Tooltip("count:Q", title="Count"),
            alt.Tooltip("percentage:Q", title="Share %", format=".1f"),
        ],
    )
    return to_vega_spec(chart)


def build_charts(view: AggregateView) -> Dict[str, Any]:
    charts: Dict[str, Any] = {
        "region_counts": region_bar_chart(view.regions),
        "owner_share": share_pie_chart(view.owners, title="Owner"),
        "result_share": share_pie_chart(view.results, title="Result", donut=True),
    }
    return {k: v for k, v in charts.items() if v is not None}
