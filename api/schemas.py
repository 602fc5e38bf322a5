from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class FilterStateModel(BaseModel):
    region: str = ""
    owner: str = ""
    result: str = ""
    reason: str = ""
    query: str = ""


class OutcomeLabelsModel(BaseModel):
    success: List[str] = Field(default_factory=lambda: ["입점(신규)", "Entered(New)"])
    negative: List[str] = Field(default_factory=lambda: ["거절", "Rejected"])


class DashboardRequest(BaseModel):
    filters: FilterStateModel = Field(default_factory=FilterStateModel)
    outcomes: Optional[OutcomeLabelsModel] = None
    with_charts: bool = True
    refresh: bool = False


class FilterOptionsResponse(BaseModel):
    regions: List[str]
    owners: List[str]
    results: List[str]
    reasons: List[str]
