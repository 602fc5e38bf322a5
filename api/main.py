from __future__ import annotations

import logging
import math
from functools import lru_cache

import numpy as np
import pandas as pd
from fastapi import Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.schemas import DashboardRequest, FilterOptionsResponse
from campdash.aggregate import aggregate, view_payload
from campdash.config import get_source_settings, normalize_outcomes
from campdash.errors import IngestError, MalformedSource, SourceNotConfigured, SourceUnavailable
from campdash.filters import filter_options, normalize_filters
from campdash.pipeline import RefreshOutcome, SalesPipeline


app = FastAPI(title="Camp Outreach Dashboard API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

NO_STORE = {"Cache-Control": "no-store, max-age=0"}


@lru_cache(maxsize=1)
def get_pipeline() -> SalesPipeline:
    return SalesPipeline(get_source_settings())


def _json(data: object, status_code: int = 200) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects; never cached."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        status_code=status_code,
        headers=NO_STORE,
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
            },
        ),
    )


def _status_for_error(error: Exception) -> int:
    if isinstance(error, SourceUnavailable):
        return 403 if error.permission_denied else 502
    if isinstance(error, MalformedSource):
        return 422
    if isinstance(error, SourceNotConfigured):
        return 503
    return 500


def _status_for(outcome: RefreshOutcome) -> int:
    if outcome.ignored:
        return 409
    return _status_for_error(outcome.error) if outcome.error is not None else 500


def _error_response(outcome: RefreshOutcome) -> JSONResponse:
    return _json(outcome.to_dict(), status_code=_status_for(outcome))


@app.exception_handler(IngestError)
def ingest_error_handler(request: Request, exc: IngestError) -> JSONResponse:
    # Raised while resolving dependencies (settings, rule file), before a route's own try block.
    logger.error("%s %s failed (%s): %s", request.method, request.url.path, exc.kind, exc.message)
    return _json(exc.to_dict(), status_code=_status_for_error(exc))


@app.get("/healthz")
def healthz():
    return _json({"status": "ok"})


@app.get("/sales")
def sales(pipeline: SalesPipeline = Depends(get_pipeline)):
    try:
        outcome = pipeline.refresh()
        if not outcome.ok:
            return _error_response(outcome)
        return _json(outcome.to_dict())
    except Exception as exc:
        logger.exception("sales failed")
        return _json({"error": str(exc), "type": type(exc).__name__}, status_code=500)


@app.get("/meta/options")
def meta_options(refresh: bool = Query(default=False), pipeline: SalesPipeline = Depends(get_pipeline)):
    try:
        outcome = pipeline.refresh() if refresh else pipeline.current()
        if not outcome.ok:
            return _error_response(outcome)
        options = FilterOptionsResponse(**filter_options(outcome.records))
        return _json(options.model_dump())
    except Exception as exc:
        logger.exception("meta_options failed")
        return _json({"error": str(exc), "type": type(exc).__name__}, status_code=500)


@app.post("/dashboard")
def dashboard(request: DashboardRequest, pipeline: SalesPipeline = Depends(get_pipeline)):
    try:
        # Filter changes re-aggregate the loaded records; only an explicit refresh re-fetches.
        outcome = pipeline.refresh() if request.refresh else pipeline.current()
        if not outcome.ok:
            return _error_response(outcome)
        filters = normalize_filters(request.filters.model_dump())
        outcomes = normalize_outcomes(request.outcomes.model_dump()) if request.outcomes else None
        view = aggregate(outcome.records, filters, outcomes)
        return _json(view_payload(view, filters, with_charts=request.with_charts))
    except Exception as exc:
        logger.exception("dashboard failed")
        return _json({"error": str(exc), "type": type(exc).__name__}, status_code=500)
