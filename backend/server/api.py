"""
Chart API routes: mounted as a sub-router on the main FastAPI app.

Charts: GET /api/charts/{n}, POST /api/charts/{n}/events, GET /api/charts/{n}/export
Dataset: GET /api/fields, DELETE /api/dataset
Insights: POST /api/insights/narrative, POST /api/insights/forecast
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import Response

from app.llm import LLMError
from core.models import ChartEvent, ForecastRequest, NarrativeRequest
from core.storage import find_workspace, forget_upload, get_upload_meta, get_workspace
from server.pipeline import CHART_INDEXES, Workspace
from skills.classify import field_overview
from skills.export import NothingToExportError
from skills.narrate import build_data_summary, generate_forecast, generate_narrative

logger = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/api", tags=["charts"])


def require_session_id(request: Request) -> str:
    sid = request.headers.get("X-Session-Id")
    if not sid:
        raise HTTPException(status_code=400, detail="Missing X-Session-Id header.")
    return sid


def _workspace(request: Request) -> Workspace:
    return get_workspace(require_session_id(request))


def _require_dataset(request: Request) -> Workspace:
    workspace = find_workspace(require_session_id(request))
    if workspace is None or workspace.dataset.is_empty:
        raise HTTPException(status_code=400, detail="No dataset uploaded.")
    return workspace


def _check_chart(chart_index: int) -> None:
    if chart_index not in CHART_INDEXES:
        raise HTTPException(status_code=400, detail=f"Unknown chart {chart_index}; expected 1 or 2.")


# ---------------------------------------------------------------------------
# Dataset
# ---------------------------------------------------------------------------

@router.get("/fields")
async def get_fields(request: Request):
    """Classification plus X-axis options per chart shape, and the latest upload."""
    sid = require_session_id(request)
    workspace = get_workspace(sid)
    overview = field_overview(workspace.dataset.rows, workspace.dataset.fields)
    overview["upload"] = get_upload_meta(sid)
    return overview


@router.delete("/dataset")
async def clear_dataset(request: Request):
    sid = require_session_id(request)
    get_workspace(sid).clear()
    forget_upload(sid)
    return {"ok": True}


# ---------------------------------------------------------------------------
# Charts
# ---------------------------------------------------------------------------

@router.get("/charts/{chart_index}")
async def get_chart(request: Request, chart_index: int):
    _check_chart(chart_index)
    workspace = _workspace(request)
    return {
        "config": workspace.config(chart_index).model_dump(),
        "descriptor": workspace.view(chart_index).model_dump(),
    }


@router.post("/charts/{chart_index}/events")
async def post_chart_event(request: Request, chart_index: int, event: ChartEvent):
    """Apply one configuration change and return the recomputed chart."""
    _check_chart(chart_index)
    workspace = _workspace(request)
    result = workspace.apply(chart_index, event)
    return {
        "config": result.config.model_dump(),
        "advisories": [a.model_dump() for a in result.advisories],
        "descriptor": workspace.view(chart_index).model_dump(),
    }


@router.get("/charts/{chart_index}/export")
async def export_chart(request: Request, chart_index: int):
    _check_chart(chart_index)
    workspace = _workspace(request)
    try:
        payload = workspace.export(chart_index)
    except NothingToExportError as e:
        raise HTTPException(status_code=404, detail=f"Nothing to export: {e}")
    return Response(
        content=payload.text,
        media_type=payload.media_type,
        headers={"Content-Disposition": f'attachment; filename="{payload.filename}"'},
    )


# ---------------------------------------------------------------------------
# Insights
# ---------------------------------------------------------------------------

@router.post("/insights/narrative")
def post_narrative(request: Request, body: NarrativeRequest = NarrativeRequest()):
    workspace = _require_dataset(request)
    dataset = workspace.dataset
    fields = [f for f in (body.fields or dataset.fields) if f in dataset.fields]
    summary = build_data_summary(
        dataset.rows, fields, dataset.identifier, sample_rows=2, sample_fields=5,
    )
    return generate_narrative(summary).model_dump()


@router.post("/insights/forecast")
def post_forecast(request: Request, body: ForecastRequest):
    workspace = _require_dataset(request)
    dataset = workspace.dataset
    for field in (body.date_field, body.value_field):
        if field not in dataset.fields:
            raise HTTPException(status_code=400, detail=f"Unknown field '{field}'.")
    try:
        result = generate_forecast(
            dataset.rows,
            dataset.fields,
            dataset.identifier,
            body.date_field,
            body.value_field,
            body.horizon,
            body.existing_analysis,
        )
    except LLMError as e:
        logger.exception("Forecast generation failed")
        raise HTTPException(status_code=502, detail=f"Forecast generation failed: {e}")
    return result.model_dump()
