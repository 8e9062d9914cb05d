"""
Narration skill: LLM-backed narrative and forecast insights.

The chart engine never waits on these calls; they only consume a short text
summary of the dataset and return prose plus an optional forecast series.
"""

from __future__ import annotations

import json
import logging
from typing import Any, List, Optional, Sequence

import numpy as np

from app.llm import LLMError, chat_json, load_json_text, short_error
from core.models import ForecastHorizon, ForecastResult, NarrativeResult, Row
from core.utils import date_sort_key, parse_number, stable_sort_by

logger = logging.getLogger("uvicorn.error")

# Track whether we've already warned about LLM unavailability this session
_llm_warn_logged = False

SUMMARY_MAX_CHARS = 10000
PLACEHOLDER_ROWS = 20
FORECAST_KEY = "forecast"


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

_NARRATIVE_SYSTEM = """You are an expert data analyst tasked with summarizing datasets and providing insights.

Based on the data summary, produce a comprehensive analysis.

Return a JSON object with:
- "narrativeSummary" (string): a concise general overview of the dataset and its main characteristics
- "keyFindings" (string[]): the most important observations and notable patterns, one per item
- "rootCauseAnalysis" (string): potential underlying reasons for these patterns or issues
- "suggestedSolutions" (string[]): actionable recommendations or next steps, one per item

Rules:
- Do not prefix list items with '-' or '*'; plain text only.
- Stay grounded in the fields and values the summary shows.

Return ONLY valid JSON. No prose, no code fences."""

_FORECAST_SYSTEM = """You are an expert data analyst specializing in time series forecasting.

Analyze the dataset summary and produce a forecast for the selected fields and horizon.

Return a JSON object with:
- "analysis" (string): narrative of the forecast, key findings and potential implications
- "chartData" (string): a JSON array (encoded as a string) of objects with "date", "actual" and "forecast" keys

Return ONLY valid JSON. No prose, no code fences."""


# ---------------------------------------------------------------------------
# Data summary
# ---------------------------------------------------------------------------

def _json_row(row: Row, fields: Optional[Sequence[str]] = None) -> str:
    sample = row if fields is None else {f: row.get(f) for f in fields}
    return json.dumps(sample, default=str, ensure_ascii=False)


def build_data_summary(
    rows: Sequence[Row],
    fields: Sequence[str],
    identifier: str,
    *,
    sample_rows: int = 1,
    sample_fields: Optional[int] = None,
) -> str:
    """Record count, field list and the first record(s) as JSON, capped at 10 000 characters."""
    if not rows:
        return f"No data available for {identifier}."

    summary = f'The dataset from "{identifier}" contains {len(rows)} records. '
    if fields:
        summary += f"Fields include: {', '.join(fields)}. "

    shown = list(fields[:sample_fields]) if sample_fields else None
    samples = "; ".join(_json_row(row, shown) for row in rows[:sample_rows])
    if samples:
        if sample_rows == 1 and shown is None:
            summary += f"First record sample: {samples}"
        else:
            summary += f"Sample of first few records (up to {sample_fields or len(fields)} fields shown): {samples}"
    return summary[:SUMMARY_MAX_CHARS]


# ---------------------------------------------------------------------------
# Narrative
# ---------------------------------------------------------------------------

def _as_list(value: Any) -> List[str]:
    if isinstance(value, list):
        return [str(v).lstrip("-* ").strip() for v in value if str(v).strip()]
    if isinstance(value, str) and value.strip():
        return [line.lstrip("-* ").strip() for line in value.splitlines() if line.strip()]
    return []


def _fallback_narrative(summary: str) -> NarrativeResult:
    return NarrativeResult(
        narrative_summary=summary,
        key_findings=[],
        root_cause_analysis="Automated analysis is unavailable; review the charts for patterns.",
        suggested_solutions=[
            "Configure an LLM provider (LLM_PROVIDER, LLM_API_KEY) to generate AI insights.",
        ],
        used_fallback=True,
    )


def generate_narrative(summary: str) -> NarrativeResult:
    """Ask the LLM for a structured narrative; fall back to the plain summary on any failure."""
    global _llm_warn_logged
    try:
        obj = chat_json(_NARRATIVE_SYSTEM, f"Data Summary:\n{summary}", max_tokens=1024)
    except LLMError as exc:
        if not _llm_warn_logged:
            logger.warning("LLM narrative unavailable, using fallback: %s", short_error(exc))
            _llm_warn_logged = True
        return _fallback_narrative(summary)

    return NarrativeResult(
        narrative_summary=str(obj.get("narrativeSummary") or ""),
        key_findings=_as_list(obj.get("keyFindings")),
        root_cause_analysis=str(obj.get("rootCauseAnalysis") or ""),
        suggested_solutions=_as_list(obj.get("suggestedSolutions")),
    )


# ---------------------------------------------------------------------------
# Forecast
# ---------------------------------------------------------------------------

def _first_truthy(*values: Any) -> Any:
    for v in values:
        if v:
            return v
    return None


def decode_forecast_series(chart_data: Any, date_field: str, value_field: str) -> List[Row]:
    """
    Decode the model's chart data into rows keyed by the chosen fields.

    Raises ValueError when the payload is not a non-empty JSON array.
    """
    parsed = load_json_text(chart_data) if isinstance(chart_data, str) else chart_data
    if not isinstance(parsed, list) or not parsed:
        raise ValueError("forecast chart data is not a non-empty array")

    series: List[Row] = []
    for d in parsed:
        if not isinstance(d, dict):
            raise ValueError("forecast chart data entries must be objects")
        series.append({
            date_field: _first_truthy(
                d.get("date"), d.get(date_field), d.get("Month"), d.get("Quarter"), d.get("Year"),
            ),
            value_field: _first_truthy(d.get("actual"), d.get(value_field)),
            FORECAST_KEY: d.get(FORECAST_KEY),
        })
    return series


def placeholder_forecast(
    rows: Sequence[Row],
    date_field: str,
    value_field: str,
    rng: Optional[np.random.Generator] = None,
) -> List[Row]:
    """Perturbed copy of the first rows, sorted by date; marks a decode failure in the UI."""
    rng = rng or np.random.default_rng()
    head = list(rows[:PLACEHOLDER_ROWS])
    noise = rng.random(len(head))
    series = [
        {
            date_field: row.get(date_field),
            value_field: row.get(value_field),
            FORECAST_KEY: (parse_number(row.get(value_field)) or 0.0) * (1 + (u - 0.4) * 0.3),
        }
        for row, u in zip(head, noise)
    ]
    return stable_sort_by(series, lambda r: date_sort_key(r.get(date_field)))


def generate_forecast(
    rows: Sequence[Row],
    fields: Sequence[str],
    identifier: str,
    date_field: str,
    value_field: str,
    horizon: ForecastHorizon = ForecastHorizon.monthly,
    existing_analysis: Optional[str] = None,
    rng: Optional[np.random.Generator] = None,
) -> ForecastResult:
    """
    LLM forecast for *value_field* over *date_field*.

    Transport failures raise ``LLMError``; an unusable series falls back to
    ``placeholder_forecast``.
    """
    summary = build_data_summary(rows, fields, identifier)
    user = (
        f"Dataset Summary:\n{summary}\n\n"
        f"Selected Fields: {date_field}, {value_field}\n"
        f"Forecast Horizon: {horizon.value}\n"
        f"Existing Analysis (if any): {existing_analysis or ''}"
    )
    obj = chat_json(_FORECAST_SYSTEM, user, max_tokens=2048)
    analysis = str(obj.get("analysis") or "")

    try:
        series = decode_forecast_series(obj.get("chartData"), date_field, value_field)
        return ForecastResult(analysis=analysis, series=series)
    except ValueError as exc:
        logger.warning("Forecast chart data unusable, using placeholder series: %s", exc)
        return ForecastResult(
            analysis=analysis,
            series=placeholder_forecast(rows, date_field, value_field, rng),
            used_fallback=True,
        )
