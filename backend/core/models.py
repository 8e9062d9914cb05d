"""
Core Pydantic models for the chart engine.

All domain types live here so every module shares the same vocabulary.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Dataset & classification
# ---------------------------------------------------------------------------

Row = Dict[str, Any]


class Dataset(BaseModel):
    identifier: str = "dataset"
    fields: List[str] = Field(default_factory=list)
    rows: List[Row] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.rows or not self.fields


class FieldClassification(BaseModel):
    numeric: List[str] = Field(default_factory=list)
    categorical: List[str] = Field(default_factory=list)

    def is_numeric(self, field: Optional[str]) -> bool:
        return field is not None and field in self.numeric

    def is_categorical(self, field: Optional[str]) -> bool:
        return field is not None and field in self.categorical


# ---------------------------------------------------------------------------
# Chart vocabulary
# ---------------------------------------------------------------------------

class AggregationKind(str, Enum):
    count = "count"
    sum = "sum"
    average = "average"
    min = "min"
    max = "max"
    uniqueCount = "uniqueCount"
    sdev = "sdev"

    @property
    def numeric_only(self) -> bool:
        return self not in (AggregationKind.count, AggregationKind.uniqueCount)

    @property
    def label(self) -> str:
        return _AGGREGATION_LABELS[self]


_AGGREGATION_LABELS = {
    AggregationKind.count: "Count (Non-Empty)",
    AggregationKind.sum: "Sum",
    AggregationKind.average: "Average",
    AggregationKind.min: "Min",
    AggregationKind.max: "Max",
    AggregationKind.uniqueCount: "Unique Count",
    AggregationKind.sdev: "Standard Deviation",
}


class ChartShape(str, Enum):
    bar = "bar"
    line = "line"
    area = "area"
    pie = "pie"
    scatter = "scatter"
    radar = "radar"
    composed = "composed"


class SeriesShape(str, Enum):
    bar = "bar"
    line = "line"
    area = "area"


# Shapes whose series use a single chart-wide element
SINGLE_SERIES_SHAPES = (ChartShape.pie, ChartShape.radar)
# Shapes whose rows get date/numeric ordering on X
ORDERED_X_SHAPES = (ChartShape.bar, ChartShape.line, ChartShape.area, ChartShape.composed)


class SeriesSlot(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: Optional[str] = None
    aggregation: AggregationKind = AggregationKind.sum
    series_shape: SeriesShape = SeriesShape.bar

    @property
    def is_field_less_count(self) -> bool:
        return self.field is None and self.aggregation == AggregationKind.count


def slot2_is_active(slot2: Optional[SeriesSlot], shape: ChartShape) -> bool:
    """Slot 2 contributes a series: it has a field, or counts on a composed chart."""
    if slot2 is None or shape in SINGLE_SERIES_SHAPES:
        return False
    if slot2.field is not None:
        return True
    return slot2.is_field_less_count and shape == ChartShape.composed


class ChartConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    chart_shape: ChartShape = ChartShape.bar
    x_field: Optional[str] = None
    slot1: SeriesSlot = Field(default_factory=SeriesSlot)
    slot2: SeriesSlot = Field(
        default_factory=lambda: SeriesSlot(series_shape=SeriesShape.line)
    )
    theme: str = "default"

    @property
    def slot2_active(self) -> bool:
        return slot2_is_active(self.slot2, self.chart_shape)

    def slot(self, index: int) -> SeriesSlot:
        return self.slot1 if index == 1 else self.slot2


# ---------------------------------------------------------------------------
# Configuration transitions
# ---------------------------------------------------------------------------

class Advisory(BaseModel):
    code: str
    message: str
    slot: Optional[int] = None


class TransitionResult(BaseModel):
    config: ChartConfig
    advisories: List[Advisory] = Field(default_factory=list)


class ChartEventKind(str, Enum):
    setShape = "setShape"
    setXField = "setXField"
    setSeriesField = "setSeriesField"
    setAggregation = "setAggregation"
    setSeriesShape = "setSeriesShape"
    setTheme = "setTheme"


class ChartEvent(BaseModel):
    kind: ChartEventKind
    slot: int = Field(1, ge=1, le=2)
    value: Optional[str] = None


# ---------------------------------------------------------------------------
# Render descriptor & export
# ---------------------------------------------------------------------------

class SeriesDescriptor(BaseModel):
    key: str
    label: str
    slot: int
    axis: str                     # left / right
    element: str                  # bar, line, area, pie, scatter, radar
    color: str


class SliceColor(BaseModel):
    category: str
    color: str


class RenderDescriptor(BaseModel):
    chart_shape: ChartShape
    x_key: Optional[str] = None
    x_label: str = ""
    series: List[SeriesDescriptor] = Field(default_factory=list)
    slice_colors: Optional[List[SliceColor]] = None
    data: List[Row] = Field(default_factory=list)
    formatted: List[Dict[str, str]] = Field(default_factory=list)   # series values at display precision
    theme: str = "default"
    precision: int = 2
    animations_enabled: bool = True


class ExportPayload(BaseModel):
    filename: str
    text: str
    media_type: str = "text/csv;charset=utf-8"


# ---------------------------------------------------------------------------
# Display settings (read-only to the engine)
# ---------------------------------------------------------------------------

class DisplaySettings(BaseModel):
    theme: str = "default"
    chart_themes: Dict[str, List[str]] = Field(default_factory=dict)
    animations_enabled: bool = True
    data_precision: int = Field(2, ge=0, le=5)

    def palette(self, name: Optional[str]) -> List[str]:
        if name and name in self.chart_themes:
            return self.chart_themes[name]
        return self.chart_themes.get("default") or next(iter(self.chart_themes.values()), [])


# ---------------------------------------------------------------------------
# AI insights boundary
# ---------------------------------------------------------------------------

class ForecastHorizon(str, Enum):
    monthly = "monthly"
    quarterly = "quarterly"
    yearly = "yearly"


class NarrativeResult(BaseModel):
    narrative_summary: str = ""
    key_findings: List[str] = Field(default_factory=list)
    root_cause_analysis: str = ""
    suggested_solutions: List[str] = Field(default_factory=list)
    used_fallback: bool = False


class ForecastResult(BaseModel):
    analysis: str = ""
    series: List[Row] = Field(default_factory=list)
    used_fallback: bool = False


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

class NarrativeRequest(BaseModel):
    fields: Optional[List[str]] = None


class ForecastRequest(BaseModel):
    date_field: str
    value_field: str
    horizon: ForecastHorizon = ForecastHorizon.monthly
    existing_analysis: Optional[str] = None
