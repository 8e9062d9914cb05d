"""
Series descriptor skill.

Takes aggregated rows + ChartConfig → RenderDescriptor. The renderer simply
draws what it receives: every series names its data key, label, axis,
element and colour.

Descriptor contract:
- slot 1 always renders on the left axis, slot 2 (when active) on the right;
- composed charts take each slot's own series shape, bar/line/area take the
  chart shape, pie/scatter/radar use their own element;
- pie charts carry one colour per category, cycling through the palette.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from core.models import (
    AggregationKind,
    ChartConfig,
    ChartShape,
    DisplaySettings,
    RenderDescriptor,
    Row,
    SeriesDescriptor,
    SeriesSlot,
    SliceColor,
)
from core.utils import format_value, humanize_field, stringify
from skills.aggregate import effective_keys

logger = logging.getLogger("uvicorn.error")

FALLBACK_COLORS = ["hsl(var(--chart-1))", "hsl(var(--chart-2))"]


# ---------------------------------------------------------------------------
# Labels (shared with export)
# ---------------------------------------------------------------------------

def series_label(slot: SeriesSlot, index: int) -> str:
    if slot.field is None:
        if slot.aggregation == AggregationKind.count:
            return "Count" if index == 1 else "Count 2"
        return f"Value {index} ({slot.aggregation.label})"
    return f"{humanize_field(slot.field)} ({slot.aggregation.label})"


def x_label(config: ChartConfig) -> str:
    return humanize_field(config.x_field) if config.x_field else ""


def active_slots(config: ChartConfig) -> List[SeriesSlot]:
    slots = [config.slot1]
    if config.slot2_active:
        slots.append(config.slot2)
    return slots


# ---------------------------------------------------------------------------
# Descriptor
# ---------------------------------------------------------------------------

def _element_for(config: ChartConfig, slot: SeriesSlot) -> str:
    if config.chart_shape == ChartShape.composed:
        return slot.series_shape.value
    return config.chart_shape.value


def _color(palette: Sequence[str], index: int) -> str:
    if palette:
        return palette[index % len(palette)]
    return FALLBACK_COLORS[index % len(FALLBACK_COLORS)]


def _slice_colors(rows: Sequence[Row], x_key: str, palette: Sequence[str]) -> List[SliceColor]:
    return [
        SliceColor(category=stringify(row.get(x_key)), color=_color(palette, i))
        for i, row in enumerate(rows)
    ]


def build_descriptor(
    rows: Sequence[Row],
    config: ChartConfig,
    palette: Sequence[str],
    settings: Optional[DisplaySettings] = None,
) -> RenderDescriptor:
    """Describe how to render *rows* for *config*; no series when nothing can be drawn."""
    settings = settings or DisplaySettings()
    descriptor = RenderDescriptor(
        chart_shape=config.chart_shape,
        x_key=config.x_field,
        x_label=x_label(config),
        data=list(rows),
        theme=config.theme,
        precision=settings.data_precision,
        animations_enabled=settings.animations_enabled,
    )
    if not rows or not config.x_field:
        return descriptor

    slot2 = config.slot2 if config.slot2_active else None
    keys = effective_keys(config.slot1, slot2, config.x_field)

    series: List[SeriesDescriptor] = []
    for index, slot in enumerate(active_slots(config), start=1):
        series.append(SeriesDescriptor(
            key=keys[index - 1],
            label=series_label(slot, index),
            slot=index,
            axis="left" if index == 1 else "right",
            element=_element_for(config, slot),
            color=_color(palette, index - 1),
        ))

    update = {
        "series": series,
        "formatted": [
            {s.key: format_value(row.get(s.key), settings.data_precision) for s in series}
            for row in rows
        ],
    }
    if config.chart_shape == ChartShape.pie:
        update["slice_colors"] = _slice_colors(rows, config.x_field, palette)

    logger.info(
        "Descriptor built: shape=%s x=%s series=%s rows=%d",
        config.chart_shape.value, config.x_field, [s.key for s in series], len(rows),
    )
    return descriptor.model_copy(update=update)
