"""
Chart configuration skill.

One pure transition per user event (shape, X field, series field, aggregation,
series shape, theme). Each takes the current frozen ``ChartConfig`` plus the
dataset's field classification and returns a new, validated config together
with any advisories raised along the way.

Correction policy:
- changing a slot's *field* auto-repairs (numeric-only aggregations drop to
  ``count`` for non-numeric fields);
- changing a slot's *aggregation* only warns, the user's choice is kept.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from core.models import (
    Advisory,
    AggregationKind,
    ChartConfig,
    ChartEvent,
    ChartEventKind,
    ChartShape,
    FieldClassification,
    SeriesShape,
    SeriesSlot,
    SINGLE_SERIES_SHAPES,
    TransitionResult,
)
from skills.classify import (
    CATEGORICAL_MAX_DISTINCT,
    default_x_field,
    default_y_field,
    distinct_x_count,
    x_axis_options,
)

logger = logging.getLogger("uvicorn.error")

DEFAULT_SLOT1_SHAPE = SeriesShape.bar
DEFAULT_SLOT2_SHAPE = SeriesShape.line
DEFAULT_THEME = "default"


def _empty_slot2() -> SeriesSlot:
    return SeriesSlot(field=None, aggregation=AggregationKind.sum, series_shape=DEFAULT_SLOT2_SHAPE)


def _series_shape_for(shape: ChartShape, current: SeriesShape) -> SeriesShape:
    if shape == ChartShape.composed:
        return current
    try:
        return SeriesShape(shape.value)
    except ValueError:
        return current


def _replace_slot(config: ChartConfig, index: int, slot: SeriesSlot) -> ChartConfig:
    return config.model_copy(update={"slot1" if index == 1 else "slot2": slot})


def _result(config: ChartConfig, advisories: List[Advisory]) -> TransitionResult:
    for adv in advisories:
        logger.warning("Chart advisory [%s] slot=%s: %s", adv.code, adv.slot, adv.message)
    return TransitionResult(config=config, advisories=advisories)


# ---------------------------------------------------------------------------
# Construction / reset
# ---------------------------------------------------------------------------

def initial_config(chart_index: int = 1, theme: str = DEFAULT_THEME) -> ChartConfig:
    """Chart 1 starts as a bar chart, chart 2 as a line chart; no fields chosen."""
    shape = ChartShape.bar if chart_index == 1 else ChartShape.line
    return ChartConfig(
        chart_shape=shape,
        x_field=None,
        slot1=SeriesSlot(series_shape=SeriesShape(shape.value)),
        slot2=_empty_slot2(),
        theme=theme,
    )


def reset_for_dataset(
    config: ChartConfig,
    classification: FieldClassification,
    fields: Sequence[str],
) -> ChartConfig:
    """Default field choices for a new dataset; shape and theme are kept."""
    shape = config.chart_shape
    x_field = default_x_field(shape, classification, fields) if fields else None
    numeric_only = shape == ChartShape.scatter
    y_field = default_y_field(classification, fields, x_field, numeric_only=True)
    if y_field is None and not numeric_only:
        slot1 = SeriesSlot(field=None, aggregation=AggregationKind.count)
    else:
        slot1 = SeriesSlot(field=y_field, aggregation=AggregationKind.sum)
    slot1 = slot1.model_copy(update={"series_shape": _series_shape_for(shape, DEFAULT_SLOT1_SHAPE)})
    return config.model_copy(update={
        "x_field": x_field,
        "slot1": slot1,
        "slot2": _empty_slot2(),
    })


# ---------------------------------------------------------------------------
# Invariants
# ---------------------------------------------------------------------------

def validate_config(
    config: ChartConfig,
    classification: FieldClassification,
    fields: Sequence[str],
    advisories: Optional[List[Advisory]] = None,
) -> ChartConfig:
    """
    Re-apply the cross-field invariants:
    - pie/radar charts carry no second series;
    - scatter slots reference numeric fields;
    - slot 1 plots a field unless it is a field-less count;
    - two slots never plot the same field with the same aggregation.
    """
    advisories = advisories if advisories is not None else []
    shape = config.chart_shape

    if shape in SINGLE_SERIES_SHAPES and config.slot2 != _empty_slot2():
        config = config.model_copy(update={"slot2": _empty_slot2()})

    if shape == ChartShape.scatter:
        slot1 = config.slot1
        repairable = slot1.field is not None or bool(classification.numeric)
        if repairable and not classification.is_numeric(slot1.field):
            replacement = default_y_field(classification, fields, config.x_field, numeric_only=True)
            advisories.append(Advisory(
                code="scatter_requires_numeric",
                message=(
                    f"Scatter plots need numeric fields; "
                    f"'{slot1.field or 'Count'}' replaced with '{replacement or 'nothing'}'."
                ),
                slot=1,
            ))
            slot1 = slot1.model_copy(update={"field": replacement})
            if slot1.field is None:
                slot1 = slot1.model_copy(update={"aggregation": AggregationKind.sum})
            config = _replace_slot(config, 1, slot1)
        slot2 = config.slot2
        if slot2.field is not None and not classification.is_numeric(slot2.field):
            advisories.append(Advisory(
                code="scatter_requires_numeric",
                message=f"Scatter plots need numeric fields; '{slot2.field}' removed.",
                slot=2,
            ))
            config = _replace_slot(config, 2, _empty_slot2())

    slot1 = config.slot1
    needs_field = slot1.aggregation != AggregationKind.count or shape == ChartShape.scatter
    if slot1.field is None and needs_field and fields:
        replacement = default_y_field(
            classification, fields, config.x_field, numeric_only=shape == ChartShape.scatter,
        )
        if replacement is not None:
            advisories.append(Advisory(
                code="y_field_defaulted",
                message=f"A {slot1.aggregation.label} series needs a field; using '{replacement}'.",
                slot=1,
            ))
            config = _replace_slot(config, 1, slot1.model_copy(update={"field": replacement}))
        elif shape != ChartShape.scatter:
            advisories.append(Advisory(
                code="aggregation_switched",
                message=f"No field is available; switched aggregation to '{AggregationKind.count.label}'.",
                slot=1,
            ))
            config = _replace_slot(config, 1, slot1.model_copy(update={"aggregation": AggregationKind.count}))

    s1, s2 = config.slot1, config.slot2
    if s2.field is not None and s2.field == s1.field and s2.aggregation == s1.aggregation:
        advisories.append(Advisory(
            code="duplicate_series",
            message=(
                f"Both series plot '{s2.field}' with {s2.aggregation.label}; "
                f"the second series was cleared."
            ),
            slot=2,
        ))
        config = _replace_slot(config, 2, _empty_slot2().model_copy(update={"series_shape": s2.series_shape}))

    return config


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

def set_shape(
    config: ChartConfig,
    shape: ChartShape,
    classification: FieldClassification,
    fields: Sequence[str],
) -> TransitionResult:
    advisories: List[Advisory] = []
    slot1 = config.slot1
    slot2 = config.slot2

    if shape != ChartShape.composed:
        slot1 = slot1.model_copy(update={"series_shape": _series_shape_for(shape, slot1.series_shape)})
    if shape in SINGLE_SERIES_SHAPES:
        slot2 = _empty_slot2()

    x_field = config.x_field
    if x_field and x_field not in x_axis_options(shape, classification, fields):
        x_field = default_x_field(shape, classification, fields)
        advisories.append(Advisory(
            code="x_field_reset",
            message=f"'{config.x_field}' is not available on {shape.value} charts; X axis set to '{x_field}'.",
        ))

    cleared: List[Advisory] = []
    for index, slot in ((1, slot1), (2, slot2)):
        if slot.field and slot.aggregation.numeric_only and not classification.is_numeric(slot.field):
            cleared.append(Advisory(
                code="field_cleared",
                message=(
                    f"'{slot.field}' is not numeric and cannot use {slot.aggregation.label}; "
                    f"field cleared."
                ),
                slot=index,
            ))
            if index == 1:
                slot1 = slot1.model_copy(update={"field": None})
            else:
                slot2 = slot2.model_copy(update={"field": None})
    advisories.extend(cleared)

    new_config = config.model_copy(update={
        "chart_shape": shape,
        "x_field": x_field,
        "slot1": slot1,
        "slot2": slot2,
    })
    new_config = validate_config(new_config, classification, fields, advisories)
    return _result(new_config, advisories)


def set_x_field(
    config: ChartConfig,
    field: Optional[str],
    classification: FieldClassification,
    fields: Sequence[str],
    rows: Optional[Sequence[dict]] = None,
) -> TransitionResult:
    advisories: List[Advisory] = []
    options = x_axis_options(config.chart_shape, classification, fields)
    x_field = field
    if field is not None and field not in options:
        x_field = default_x_field(config.chart_shape, classification, fields)
        advisories.append(Advisory(
            code="x_field_reset",
            message=f"'{field}' cannot be used as the X axis of a {config.chart_shape.value} chart; using '{x_field}'.",
        ))

    if rows is not None and x_field is not None:
        distinct = distinct_x_count(rows, x_field)
        if distinct > CATEGORICAL_MAX_DISTINCT:
            advisories.append(Advisory(
                code="high_cardinality_x",
                message=f"'{x_field}' has {distinct} distinct values; the chart may be crowded.",
            ))

    new_config = validate_config(config.model_copy(update={"x_field": x_field}), classification, fields, advisories)
    return _result(new_config, advisories)


def set_series_field(
    config: ChartConfig,
    slot_index: int,
    field: Optional[str],
    classification: FieldClassification,
    fields: Sequence[str],
) -> TransitionResult:
    advisories: List[Advisory] = []
    slot = config.slot(slot_index)
    shape = config.chart_shape

    if slot_index == 2 and shape in SINGLE_SERIES_SHAPES:
        advisories.append(Advisory(
            code="second_series_unavailable",
            message=f"{shape.value.capitalize()} charts show a single series.",
            slot=2,
        ))
        return _result(config, advisories)

    if field is not None and field not in fields:
        advisories.append(Advisory(
            code="unknown_field",
            message=f"Field '{field}' is not in the dataset.",
            slot=slot_index,
        ))
        return _result(config, advisories)

    if field is None:
        aggregation = AggregationKind.count if shape in SINGLE_SERIES_SHAPES else AggregationKind.sum
        update: Dict[str, object] = {"field": None, "aggregation": aggregation}
        if shape == ChartShape.composed:
            update["series_shape"] = DEFAULT_SLOT1_SHAPE if slot_index == 1 else DEFAULT_SLOT2_SHAPE
        slot = slot.model_copy(update=update)
    else:
        if shape == ChartShape.scatter and not classification.is_numeric(field):
            replacement = default_y_field(classification, fields, config.x_field, numeric_only=True)
            advisories.append(Advisory(
                code="scatter_requires_numeric",
                message=f"Scatter plots need numeric fields; '{field}' replaced with '{replacement or 'nothing'}'.",
                slot=slot_index,
            ))
            field = replacement
        slot = slot.model_copy(update={"field": field})
        if field is not None and slot.aggregation.numeric_only and not classification.is_numeric(field):
            slot = slot.model_copy(update={"aggregation": AggregationKind.count})
            advisories.append(Advisory(
                code="aggregation_switched",
                message=(
                    f"Field '{field}' is not primarily numeric. "
                    f"Switched aggregation to '{AggregationKind.count.label}'."
                ),
                slot=slot_index,
            ))

    new_config = validate_config(_replace_slot(config, slot_index, slot), classification, fields, advisories)
    return _result(new_config, advisories)


def set_aggregation(
    config: ChartConfig,
    slot_index: int,
    kind: AggregationKind,
    classification: FieldClassification,
    fields: Sequence[str],
) -> TransitionResult:
    advisories: List[Advisory] = []
    slot = config.slot(slot_index)
    shape = config.chart_shape

    if slot_index == 2 and shape in SINGLE_SERIES_SHAPES:
        advisories.append(Advisory(
            code="second_series_unavailable",
            message=f"{shape.value.capitalize()} charts show a single series.",
            slot=2,
        ))
        return _result(config, advisories)

    if kind.numeric_only and slot.field and not classification.is_numeric(slot.field):
        advisories.append(Advisory(
            code="numeric_aggregation_on_text",
            message=(
                f"Aggregation '{kind.label}' typically requires a numeric field. "
                f"'{slot.field}' may not be suitable."
            ),
            slot=slot_index,
        ))

    slot = slot.model_copy(update={"aggregation": kind})

    count_without_field = kind == AggregationKind.count and shape in SINGLE_SERIES_SHAPES
    if slot_index == 1 and slot.field is None and kind != AggregationKind.count and not count_without_field:
        slot = slot.model_copy(update={
            "field": default_y_field(classification, fields, config.x_field),
        })

    new_config = validate_config(_replace_slot(config, slot_index, slot), classification, fields, advisories)
    return _result(new_config, advisories)


def set_series_shape(
    config: ChartConfig,
    slot_index: int,
    series_shape: SeriesShape,
) -> TransitionResult:
    if config.chart_shape != ChartShape.composed:
        return _result(config, [Advisory(
            code="series_shape_ignored",
            message="Per-series shapes apply to composed charts only.",
            slot=slot_index,
        )])
    slot = config.slot(slot_index).model_copy(update={"series_shape": series_shape})
    return _result(_replace_slot(config, slot_index, slot), [])


def set_theme(
    config: ChartConfig,
    theme: str,
    palettes: Dict[str, List[str]],
) -> TransitionResult:
    advisories: List[Advisory] = []
    if theme not in palettes:
        advisories.append(Advisory(
            code="unknown_theme",
            message=f"Theme '{theme}' is not available; using '{DEFAULT_THEME}'.",
        ))
        theme = DEFAULT_THEME
    return _result(config.model_copy(update={"theme": theme}), advisories)


# ---------------------------------------------------------------------------
# Event dispatch
# ---------------------------------------------------------------------------

def apply_event(
    config: ChartConfig,
    event: ChartEvent,
    classification: FieldClassification,
    fields: Sequence[str],
    palettes: Dict[str, List[str]],
    rows: Optional[Sequence[dict]] = None,
) -> TransitionResult:
    """Route a wire-level ``ChartEvent`` to its transition."""
    kind = event.kind
    value = event.value or None

    try:
        if kind == ChartEventKind.setShape:
            return set_shape(config, ChartShape(value), classification, fields)
        if kind == ChartEventKind.setXField:
            return set_x_field(config, value, classification, fields, rows)
        if kind == ChartEventKind.setSeriesField:
            return set_series_field(config, event.slot, value, classification, fields)
        if kind == ChartEventKind.setAggregation:
            return set_aggregation(config, event.slot, AggregationKind(value), classification, fields)
        if kind == ChartEventKind.setSeriesShape:
            return set_series_shape(config, event.slot, SeriesShape(value))
        if kind == ChartEventKind.setTheme:
            return set_theme(config, value or DEFAULT_THEME, palettes)
    except ValueError:
        return _result(config, [Advisory(
            code="invalid_value",
            message=f"'{event.value}' is not a valid value for {kind.value}.",
            slot=event.slot,
        )])

    return _result(config, [])
