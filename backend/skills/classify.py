"""
Field classification skill.

Labels each field of an unlabelled dataset as numeric-capable or categorical
from a representative sample value, and derives the axis choices each chart
shape can offer.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from core.models import ChartShape, FieldClassification, Row, SINGLE_SERIES_SHAPES
from core.utils import first_present, is_blank, is_native_number, parse_number

logger = logging.getLogger("uvicorn.error")

# Fields with at most this many distinct values are categorical
CATEGORICAL_MAX_DISTINCT = 50


# ---------------------------------------------------------------------------
# Sampling
# ---------------------------------------------------------------------------

def sample_value(rows: Sequence[Row], field: str) -> Any:
    """First value for *field* that is non-null and non-empty after trimming."""
    for row in rows:
        value = row.get(field)
        if not is_blank(value):
            return value
    return None


def _distinct_count(rows: Sequence[Row], field: str) -> int:
    seen = set()
    for row in rows:
        value = row.get(field)
        try:
            seen.add(value)
        except TypeError:
            seen.add(repr(value))
    return len(seen)


def is_numeric_sample(value: Any) -> bool:
    if value is None:
        return False
    if is_native_number(value):
        return parse_number(value) is not None
    return isinstance(value, str) and parse_number(value) is not None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def classify_fields(rows: Sequence[Row], fields: Sequence[str]) -> FieldClassification:
    """
    Split *fields* into numeric and categorical sets.

    A field is numeric when its sampled value is a number or a string that
    parses fully as one (thousands separators allowed). Non-numeric fields are
    categorical when they have at most 50 distinct values or their first
    present value is a string. A field can end up in neither set.
    """
    if not rows:
        return FieldClassification()

    numeric: List[str] = []
    categorical: List[str] = []

    for field in fields:
        if is_numeric_sample(sample_value(rows, field)):
            numeric.append(field)
            continue

        typed_sample = first_present([row.get(field) for row in rows])
        if _distinct_count(rows, field) <= CATEGORICAL_MAX_DISTINCT or isinstance(typed_sample, str):
            categorical.append(field)

    logger.info(
        "Fields classified: numeric=%s categorical=%s opaque=%s",
        numeric, categorical,
        [f for f in fields if f not in numeric and f not in categorical],
    )
    return FieldClassification(numeric=numeric, categorical=categorical)


def x_axis_options(
    shape: ChartShape,
    classification: FieldClassification,
    fields: Sequence[str],
) -> List[str]:
    """Fields offered for the X axis; pie and radar prefer categorical fields."""
    if shape in SINGLE_SERIES_SHAPES:
        if classification.categorical:
            return list(classification.categorical)
        return [f for f in fields if not classification.is_numeric(f)]
    return list(fields)


def y_field_options(
    shape: ChartShape,
    classification: FieldClassification,
    fields: Sequence[str],
) -> List[str]:
    """Fields offered for a series slot; scatter plots need numeric fields."""
    if shape == ChartShape.scatter:
        return list(classification.numeric)
    return list(fields)


def default_x_field(
    shape: ChartShape,
    classification: FieldClassification,
    fields: Sequence[str],
) -> Optional[str]:
    options = x_axis_options(shape, classification, fields)
    for field in classification.categorical:
        if field in options:
            return field
    if options:
        return options[0]
    return fields[0] if fields else None


def default_y_field(
    classification: FieldClassification,
    fields: Sequence[str],
    x_field: Optional[str],
    *,
    numeric_only: bool = False,
) -> Optional[str]:
    for field in classification.numeric:
        if field != x_field:
            return field
    if numeric_only:
        return None
    return next((f for f in fields if f != x_field), None)


def distinct_x_count(rows: Sequence[Row], x_field: Optional[str]) -> int:
    if not x_field:
        return 0
    return _distinct_count(rows, x_field)


def field_overview(rows: Sequence[Row], fields: Sequence[str]) -> Dict[str, Any]:
    """Classification plus X options per shape, for the HTTP layer."""
    classification = classify_fields(rows, fields)
    return {
        "fields": list(fields),
        "numeric": classification.numeric,
        "categorical": classification.categorical,
        "x_options": {
            shape.value: x_axis_options(shape, classification, fields)
            for shape in ChartShape
        },
    }
