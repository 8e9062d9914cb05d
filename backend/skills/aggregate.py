"""
Aggregation skill.

Groups raw rows by the X-axis value and reduces each configured series slot
with one of the seven aggregation kinds. Output rows are render-ready:

- one row per distinct stringified X value, in discovery order
  (``"N/A"`` collects rows whose X value is missing);
- the X field maps to the group key, each active slot's effective key maps to
  its aggregate.

Rows for bar/line/area/composed charts are re-ordered by date (or by number)
when the X field holds date-like (or numeric) values.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from core.models import (
    AggregationKind,
    ChartShape,
    ORDERED_X_SHAPES,
    Row,
    SeriesSlot,
    SINGLE_SERIES_SHAPES,
    slot2_is_active,
)
from core.utils import (
    date_sort_key,
    first_present,
    format_number,
    group_key,
    is_blank,
    is_native_number,
    numeric_series,
    parse_date,
    parse_number,
    rows_frame,
    stable_sort_by,
)

logger = logging.getLogger("uvicorn.error")

COUNT_KEY = "count"
COUNT2_KEY = "count2"
SHARED_FIELD_SUFFIX = "-agg2"
X_FIELD_SUFFIX = "-value"


# ---------------------------------------------------------------------------
# Effective data keys
# ---------------------------------------------------------------------------

def _clear_of_x(key: str, x_field: Optional[str]) -> str:
    """A series key never shadows the X key in the same row."""
    if x_field is not None and key == x_field:
        return f"{key}{X_FIELD_SUFFIX}"
    return key


def slot1_key(slot1: SeriesSlot, x_field: Optional[str] = None) -> str:
    if slot1.field:
        key = slot1.field
    else:
        key = COUNT_KEY if slot1.aggregation == AggregationKind.count else "value1"
    return _clear_of_x(key, x_field)


def slot2_key(slot1: SeriesSlot, slot2: SeriesSlot, x_field: Optional[str] = None) -> str:
    """Slot 2 key; a field shared with slot 1 under another aggregation gets a suffix."""
    if (
        slot1.field
        and slot2.field
        and slot1.field == slot2.field
        and slot1.aggregation != slot2.aggregation
    ):
        return f"{slot2.field}{SHARED_FIELD_SUFFIX}"
    if slot2.field:
        key = slot2.field
    else:
        key = COUNT2_KEY if slot2.aggregation == AggregationKind.count else "value2"
    return _clear_of_x(key, x_field)


def effective_keys(
    slot1: SeriesSlot,
    slot2: Optional[SeriesSlot],
    x_field: Optional[str] = None,
) -> Tuple[str, Optional[str]]:
    return (
        slot1_key(slot1, x_field),
        slot2_key(slot1, slot2, x_field) if slot2 is not None else None,
    )


# ---------------------------------------------------------------------------
# Reducers
# ---------------------------------------------------------------------------

def _distinct_non_blank(values: pd.Series) -> int:
    seen = set()
    for v in values:
        if is_blank(v):
            continue
        try:
            seen.add(v)
        except TypeError:
            seen.add(repr(v))
    return len(seen)


def sample_std(numeric: pd.Series) -> float:
    """Sample standard deviation (n-1); 0 below two values, variance clamped at 0."""
    if len(numeric) < 2:
        return 0.0
    mean = float(numeric.mean())
    variance = float(((numeric - mean) ** 2).sum()) / (len(numeric) - 1)
    return math.sqrt(max(0.0, variance))


def aggregate_values(values: pd.Series, kind: AggregationKind) -> Any:
    """Reduce one group's raw values for a slot. Never raises on bad input."""
    if kind == AggregationKind.count:
        return int(sum(0 if is_blank(v) else 1 for v in values))
    if kind == AggregationKind.uniqueCount:
        return _distinct_non_blank(values)

    numeric = numeric_series(values).dropna()
    if numeric.empty:
        return 0

    if kind == AggregationKind.sum:
        result = numeric.sum()
    elif kind == AggregationKind.average:
        result = numeric.mean()
    elif kind == AggregationKind.min:
        result = numeric.min()
    elif kind == AggregationKind.max:
        result = numeric.max()
    elif kind == AggregationKind.sdev:
        result = sample_std(numeric)
    else:
        return 0
    return format_number(float(result))


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------

def order_rows(
    result: List[Row],
    rows: Sequence[Row],
    x_field: str,
    chart_shape: ChartShape,
) -> List[Row]:
    """Sort by date when the X sample is date-like, else by number when it is numeric."""
    if chart_shape not in ORDERED_X_SHAPES or len(result) < 2:
        return result

    sample = first_present([row.get(x_field) for row in rows])
    if sample is None:
        return result
    if parse_date(sample) is not None:
        return stable_sort_by(result, lambda r: date_sort_key(r.get(x_field)))
    if is_native_number(sample):
        return stable_sort_by(result, lambda r: parse_number(r.get(x_field)))
    return result


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def count_x_values(rows: Sequence[Row], x_field: str) -> List[Row]:
    """One row per distinct non-empty X value with its occurrence count."""
    counts: Dict[str, int] = {}
    for row in rows:
        value = row.get(x_field)
        if is_blank(value):
            continue
        key = group_key(value)
        counts[key] = counts.get(key, 0) + 1
    count_key = _clear_of_x(COUNT_KEY, x_field)
    return [{x_field: name, count_key: n} for name, n in counts.items()]


def aggregate(
    rows: Sequence[Row],
    x_field: Optional[str],
    slot1: SeriesSlot,
    slot2: Optional[SeriesSlot] = None,
    chart_shape: ChartShape = ChartShape.bar,
    fields: Optional[Sequence[str]] = None,
) -> List[Row]:
    """
    Group *rows* by *x_field* and aggregate each active slot.

    Returns an empty list rather than fabricating values when the
    configuration cannot produce a series.
    """
    if not x_field or not rows:
        return []
    if fields is not None and x_field not in fields:
        return []

    use_slot2 = slot2_is_active(slot2, chart_shape)

    if slot1.field is None:
        if slot1.aggregation != AggregationKind.count or chart_shape == ChartShape.scatter:
            logger.debug("No series to aggregate: shape=%s slot1=%s", chart_shape.value, slot1)
            return []
        pure_count = chart_shape in SINGLE_SERIES_SHAPES or (
            chart_shape == ChartShape.composed and not (use_slot2 and slot2.field)
        )
        if pure_count:
            return count_x_values(rows, x_field)

    key1, key2 = effective_keys(slot1, slot2 if use_slot2 else None, x_field)

    columns = [x_field]
    for slot in (slot1, slot2 if use_slot2 else None):
        if slot is not None and slot.field and slot.field not in columns:
            columns.append(slot.field)
    frame = rows_frame(rows, columns)
    keys = frame[x_field].map(group_key)

    result: List[Row] = []
    for name, group in frame.groupby(keys, sort=False):
        aggregated: Row = {x_field: name}
        values1 = group[slot1.field] if slot1.field else group[x_field]
        aggregated[key1] = aggregate_values(values1, slot1.aggregation)
        if use_slot2:
            values2 = group[slot2.field] if slot2.field else group[x_field]
            aggregated[key2] = aggregate_values(values2, slot2.aggregation)
        result.append(aggregated)

    return order_rows(result, rows, x_field, chart_shape)
