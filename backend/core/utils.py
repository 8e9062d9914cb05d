"""
Shared value helpers for classification, aggregation and export.

Pure functions without I/O.
"""

from __future__ import annotations

import math
import numbers
import re
from datetime import date, datetime
from functools import cmp_to_key
from typing import Any, Callable, List, Optional, Sequence

import numpy as np
import pandas as pd

MISSING_X_LABEL = "N/A"


# ---------------------------------------------------------------------------
# Blank / scalar helpers
# ---------------------------------------------------------------------------

def is_missing(value: Any) -> bool:
    """None, NaN and NaT count as missing; everything else is a value."""
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if value is pd.NaT:
        return True
    return False


def is_blank(value: Any) -> bool:
    """Missing, or empty after trimming its string form."""
    return is_missing(value) or str(value).strip() == ""


def is_native_number(value: Any) -> bool:
    return isinstance(value, numbers.Number) and not isinstance(value, (bool, np.bool_))


def stringify(value: Any) -> str:
    """String form of a scalar; integral floats drop their trailing ``.0``."""
    if isinstance(value, (float, np.floating)) and math.isfinite(value) and float(value).is_integer():
        return str(int(value))
    if isinstance(value, (np.integer,)):
        return str(int(value))
    return str(value)


def group_key(value: Any) -> str:
    """X-axis group key; missing values share the ``N/A`` group."""
    if is_missing(value):
        return MISSING_X_LABEL
    return stringify(value)


def humanize_field(name: str) -> str:
    return name.replace("_", " ")


def sanitize_identifier(identifier: str) -> str:
    return re.sub(r"[^a-z0-9]", "_", identifier, flags=re.IGNORECASE)


# ---------------------------------------------------------------------------
# DataFrame safety
# ---------------------------------------------------------------------------

def df_json_safe(df: pd.DataFrame) -> pd.DataFrame:
    """Replace +/-inf -> NaN, then NaN -> None so JSON serialization works."""
    if df.empty:
        return df
    tmp = df.replace([np.inf, -np.inf], np.nan)
    tmp = tmp.astype(object)
    return tmp.where(pd.notna(tmp), None)


def df_to_records_safe(df: pd.DataFrame) -> list[dict]:
    """Convert DataFrame to list of dicts with JSON-safe values."""
    return df_json_safe(df).to_dict(orient="records")


def rows_frame(rows: Sequence[dict], fields: Sequence[str]) -> pd.DataFrame:
    """Object-typed frame over raw rows so ints, strings and None survive untouched."""
    frame = pd.DataFrame(list(rows), columns=list(fields), dtype=object)
    return frame.where(pd.notna(frame), None)


# ---------------------------------------------------------------------------
# Strict numeric parsing (thousands separators only)
# ---------------------------------------------------------------------------

_NUMBER_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")


def parse_number(value: Any) -> Optional[float]:
    """
    Parse a scalar as a finite number.

    Native numbers pass through; strings must parse fully once thousands
    separator commas are removed (``"1,234"`` -> 1234.0, ``"12abc"`` -> None).
    """
    if is_missing(value) or isinstance(value, (bool, np.bool_)):
        return None
    if is_native_number(value):
        num = float(value)
        return num if math.isfinite(num) else None
    if not isinstance(value, str):
        return None
    text = value.strip().replace(",", "")
    if not _NUMBER_RE.match(text):
        return None
    num = float(text)
    return num if math.isfinite(num) else None


def numeric_series(series: pd.Series) -> pd.Series:
    """Coerce a Series with the strict parser; unparsable entries become NaN."""
    if pd.api.types.is_numeric_dtype(series) and not pd.api.types.is_bool_dtype(series):
        return pd.to_numeric(series, errors="coerce")
    converted = series.map(parse_number)
    return pd.to_numeric(converted, errors="coerce")


def format_number(value: Any) -> Any:
    """Collapse integral floats to int so counts and sums read naturally."""
    if isinstance(value, (float, np.floating)) and math.isfinite(value) and float(value).is_integer():
        return int(value)
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, np.floating):
        return float(value)
    return value


def format_value(value: Any, precision: int = 2) -> str:
    """Display formatting for tooltips and labels (fixed decimals, grouped thousands)."""
    if is_native_number(value):
        return f"{float(value):,.{precision}f}"
    return "" if value is None else str(value)


# ---------------------------------------------------------------------------
# Date parsing
# ---------------------------------------------------------------------------

_PURE_NUMBER_RE = re.compile(r"^[+-]?\d+(?:\.\d+)?$")
_YEAR_RE = re.compile(r"^\d{4}$")


def parse_date(value: Any) -> Optional[pd.Timestamp]:
    """
    Parse a scalar as a timestamp, or return None.

    Bare numbers are not dates, except four-digit year strings. Any parser
    error or NaT result means "not date-like".
    """
    if is_blank(value) or isinstance(value, (bool, np.bool_)):
        return None
    try:
        if isinstance(value, (datetime, date)):
            ts = pd.Timestamp(value)
        elif isinstance(value, str):
            text = value.strip()
            if _PURE_NUMBER_RE.match(text) and not _YEAR_RE.match(text):
                return None
            ts = pd.to_datetime(text, errors="coerce")
        else:
            return None
    except (ValueError, TypeError, OverflowError):
        return None
    if ts is None or pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_convert(None)
    return ts


def first_present(values: Sequence[Any]) -> Any:
    """First value that is not None/NaN."""
    for v in values:
        if not is_missing(v):
            return v
    return None


def stable_sort_by(items: List[Any], key: Callable[[Any], Optional[float]]) -> List[Any]:
    """
    Stable ascending sort where comparisons involving an unparsable key
    (None) count as ties, so such items keep their relative order.
    """
    def compare(a: Any, b: Any) -> int:
        ka, kb = key(a), key(b)
        if ka is None or kb is None:
            return 0
        return -1 if ka < kb else (1 if ka > kb else 0)

    return sorted(items, key=cmp_to_key(compare))


def date_sort_key(value: Any) -> Optional[float]:
    ts = parse_date(value)
    return None if ts is None else float(ts.value)
