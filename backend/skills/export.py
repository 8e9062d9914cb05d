"""
Export skill.

Serializes a chart's aggregated rows into delimited text with the same
column labels the renderer shows, plus a suggested filename.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, List, Sequence

import pandas as pd

from core.models import ChartConfig, ExportPayload, Row
from core.utils import is_missing, sanitize_identifier, stringify
from skills.aggregate import effective_keys
from skills.build_series import active_slots, series_label, x_label

logger = logging.getLogger("uvicorn.error")


class NothingToExportError(ValueError):
    """Raised when a chart has no aggregated rows or no X field."""


def export_filename(dataset_identifier: str, chart_index: int) -> str:
    return f"{sanitize_identifier(dataset_identifier)}_chart{chart_index}_data.csv"


def format_cell(value: Any) -> str:
    if is_missing(value):
        return ""
    if isinstance(value, (datetime, date, pd.Timestamp)):
        return value.strftime("%Y-%m-%d")
    return stringify(value)


def serialize(
    rows: Sequence[Row],
    config: ChartConfig,
    dataset_identifier: str,
    chart_index: int,
) -> ExportPayload:
    """Header row of labels, then one line per aggregated row; no trailing newline."""
    if not rows or not config.x_field:
        raise NothingToExportError(f"No data to export for Chart {chart_index}.")

    slot2 = config.slot2 if config.slot2_active else None
    keys = [k for k in effective_keys(config.slot1, slot2, config.x_field) if k is not None]

    columns: List[str] = [config.x_field]
    headers: List[str] = [x_label(config)]
    for index, slot in enumerate(active_slots(config), start=1):
        columns.append(keys[index - 1])
        headers.append(series_label(slot, index))

    body = [[format_cell(row.get(col)) for col in columns] for row in rows]
    frame = pd.DataFrame(body, columns=headers, dtype=object)
    text = frame.to_csv(index=False, lineterminator="\n").rstrip("\n")

    filename = export_filename(dataset_identifier, chart_index)
    logger.info("Exported chart %d: %s (%d rows)", chart_index, filename, len(rows))
    return ExportPayload(filename=filename, text=text)
