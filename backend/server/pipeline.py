"""
Chart pipeline: wires classify → aggregate → describe / export for the two
chart instances that share one dataset.

Every view is recomputed from the dataset and the chart's current config;
nothing derived is cached between calls.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from core.config import get_display_settings
from core.models import (
    ChartConfig,
    ChartEvent,
    Dataset,
    DisplaySettings,
    ExportPayload,
    FieldClassification,
    RenderDescriptor,
    Row,
    TransitionResult,
)
from skills.aggregate import aggregate
from skills.build_series import build_descriptor
from skills.chart_config import apply_event, initial_config, reset_for_dataset
from skills.classify import classify_fields
from skills.export import serialize

logger = logging.getLogger("uvicorn.error")

CHART_INDEXES = (1, 2)


class ChartPipeline:
    """Stateless aggregation + description for a single chart config."""

    def aggregate(self, dataset: Dataset, config: ChartConfig) -> List[Row]:
        return aggregate(
            dataset.rows,
            config.x_field,
            config.slot1,
            config.slot2,
            config.chart_shape,
            fields=dataset.fields,
        )

    def render(
        self,
        dataset: Dataset,
        config: ChartConfig,
        settings: DisplaySettings,
    ) -> Tuple[List[Row], RenderDescriptor]:
        rows = self.aggregate(dataset, config)
        descriptor = build_descriptor(rows, config, settings.palette(config.theme), settings)
        return rows, descriptor

    def export(self, dataset: Dataset, config: ChartConfig, chart_index: int) -> ExportPayload:
        rows = self.aggregate(dataset, config)
        return serialize(rows, config, dataset.identifier, chart_index)


class Workspace:
    """
    One session's dataset, its classification and the two chart configs.

    Replacing or clearing the dataset resets both charts; each chart is then
    driven independently through ``apply``.
    """

    def __init__(self, settings: Optional[DisplaySettings] = None):
        self.settings = settings or get_display_settings()
        self.pipeline = ChartPipeline()
        self.dataset = Dataset()
        self.classification = FieldClassification()
        self.configs: Dict[int, ChartConfig] = {}
        self.clear()

    # -- dataset lifecycle --------------------------------------------------

    def replace_dataset(self, identifier: str, fields: Sequence[str], rows: Sequence[Row]) -> None:
        self.dataset = Dataset(identifier=identifier, fields=list(fields), rows=list(rows))
        self.classification = classify_fields(self.dataset.rows, self.dataset.fields)
        self.configs = {
            i: reset_for_dataset(self.configs.get(i) or initial_config(i, self.settings.theme),
                                 self.classification, self.dataset.fields)
            for i in CHART_INDEXES
        }
        logger.info(
            "Dataset '%s' loaded: %d rows, %d fields",
            identifier, len(self.dataset.rows), len(self.dataset.fields),
        )

    def clear(self) -> None:
        self.dataset = Dataset()
        self.classification = FieldClassification()
        self.configs = {i: initial_config(i, self.settings.theme) for i in CHART_INDEXES}

    # -- charts -------------------------------------------------------------

    def _check_index(self, chart_index: int) -> None:
        if chart_index not in CHART_INDEXES:
            raise KeyError(f"Unknown chart {chart_index}")

    def config(self, chart_index: int) -> ChartConfig:
        self._check_index(chart_index)
        return self.configs[chart_index]

    def apply(self, chart_index: int, event: ChartEvent) -> TransitionResult:
        result = apply_event(
            self.config(chart_index),
            event,
            self.classification,
            self.dataset.fields,
            self.settings.chart_themes,
            rows=self.dataset.rows,
        )
        self.configs[chart_index] = result.config
        return result

    def view(self, chart_index: int) -> RenderDescriptor:
        _, descriptor = self.pipeline.render(self.dataset, self.config(chart_index), self.settings)
        return descriptor

    def export(self, chart_index: int) -> ExportPayload:
        return self.pipeline.export(self.dataset, self.config(chart_index), chart_index)
