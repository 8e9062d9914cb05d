"""
Tests for series descriptors, CSV export and the two-chart workspace.
"""

from datetime import date

import pytest

from core.config import CHART_THEMES
from core.models import (
    AggregationKind,
    ChartConfig,
    ChartEvent,
    ChartEventKind,
    ChartShape,
    DisplaySettings,
    SeriesShape,
    SeriesSlot,
)
from server.pipeline import Workspace
from skills.aggregate import aggregate
from skills.build_series import build_descriptor, series_label
from skills.chart_config import initial_config
from skills.export import NothingToExportError, format_cell, serialize


FIELDS = ["region", "sales", "units", "date"]
OCEAN = CHART_THEMES["ocean"]


@pytest.fixture
def rows():
    return [
        {"region": "North", "sales": "1,200", "units": 3, "date": "2024-03-01"},
        {"region": "South", "sales": "800", "units": 5, "date": "2024-01-01"},
        {"region": "North", "sales": "400", "units": None, "date": "2024-02-01"},
        {"region": None, "sales": "abc", "units": 2, "date": None},
    ]


@pytest.fixture
def settings():
    return DisplaySettings(
        theme="default",
        chart_themes=CHART_THEMES,
        animations_enabled=False,
        data_precision=3,
    )


def bar_config(**update):
    cfg = ChartConfig(chart_shape=ChartShape.bar, x_field="region", slot1=SeriesSlot(field="sales"))
    return cfg.model_copy(update=update)


def rendered(rows, config):
    return aggregate(rows, config.x_field, config.slot1, config.slot2, config.chart_shape)


class TestLabels:

    @pytest.mark.parametrize("slot,index,expected", [
        (SeriesSlot(field="unit_price", aggregation=AggregationKind.average), 1, "unit price (Average)"),
        (SeriesSlot(field="sales", aggregation=AggregationKind.count), 1, "sales (Count (Non-Empty))"),
        (SeriesSlot(field=None, aggregation=AggregationKind.count), 1, "Count"),
        (SeriesSlot(field=None, aggregation=AggregationKind.count), 2, "Count 2"),
        (SeriesSlot(field="v", aggregation=AggregationKind.sdev), 2, "v (Standard Deviation)"),
    ])
    def test_series_label(self, slot, index, expected):
        assert series_label(slot, index) == expected


class TestDescriptor:
    """Render descriptors for each shape family."""

    def test_single_series(self, rows, settings):
        cfg = bar_config()
        desc = build_descriptor(rendered(rows, cfg), cfg, OCEAN, settings)
        assert desc.x_key == "region"
        assert desc.x_label == "region"
        assert len(desc.series) == 1
        series = desc.series[0]
        assert (series.key, series.label, series.axis, series.element, series.color) == (
            "sales", "sales (Sum)", "left", "bar", OCEAN[0],
        )
        assert desc.precision == 3
        assert desc.formatted[0] == {"sales": "1,600.000"}
        assert desc.animations_enabled is False
        assert desc.slice_colors is None

    def test_composed_second_count_series(self, rows, settings):
        cfg = bar_config(
            chart_shape=ChartShape.composed,
            slot1=SeriesSlot(field="sales", series_shape=SeriesShape.area),
            slot2=SeriesSlot(field=None, aggregation=AggregationKind.count, series_shape=SeriesShape.line),
        )
        data = rendered(rows, cfg)
        assert data[0] == {"region": "North", "sales": 1600, "count2": 2}

        desc = build_descriptor(data, cfg, OCEAN, settings)
        assert [(s.key, s.label, s.axis, s.element, s.color) for s in desc.series] == [
            ("sales", "sales (Sum)", "left", "area", OCEAN[0]),
            ("count2", "Count 2", "right", "line", OCEAN[1]),
        ]

    def test_line_uses_chart_shape(self, rows, settings):
        cfg = bar_config(
            chart_shape=ChartShape.line,
            slot2=SeriesSlot(field="units", aggregation=AggregationKind.max, series_shape=SeriesShape.bar),
        )
        desc = build_descriptor(rendered(rows, cfg), cfg, OCEAN, settings)
        assert [s.element for s in desc.series] == ["line", "line"]
        assert desc.series[1].label == "units (Max)"

    def test_pie_slice_colors(self, rows, settings):
        cfg = bar_config(chart_shape=ChartShape.pie, slot1=SeriesSlot(field=None, aggregation=AggregationKind.count))
        desc = build_descriptor(rendered(rows, cfg), cfg, OCEAN, settings)
        assert [s.label for s in desc.series] == ["Count"]
        assert desc.series[0].element == "pie"
        assert [(c.category, c.color) for c in desc.slice_colors] == [
            ("North", OCEAN[0]), ("South", OCEAN[1]),
        ]

    def test_empty_rows_have_no_series(self, settings):
        desc = build_descriptor([], bar_config(), OCEAN, settings)
        assert desc.series == []
        assert desc.data == []


class TestExport:
    """CSV serialization of aggregated rows."""

    def test_basic_export(self, rows):
        cfg = bar_config()
        payload = serialize(rendered(rows, cfg), cfg, "sales data.csv", 1)
        assert payload.filename == "sales_data_csv_chart1_data.csv"
        assert payload.text == "region,sales (Sum)\nNorth,1600\nSouth,800\nN/A,0"
        assert payload.media_type.startswith("text/csv")

    def test_header_matches_descriptor(self, rows, settings):
        cfg = bar_config(slot2=SeriesSlot(field="sales", aggregation=AggregationKind.max))
        data = rendered(rows, cfg)
        desc = build_descriptor(data, cfg, OCEAN, settings)
        header = serialize(data, cfg, "x", 2).text.split("\n")[0]
        assert header == ",".join([desc.x_label] + [s.label for s in desc.series])
        assert header == "region,sales (Sum),sales (Max)"

    def test_series_over_x_field_round_trips(self, rows, settings):
        cfg = bar_config(slot1=SeriesSlot(field="region", aggregation=AggregationKind.count))
        data = rendered(rows, cfg)
        desc = build_descriptor(data, cfg, OCEAN, settings)
        assert [s.key for s in desc.series] == ["region-value"]
        text = serialize(data, cfg, "x", 1).text
        assert text.split("\n")[0] == ",".join([desc.x_label] + [s.label for s in desc.series])
        assert text == "region,region (Count (Non-Empty))\nNorth,2\nSouth,1\nN/A,0"

    def test_quoting(self):
        cfg = ChartConfig(
            chart_shape=ChartShape.bar,
            x_field="city",
            slot1=SeriesSlot(field=None, aggregation=AggregationKind.count),
        )
        data = [{"city": "Paris, FR", "count": 2}, {"city": 'Say "hi"', "count": 1}]
        text = serialize(data, cfg, "cities", 1).text
        assert text == 'city,Count\n"Paris, FR",2\n"Say ""hi""",1'

    @pytest.mark.parametrize("value,expected", [
        (None, ""),
        (3.0, "3"),
        (2.5, "2.5"),
        (date(2024, 5, 17), "2024-05-17"),
        ("text", "text"),
    ])
    def test_format_cell(self, value, expected):
        assert format_cell(value) == expected

    def test_nothing_to_export(self):
        with pytest.raises(NothingToExportError):
            serialize([], bar_config(), "empty", 1)
        with pytest.raises(NothingToExportError):
            serialize([{"a": 1}], bar_config(x_field=None), "empty", 1)


class TestWorkspace:
    """Two independent charts over one dataset."""

    @pytest.fixture
    def workspace(self, rows, settings):
        ws = Workspace(settings=settings)
        ws.replace_dataset("sales.csv", FIELDS, rows)
        return ws

    def test_replace_dataset_resets_charts(self, workspace):
        first, second = workspace.config(1), workspace.config(2)
        assert first.chart_shape == ChartShape.bar
        assert second.chart_shape == ChartShape.line
        assert first.x_field == second.x_field == "region"
        assert first.slot1.field == "sales"
        assert workspace.classification.numeric == ["sales", "units"]

    def test_charts_are_independent(self, workspace):
        workspace.apply(1, ChartEvent(kind=ChartEventKind.setShape, value="pie"))
        assert workspace.config(1).chart_shape == ChartShape.pie
        assert workspace.config(2).chart_shape == ChartShape.line
        assert workspace.view(2).series[0].element == "line"

    def test_view_and_export(self, workspace):
        desc = workspace.view(1)
        assert desc.data[0] == {"region": "North", "sales": 1600}
        payload = workspace.export(1)
        assert payload.filename == "sales_csv_chart1_data.csv"
        assert payload.text.startswith("region,sales (Sum)\nNorth,1600")

    def test_unset_series_field_keeps_chart_drawn(self, workspace):
        result = workspace.apply(1, ChartEvent(kind=ChartEventKind.setSeriesField, slot=1, value=None))
        assert [a.code for a in result.advisories] == ["y_field_defaulted"]
        desc = workspace.view(1)
        assert desc.data[0] == {"region": "North", "sales": 1600}
        assert [s.key for s in desc.series] == ["sales"]

    def test_x_field_as_series_exports_both_columns(self, workspace):
        workspace.apply(1, ChartEvent(kind=ChartEventKind.setSeriesField, slot=1, value="region"))
        desc = workspace.view(1)
        assert desc.data[0] == {"region": "North", "region-value": 2}
        assert workspace.export(1).text.startswith("region,region (Count (Non-Empty))\nNorth,2")

    def test_clear(self, workspace):
        workspace.clear()
        assert workspace.config(1) == initial_config(1, "default")
        assert workspace.dataset.is_empty
        with pytest.raises(NothingToExportError):
            workspace.export(1)

    def test_unknown_chart(self, workspace):
        with pytest.raises(KeyError):
            workspace.view(3)
