"""
Tests for the HTTP surface (upload, charts, export, insights).
"""

import uuid
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

import skills.narrate as narrate
from app.llm import LLMError
from main import app


CSV = b"region,sales,units\nNorth,1200,3\nSouth,800,5\nNorth,400,\n"


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def headers():
    return {"X-Session-Id": f"test-{uuid.uuid4()}"}


@pytest.fixture
def uploaded(client, headers):
    resp = client.post("/upload", headers=headers, files={"file": ("sales.csv", CSV, "text/csv")})
    assert resp.status_code == 200
    return resp.json()


class TestUpload:

    def test_upload_classifies_fields(self, uploaded):
        assert uploaded["ok"] is True
        assert uploaded["fields"] == ["region", "sales", "units"]
        assert uploaded["rows"] == 3
        assert uploaded["numeric"] == ["sales", "units"]
        assert uploaded["categorical"] == ["region"]

    def test_missing_session(self, client):
        resp = client.post("/upload", files={"file": ("sales.csv", CSV, "text/csv")})
        assert resp.status_code == 400

    def test_rejects_other_file_types(self, client, headers):
        resp = client.post("/upload", headers=headers, files={"file": ("data.xlsx", b"PK", "application/octet-stream")})
        assert resp.status_code == 400

    def test_fields_overview(self, client, headers, uploaded):
        body = client.get("/api/fields", headers=headers).json()
        assert body["numeric"] == ["sales", "units"]
        assert body["x_options"]["pie"] == ["region"]

    def test_fields_report_latest_upload(self, client, headers, uploaded):
        upload = client.get("/api/fields", headers=headers).json()["upload"]
        assert upload["identifier"] == "sales.csv"
        assert (upload["rows"], upload["columns"]) == (3, 3)
        assert datetime.fromisoformat(upload["created_at"]).utcoffset() == timedelta(0)

        client.delete("/api/dataset", headers=headers)
        assert client.get("/api/fields", headers=headers).json()["upload"] is None


class TestCharts:

    def test_default_chart(self, client, headers, uploaded):
        body = client.get("/api/charts/1", headers=headers).json()
        assert body["config"]["x_field"] == "region"
        desc = body["descriptor"]
        assert desc["series"][0]["key"] == "sales"
        assert desc["data"] == [{"region": "North", "sales": 1600}, {"region": "South", "sales": 800}]

    def test_event_returns_advisories(self, client, headers, uploaded):
        resp = client.post(
            "/api/charts/1/events",
            headers=headers,
            json={"kind": "setSeriesField", "slot": 1, "value": "region"},
        )
        body = resp.json()
        assert resp.status_code == 200
        assert body["config"]["slot1"]["aggregation"] == "count"
        assert [a["code"] for a in body["advisories"]] == ["aggregation_switched"]

    def test_aggregation_event(self, client, headers, uploaded):
        body = client.post(
            "/api/charts/2/events",
            headers=headers,
            json={"kind": "setAggregation", "slot": 1, "value": "average"},
        ).json()
        assert body["descriptor"]["data"] == [{"region": "North", "sales": 800}, {"region": "South", "sales": 800}]
        assert body["descriptor"]["series"][0]["label"] == "sales (Average)"

    def test_bad_event_is_rejected(self, client, headers, uploaded):
        resp = client.post("/api/charts/1/events", headers=headers, json={"kind": "explode"})
        assert resp.status_code == 422

    def test_unknown_chart(self, client, headers, uploaded):
        assert client.get("/api/charts/3", headers=headers).status_code == 400


class TestExport:

    def test_export_csv(self, client, headers, uploaded):
        resp = client.get("/api/charts/1/export", headers=headers)
        assert resp.status_code == 200
        assert resp.text == "region,sales (Sum)\nNorth,1600\nSouth,800"
        assert "sales_csv_chart1_data.csv" in resp.headers["content-disposition"]

    def test_nothing_to_export_after_clear(self, client, headers, uploaded):
        assert client.delete("/api/dataset", headers=headers).json() == {"ok": True}
        resp = client.get("/api/charts/1/export", headers=headers)
        assert resp.status_code == 404


class TestInsights:

    def test_narrative_needs_dataset(self, client, headers):
        assert client.post("/api/insights/narrative", headers=headers, json={}).status_code == 400

    def test_narrative_fallback(self, client, headers, uploaded, monkeypatch):
        def boom(*args, **kwargs):
            raise LLMError("offline")

        monkeypatch.setattr(narrate, "chat_json", boom)
        body = client.post("/api/insights/narrative", headers=headers, json={}).json()
        assert body["used_fallback"] is True
        assert 'The dataset from "sales.csv" contains 3 records.' in body["narrative_summary"]

    def test_forecast_unknown_field(self, client, headers, uploaded):
        resp = client.post(
            "/api/insights/forecast",
            headers=headers,
            json={"date_field": "when", "value_field": "sales"},
        )
        assert resp.status_code == 400

    def test_forecast_provider_failure(self, client, headers, uploaded, monkeypatch):
        def boom(*args, **kwargs):
            raise LLMError("offline")

        monkeypatch.setattr(narrate, "chat_json", boom)
        resp = client.post(
            "/api/insights/forecast",
            headers=headers,
            json={"date_field": "region", "value_field": "sales", "horizon": "yearly"},
        )
        assert resp.status_code == 502
