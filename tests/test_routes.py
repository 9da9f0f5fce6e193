# tests/test_routes.py
import pytest
from fastapi.testclient import TestClient

from auction_ingest.api import routes
from auction_ingest.errors import IngestConfigError
from auction_ingest.main import app
from auction_ingest.pipeline import RunResult
from auction_ingest.report import RunReporter
from auction_ingest.schemas import RunReport, RunTotals

AUTH = {"Authorization": "Bearer s3cret"}


def _report(run_id="run_api"):
    return RunReport(
        run_id=run_id, started_at="a", finished_at="b", mode="sample", source="bat",
        dry_run=True, totals=RunTotals(fetched=1),
    )


@pytest.fixture
def client(settings):
    settings = settings.model_copy(update={"cron_secret": "s3cret"})
    app.dependency_overrides[routes.get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_ingest_requires_secret(client):
    assert client.post("/ingest", json={}).status_code == 401
    assert client.post("/ingest", json={}, headers={"Authorization": "Bearer nope"}).status_code == 401


def test_ingest_runs_pipeline(client, monkeypatch, tmp_path):
    seen = {}

    def fake_run(options, settings):
        seen["options"] = options
        return RunResult(report=_report(), report_path=tmp_path / "r.json", rejects_path=tmp_path / "r.jsonl")

    monkeypatch.setattr(routes, "run_ingest", fake_run)
    response = client.post("/ingest", json={"source": "all", "mode": "sample", "dry_run": True, "from": "x"},
                           headers=AUTH)
    assert response.status_code == 200
    body = response.json()
    assert body["report"]["run_id"] == "run_api"
    assert body["report_path"].endswith("r.json")
    assert seen["options"].source == "all"
    assert seen["options"].from_ == "x"


def test_ingest_config_error_is_400(client, monkeypatch):
    def fake_run(options, settings):
        raise IngestConfigError("POSTGRES_URL is required")

    monkeypatch.setattr(routes, "run_ingest", fake_run)
    response = client.post("/ingest", json={}, headers=AUTH)
    assert response.status_code == 400
    assert "POSTGRES_URL" in response.json()["detail"]


def test_ingest_failure_is_500(client, monkeypatch):
    def fake_run(options, settings):
        raise RuntimeError("boom")

    monkeypatch.setattr(routes, "run_ingest", fake_run)
    assert client.post("/ingest", json={}, headers=AUTH).status_code == 500


def test_invalid_options_are_422(client):
    assert client.post("/ingest", json={"limit": 0}, headers=AUTH).status_code == 422


def test_get_run(client, settings):
    RunReporter(settings.runs_dir).write("run_api", _report(), [])
    response = client.get("/runs/run_api")
    assert response.status_code == 200
    assert response.json()["totals"]["fetched"] == 1
    assert client.get("/runs/run_unknown").status_code == 404
