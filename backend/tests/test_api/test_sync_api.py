"""Tests for the Playbook Sync run history API."""

import os
import sys
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from playbook_sync.api.v1 import sync as sync_api


@pytest.fixture
def client(ledger, store):
    """Test app with just the sync router, wired to the in-memory database."""
    sync_api.set_ledger(ledger)
    sync_api.set_store(store)
    sync_api.set_scheduler(None)
    test_app = FastAPI()
    test_app.include_router(sync_api.router)
    yield TestClient(test_app)
    sync_api.set_ledger(None)
    sync_api.set_store(None)
    sync_api.set_scheduler(None)


def _finished_run(ledger, status="partial"):
    run = ledger.start_run(datetime(2026, 10, 11, tzinfo=timezone.utc))
    ledger.finalize_run(
        run.id,
        status,
        entries_processed=3,
        entries_enriched=2,
        docs_enriched=["email-module/subject-lines.md"],
        error_log="classify:e1: overloaded\ncommit: 409 conflict",
        llm_cost=0.012,
    )
    return run


def test_list_runs_empty(client):
    resp = client.get("/api/v1/playbook-sync/runs")
    assert resp.status_code == 200
    assert resp.json() == []


def test_list_and_get_run(client, ledger):
    run = _finished_run(ledger)

    runs = client.get("/api/v1/playbook-sync/runs").json()
    assert [r["id"] for r in runs] == [run.id]

    data = client.get(f"/api/v1/playbook-sync/runs/{run.id}").json()
    assert data["status"] == "partial"
    assert data["entries_enriched"] == 2
    assert data["docs_enriched"] == ["email-module/subject-lines.md"]
    assert data["errors"] == ["classify:e1: overloaded", "commit: 409 conflict"]
    assert data["llm_cost"] == 0.012
    assert data["finished_at"] is not None


def test_list_runs_filter_by_status(client, ledger):
    _finished_run(ledger, status="partial")
    ok = _finished_run(ledger, status="success")
    runs = client.get("/api/v1/playbook-sync/runs", params={"status": "success"}).json()
    assert [r["id"] for r in runs] == [ok.id]


def test_list_runs_rejects_unknown_status(client):
    assert client.get("/api/v1/playbook-sync/runs", params={"status": "done"}).status_code == 422
    assert client.get("/api/v1/playbook-sync/runs", params={"limit": 0}).status_code == 422


def test_get_run_not_found(client):
    assert client.get("/api/v1/playbook-sync/runs/nope").status_code == 404
    assert client.get("/api/v1/playbook-sync/runs/nope/matches").status_code == 404


def test_run_matches(client, ledger, store, add_entry):
    run = _finished_run(ledger)
    first = add_entry("use a 2-line subject", category="tip")
    second = add_entry("podcast idea")
    store.record_match(first.id, run.id, "enrich", "email-module/subject-lines.md", 0.81, "adds detail")
    store.record_match(second.id, run.id, "orphaned", None, 0.2, "Best match score 0.200 below threshold 0.75")

    matches = client.get(f"/api/v1/playbook-sync/runs/{run.id}/matches").json()
    assert [m["knowledge_entry_id"] for m in matches] == [first.id, second.id]

    orphaned = client.get(f"/api/v1/playbook-sync/runs/{run.id}/matches", params={"action": "orphaned"}).json()
    assert len(orphaned) == 1
    assert orphaned[0]["document_path"] is None


def test_scheduler_status_asyncio(client):
    scheduler = MagicMock()
    scheduler.get_status.return_value = {"enabled": True, "in_progress": False}
    sync_api.set_scheduler(scheduler)
    assert client.get("/api/v1/playbook-sync/scheduler").json() == {
        "mode": "asyncio", "enabled": True, "in_progress": False,
    }


def test_scheduler_status_celery(client):
    with patch.object(sync_api, "is_celery_enabled", return_value=True):
        data = client.get("/api/v1/playbook-sync/scheduler").json()
    assert data == {"mode": "celery", "schedule": "Sunday 00:00 UTC"}


def test_scheduler_status_disabled(client):
    with patch.object(sync_api, "is_celery_enabled", return_value=False):
        assert client.get("/api/v1/playbook-sync/scheduler").json() == {"mode": "disabled"}
