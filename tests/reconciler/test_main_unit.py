"""Unit tests for the FastAPI webhook service."""

import asyncio

import pytest
from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry

from src.reconciler.config import ReconcilerSettings
from src.reconciler.main import _redact_secret, create_app
from src.reconciler.metrics import WebhookMetrics
from src.reconciler.records.store import InMemoryRecordStore


ISSUE_CREATED = {
    "webhookEvent": "jira:issue_created",
    "issue": {
        "key": "ENG-1",
        "fields": {"summary": "Fix login", "project": {"id": "101"}},
    },
}

PROJECT_CREATED = {
    "webhookEvent": "project_created",
    "project": {"id": 101, "key": "ENG", "name": "Engineering"},
}


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def client(store: InMemoryRecordStore):
    app = create_app(
        settings=ReconcilerSettings(),
        store=store,
        metrics=WebhookMetrics(registry=CollectorRegistry()),
    )
    with TestClient(app) as test_client:
        yield test_client


class TestWebhookEndpoint:
    def test_processes_webhook(self, client, store):
        response = client.post("/webhook/jira", json=PROJECT_CREATED)

        assert response.status_code == 200
        assert response.json() == {
            "status": "success",
            "message": "Webhook processed successfully",
        }
        assert store.writes[0].entity == "project"

    def test_type_token_is_lower_cased(self, client, store):
        response = client.post("/webhook/JIRA/cloud", json=ISSUE_CREATED)

        assert response.json()["status"] == "success"
        assert len(store.writes) == 1

    def test_project_link_round_trip(self, client, store):
        client.post("/webhook/jira", json=PROJECT_CREATED)
        client.post("/webhook/jira", json=ISSUE_CREATED)

        project = asyncio.run(store.get_project("101"))
        issue = asyncio.run(store.get_issue("ENG-1"))
        assert issue.project_id == project.id

    def test_unsupported_type_returns_error_body_with_http_200(self, client, store):
        response = client.post("/webhook/github", json=ISSUE_CREATED)

        assert response.status_code == 200
        assert response.json()["status"] == "error"
        assert "github" in response.json()["message"]
        assert store.writes == []

    def test_empty_type_token_is_unsupported(self, client, store):
        response = client.post("/webhook/", json=ISSUE_CREATED)

        assert response.status_code == 200
        assert response.json()["status"] == "error"
        assert store.writes == []

    def test_bare_webhook_path_is_unsupported(self, client, store):
        response = client.post("/webhook", json=ISSUE_CREATED)

        assert response.status_code == 200
        assert response.json() == {
            "status": "error",
            "message": "Unsupported webhook type: ''",
        }
        assert store.writes == []

    def test_malformed_body_returns_error_body(self, client):
        response = client.post(
            "/webhook/jira",
            content=b"not json",
            headers={"content-type": "application/json"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "error"


class TestProbes:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}

    def test_ready(self, client):
        body = client.get("/ready").json()

        assert body["status"] == "ready"
        assert body["dependencies"] == {"store": "healthy"}

    def test_metrics(self, client):
        client.post("/webhook/jira", json=PROJECT_CREATED)

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "reconciler_webhooks_total" in response.text


class TestRedactSecret:
    def test_short_value_is_fully_redacted(self):
        assert _redact_secret("abc") == "***"

    def test_long_value_keeps_prefix(self):
        assert _redact_secret("secret-token") == "secr********"
