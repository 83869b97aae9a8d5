"""Unit tests for webhook type resolution, dispatch and the response boundary."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from prometheus_client import CollectorRegistry

from src.reconciler.errors import MissingDiscriminatorError, UnsupportedWebhookTypeError
from src.reconciler.metrics import WebhookMetrics
from src.reconciler.records.reconcile import Reconciler
from src.reconciler.records.store import InMemoryRecordStore
from src.reconciler.webhook.handler import SUCCESS_MESSAGE, handle_webhook
from src.reconciler.webhook.models import WebhookRequest, WebhookStatus
from src.reconciler.webhook.processor import JiraWebhookProcessor, WebhookProcessor
from src.reconciler.webhook.registry import (
    WebhookTypeRegistry,
    create_webhook_registry,
    extract_webhook_type,
)


def run_async(coro):
    return asyncio.run(coro)


def _request(document) -> WebhookRequest:
    return WebhookRequest(body=json.dumps(document).encode("utf-8"))


def _issue_created(key: str = "ENG-1") -> WebhookRequest:
    return _request(
        {
            "webhookEvent": "jira:issue_created",
            "issue": {"key": key, "fields": {"summary": "Fix login"}},
        }
    )


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def registry(store: InMemoryRecordStore) -> WebhookTypeRegistry:
    return create_webhook_registry(Reconciler(store))


class TestExtractWebhookType:
    @pytest.mark.parametrize(
        "path,expected",
        [
            ("/webhook/jira", "jira"),
            ("/webhook/jira/", "jira"),
            ("/webhook/Jira/v1/events", "jira"),
            ("/services/apexrest/webhook/JIRA", "jira"),
            ("/webhook/", ""),
            ("/webhooks/jira", ""),
            ("/jira", ""),
            ("", ""),
            (None, ""),
        ],
    )
    def test_extracts_token(self, path, expected):
        assert extract_webhook_type(path) == expected


class TestDispatch:
    def test_default_registry_has_jira(self, registry):
        assert registry.webhook_types() == ["jira"]
        assert isinstance(registry.get("jira"), JiraWebhookProcessor)

    def test_register_is_case_insensitive(self):
        registry = WebhookTypeRegistry()
        processor = MagicMock(spec=WebhookProcessor)

        registry.register("GitHub", processor)

        assert registry.get("github") is processor

    @pytest.mark.parametrize("webhook_type", ["", "github", "JIRA"])
    def test_unsupported_type_raises(self, registry, store, webhook_type):
        with pytest.raises(UnsupportedWebhookTypeError) as exc_info:
            run_async(registry.dispatch(webhook_type, _issue_created()))

        assert exc_info.value.webhook_type == webhook_type
        assert store.writes == []

    def test_dispatch_calls_process_without_validate(self):
        processor = MagicMock(spec=WebhookProcessor)
        processor.process = AsyncMock()
        registry = WebhookTypeRegistry()
        registry.register("jira", processor)
        request = _issue_created()

        run_async(registry.dispatch("jira", request))

        processor.process.assert_awaited_once_with(request)
        processor.validate.assert_not_called()

    def test_validation_gate_rejects_invalid_request(self, store):
        registry = create_webhook_registry(Reconciler(store), validate_before_process=True)

        with pytest.raises(MissingDiscriminatorError):
            run_async(registry.dispatch("jira", _request({"issue": {"key": "ENG-1"}})))

        assert store.writes == []

    def test_validation_gate_passes_valid_request(self, store):
        registry = create_webhook_registry(Reconciler(store), validate_before_process=True)

        run_async(registry.dispatch("jira", _issue_created()))

        assert len(store.writes) == 1


class TestHandleWebhook:
    def test_success_response(self, registry, store):
        response = run_async(handle_webhook(registry, "/webhook/jira", _issue_created()))

        assert response.status is WebhookStatus.SUCCESS
        assert response.message == SUCCESS_MESSAGE
        assert run_async(store.get_issue("ENG-1")) is not None

    def test_unknown_event_reports_success(self, registry, store):
        response = run_async(
            handle_webhook(registry, "/webhook/jira", _request({"webhookEvent": "sprint_started"}))
        )

        assert response.status is WebhookStatus.SUCCESS
        assert response.message == SUCCESS_MESSAGE
        assert store.writes == []

    def test_noop_delete_reports_success(self, registry, store):
        request = _request({"webhookEvent": "jira:issue_deleted", "issue": {"key": "ENG-404"}})

        response = run_async(handle_webhook(registry, "/webhook/jira", request))

        assert response.status is WebhookStatus.SUCCESS
        assert store.writes == []

    @pytest.mark.parametrize("path", ["", "/webhook/", "/other/jira"])
    def test_unsupported_type_reports_error(self, registry, store, path):
        response = run_async(handle_webhook(registry, path, _issue_created()))

        assert response.status is WebhookStatus.ERROR
        assert "Unsupported webhook type" in response.message
        assert store.writes == []

    def test_malformed_body_reports_error(self, registry):
        response = run_async(
            handle_webhook(registry, "/webhook/jira", WebhookRequest(body=b"not json"))
        )

        assert response.status is WebhookStatus.ERROR
        assert "Malformed webhook payload" in response.message

    def test_store_error_reports_error(self, registry):
        run_async(handle_webhook(registry, "/webhook/jira", _issue_created()))

        response = run_async(handle_webhook(registry, "/webhook/jira", _issue_created()))

        assert response.status is WebhookStatus.ERROR
        assert "already exists" in response.message

    def test_response_serialises_to_two_fields(self, registry):
        response = run_async(handle_webhook(registry, "/webhook/jira", _issue_created()))

        assert response.model_dump(mode="json") == {
            "status": "success",
            "message": SUCCESS_MESSAGE,
        }

    def test_records_metrics(self, registry):
        metrics = WebhookMetrics(registry=CollectorRegistry())

        run_async(handle_webhook(registry, "/webhook/jira", _issue_created(), metrics))
        run_async(handle_webhook(registry, "/webhook/nope", _issue_created(), metrics))

        sample = metrics.registry.get_sample_value
        assert sample("reconciler_webhooks_total", {"webhook_type": "jira", "result": "success"}) == 1
        assert sample(
            "reconciler_webhook_errors_total",
            {"webhook_type": "unsupported", "error_type": "UnsupportedWebhookTypeError"},
        ) == 1
        assert sample("reconciler_webhook_duration_seconds_count", {"webhook_type": "jira"}) == 1
