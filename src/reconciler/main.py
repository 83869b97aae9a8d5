"""FastAPI application entry point for the webhook reconciler.

This module wires configuration, the record store, the reconciler and the
webhook type registry into an HTTP service:
- POST /webhook/{type}/...: inbound tracker webhooks
- GET /health, GET /ready: liveness and readiness probes
- GET /metrics: Prometheus metrics

Webhook calls always answer HTTP 200 with a {status, message} body; error
detail is conveyed only in the message. There is no authentication or
signature verification in front of the webhook route.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST

from .config import ReconcilerSettings, get_settings
from .metrics import WebhookMetrics
from .records.models import WriteOptions
from .records.reconcile import Reconciler
from .records.repository import PostgresRecordStore
from .records.store import InMemoryRecordStore, RecordStore
from .webhook.handler import handle_webhook
from .webhook.models import WebhookRequest, WebhookResponse
from .webhook.registry import create_webhook_registry

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _redact_secret(value: str, visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters."""
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def _log_configuration(settings: ReconcilerSettings) -> None:
    """Log configuration values with secrets redacted."""
    logger.info("Reconciler configuration:")
    if settings.database_url:
        logger.info(f"  Database URL: {_redact_secret(settings.database_url, 13)}")
        logger.info(
            f"  Database Pool: {settings.database_min_pool_size}-{settings.database_max_pool_size}"
        )
    else:
        logger.info("  Database URL: <unset, using in-memory store>")
    logger.info(
        f"  Suppress Downstream Automation: {settings.suppress_downstream_automation}"
    )
    logger.info(f"  Validate Before Process: {settings.validate_before_process}")
    logger.info(f"  Host: {settings.host}")
    logger.info(f"  Port: {settings.port}")


async def _open_store(settings: ReconcilerSettings) -> RecordStore:
    if not settings.database_url:
        logger.warning("No database configured, records will not survive a restart")
        return InMemoryRecordStore()

    store = PostgresRecordStore(
        settings.database_url,
        min_pool_size=settings.database_min_pool_size,
        max_pool_size=settings.database_max_pool_size,
    )
    await store.connect()
    if settings.create_schema:
        await store.create_schema()
    return store


def create_app(
    settings: Optional[ReconcilerSettings] = None,
    store: Optional[RecordStore] = None,
    metrics: Optional[WebhookMetrics] = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Settings to use; read from the environment at startup if None.
        store: Record store to use; opened from settings at startup if None.
        metrics: Metrics container; registered on the default registry if None.

    Returns:
        The configured FastAPI application.
    """
    webhook_metrics = metrics or WebhookMetrics()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = settings or get_settings()
        logging.getLogger().setLevel(cfg.log_level)
        _log_configuration(cfg)

        record_store = store if store is not None else await _open_store(cfg)
        reconciler = Reconciler(
            record_store,
            WriteOptions(
                suppress_downstream_automation=cfg.suppress_downstream_automation
            ),
        )
        app.state.store = record_store
        app.state.registry = create_webhook_registry(
            reconciler,
            validate_before_process=cfg.validate_before_process,
        )

        logger.info(
            "Webhook reconciler started",
            extra={"webhook_types": app.state.registry.webhook_types()},
        )

        yield

        logger.info("Webhook reconciler shutting down...")
        if store is None and isinstance(record_store, PostgresRecordStore):
            await record_store.disconnect()

    app = FastAPI(
        title="Tracker Webhook Reconciler",
        description="Reconciles issue-tracker webhooks into local issue and project records",
        version="1.0.0",
        lifespan=lifespan,
    )

    @app.get("/health")
    async def health():
        """Liveness probe endpoint."""
        return {"status": "healthy"}

    @app.get("/ready")
    async def ready(request: Request):
        """Readiness probe endpoint, checking store connectivity."""
        healthy = await request.app.state.store.health_check()
        return {
            "status": "ready" if healthy else "not_ready",
            "dependencies": {"store": "healthy" if healthy else "unhealthy"},
        }

    @app.get("/metrics")
    async def metrics_endpoint():
        """Prometheus metrics endpoint."""
        return Response(content=webhook_metrics.generate(), media_type=CONTENT_TYPE_LATEST)

    @app.post("/webhook", response_model=WebhookResponse)
    @app.post("/webhook/{subpath:path}", response_model=WebhookResponse)
    async def webhook(request: Request) -> WebhookResponse:
        """Tracker webhook receiver endpoint.

        The webhook type is the first path segment after ``/webhook/``. A bare
        ``/webhook`` has no type and gets the unsupported-type error body.
        """
        webhook_request = WebhookRequest(
            body=await request.body(),
            headers=dict(request.headers),
        )
        return await handle_webhook(
            request.app.state.registry,
            request.url.path,
            webhook_request,
            metrics=webhook_metrics,
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    dev_settings = get_settings()
    uvicorn.run(
        "src.reconciler.main:app",
        host=dev_settings.host,
        port=dev_settings.port,
        reload=True,
    )
