"""Retry trigger endpoint, invoked by an external schedule (cron)."""

from fastapi import FastAPI

from promopush.common.config import CommonSettings, SettingsProvider, as_provider, settings, settings_provider
from promopush.common.db import SessionLocal
from promopush.common.http import install_http_support
from promopush.common.logging import configure_logging
from promopush.common.metrics import metrics_response
from promopush.common.startup import log_startup_config
from promopush.common.state_machine import FAILED
from promopush.common.tracing import instrument_app, setup_tracing
from promopush.services.dispatcher.repository import DeliveryLogRepository
from promopush.services.dispatcher.service import NotificationDispatcher
from promopush.services.dispatcher.transport import PushTransport, build_transport
from promopush.services.registry.service import SubscriptionRegistry
from promopush.services.retry.repository import RetryIntentRepository
from promopush.services.retry.service import RetryScheduler

configure_logging()
setup_tracing(settings)
log_startup_config(
    settings,
    ["SERVICE_NAME", "POSTGRES_DSN", "RETRY_BATCH_SIZE", "RETRY_MAX_ATTEMPTS", "RETRY_CLAIM_TIMEOUT_SECONDS"],
)


def create_app(
    session_factory=SessionLocal,
    transport: PushTransport | None = None,
    config: CommonSettings | SettingsProvider = settings_provider,
) -> FastAPI:
    provider = as_provider(config)
    repository = RetryIntentRepository(session_factory)
    registry = SubscriptionRegistry(session_factory)
    logs = DeliveryLogRepository(session_factory)
    push = transport or build_transport(provider.current)

    def build_scheduler(current: CommonSettings) -> RetryScheduler:
        dispatcher = NotificationDispatcher(registry, logs, push, current)
        return RetryScheduler(repository, dispatcher, current)

    app = FastAPI(title="Promo Push Retry Scheduler")
    install_http_support(app, provider.current.service_name)
    instrument_app(app)

    @app.post("/run")
    async def run():
        """Process one batch of due retry intents with the current settings."""

        summary = await build_scheduler(provider.current).run_once()
        return summary.as_response()

    @app.get("/failures")
    def failures(limit: int = 100):
        """Permanently failed intents, newest first, for operator review."""

        return [
            {
                "id": row.id,
                "userId": row.user_id,
                "title": row.title,
                "notificationType": row.notification_type,
                "attemptCount": row.attempt_count,
                "lastAttemptAt": row.last_attempt_at,
                "lastError": row.last_error,
            }
            for row in repository.list_by_status(FAILED, limit=limit)
        ]

    @app.get("/health")
    def health():
        """Container health probe endpoint."""

        return {"ok": True}

    @app.get("/metrics")
    def metrics():
        """Prometheus scrape endpoint."""

        return metrics_response()

    return app


app = create_app()
