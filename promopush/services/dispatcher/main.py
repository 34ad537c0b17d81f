"""Dispatch trigger, device registration and click tracking endpoints."""

from fastapi import FastAPI

from promopush.common.config import CommonSettings, settings
from promopush.common.db import SessionLocal
from promopush.common.http import install_http_support
from promopush.common.logging import configure_logging
from promopush.common.metrics import metrics_response
from promopush.common.startup import log_startup_config
from promopush.common.tracing import instrument_app, setup_tracing
from promopush.services.dispatcher.repository import DeliveryLogRepository
from promopush.services.dispatcher.schemas import (
    DispatchRequest,
    DispatchResponse,
    SubscriptionRequest,
    SubscriptionResponse,
    UnsubscribeRequest,
)
from promopush.services.dispatcher.service import NotificationDispatcher
from promopush.services.dispatcher.transport import PushTransport, build_transport
from promopush.services.registry.service import SubscriptionRegistry
from promopush.services.retry.repository import RetryIntentRepository
from promopush.services.retry.service import RetryScheduler

configure_logging()
setup_tracing(settings)
log_startup_config(
    settings,
    ["SERVICE_NAME", "POSTGRES_DSN", "PUSH_ENABLED", "PUSH_TIMEOUT_SECONDS", "VAPID_PRIVATE_KEY", "VAPID_SUBJECT"],
)


def create_app(
    session_factory=SessionLocal,
    transport: PushTransport | None = None,
    config: CommonSettings = settings,
) -> FastAPI:
    registry = SubscriptionRegistry(session_factory)
    dispatcher = NotificationDispatcher(
        registry,
        DeliveryLogRepository(session_factory),
        transport or build_transport(config),
        config,
    )
    scheduler = RetryScheduler(RetryIntentRepository(session_factory), dispatcher, config)

    app = FastAPI(title="Promo Push Dispatcher")
    install_http_support(app, config.service_name)
    instrument_app(app)

    @app.post("/dispatch", response_model=DispatchResponse)
    async def dispatch(req: DispatchRequest):
        """Deliver to every device of the user; failed devices get a retry intent."""

        result = await dispatcher.dispatch(
            req.user_id,
            req.title,
            req.body,
            data=req.data,
            notification_type=req.notification_type,
        )
        intents = scheduler.schedule_failures(
            result,
            req.user_id,
            req.title,
            req.body,
            req.data,
            req.notification_type,
        )
        return DispatchResponse(
            sent=result.sent_count,
            failed=len(result.failed_subscription_ids),
            retry_scheduled=len(intents),
            error=result.error if result.sent_count == 0 else None,
        )

    @app.post("/subscriptions", response_model=SubscriptionResponse)
    def register_subscription(req: SubscriptionRequest):
        """Register (or re-key) one browser endpoint for a user."""

        sub = registry.register(req.user_id, req.endpoint, req.keys.p256dh, req.keys.auth, req.user_agent)
        return SubscriptionResponse(id=sub.id, user_id=sub.user_id, endpoint=sub.endpoint)

    @app.delete("/subscriptions")
    def unregister_subscription(req: UnsubscribeRequest):
        """Drop one device when the browser unsubscribes."""

        return {"removed": registry.unregister(req.user_id, req.endpoint)}

    @app.post("/deliveries/{delivery_id}/click")
    def record_click(delivery_id: str):
        """Called by the service worker when a delivered notification is clicked."""

        entry = dispatcher.record_click(delivery_id)
        return {"id": entry.id, "clicked": entry.clicked}

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
