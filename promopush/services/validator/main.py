"""Subscription sweep trigger endpoint."""

from fastapi import FastAPI

from promopush.common.config import CommonSettings, SettingsProvider, as_provider, settings, settings_provider
from promopush.common.db import SessionLocal
from promopush.common.http import install_http_support
from promopush.common.logging import configure_logging
from promopush.common.metrics import metrics_response
from promopush.common.startup import log_startup_config
from promopush.common.tracing import instrument_app, setup_tracing
from promopush.services.registry.service import SubscriptionRegistry
from promopush.services.validator.service import SubscriptionValidator

configure_logging()
setup_tracing(settings)
log_startup_config(settings, ["SERVICE_NAME", "POSTGRES_DSN", "STALE_SUBSCRIPTION_DAYS"])


def create_app(session_factory=SessionLocal, config: CommonSettings | SettingsProvider = settings_provider) -> FastAPI:
    provider = as_provider(config)
    registry = SubscriptionRegistry(session_factory)

    app = FastAPI(title="Promo Push Subscription Validator")
    install_http_support(app, provider.current.service_name)
    instrument_app(app)

    @app.post("/run")
    def run():
        """Remove malformed and idle subscriptions."""

        current = provider.current
        validator = SubscriptionValidator(
            registry,
            stale_after_days=current.stale_subscription_days,
            service_name=current.service_name,
        )
        return validator.sweep().as_response()

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
