"""Read-only delivery analytics endpoint."""

from fastapi import FastAPI, Query

from promopush.common.config import CommonSettings, settings
from promopush.common.db import SessionLocal
from promopush.common.http import install_http_support
from promopush.common.logging import configure_logging
from promopush.common.metrics import metrics_response
from promopush.common.startup import log_startup_config
from promopush.common.tracing import instrument_app, setup_tracing
from promopush.services.analytics.schemas import AnalyticsSnapshot
from promopush.services.analytics.service import DeliveryAnalytics
from promopush.services.dispatcher.repository import DeliveryLogRepository

configure_logging()
setup_tracing(settings)
log_startup_config(settings, ["SERVICE_NAME", "POSTGRES_DSN"])


def create_app(session_factory=SessionLocal, config: CommonSettings = settings) -> FastAPI:
    analytics = DeliveryAnalytics(
        DeliveryLogRepository(session_factory),
        service_name=config.service_name,
        recent_limit=config.analytics_recent_limit,
    )

    app = FastAPI(title="Promo Push Analytics")
    install_http_support(app, config.service_name)
    instrument_app(app)

    @app.get("/analytics", response_model=AnalyticsSnapshot)
    def get_analytics(range_key: str = Query("30d", alias="range")):
        """Delivery and click rollup for the last 7, 30 or 90 days."""

        return analytics.aggregate_range(range_key)

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
