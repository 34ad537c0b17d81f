"""Shared fixtures: in-memory database, fake push transport, wired services."""

import os

os.environ.setdefault("POSTGRES_DSN", "sqlite://")
os.environ.setdefault("TRACING_ENABLED", "false")
os.environ.setdefault("SERVICE_NAME", "push-test")
os.environ.setdefault("PUSH_ENABLED", "false")

from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from promopush.common.config import CommonSettings
from promopush.common.db import Base
from promopush.common.errors import PermanentDeliveryError, TransientDeliveryError
from promopush.services.dispatcher.repository import DeliveryLogRepository
from promopush.services.dispatcher.service import NotificationDispatcher
from promopush.services.registry.service import SubscriptionRegistry
from promopush.services.retry.repository import RetryIntentRepository
from promopush.services.retry.service import RetryScheduler

# Valid base64url key material shaped like real browser keys.
P256DH = "BEl6f5Y8X5Y_u7d8mV_AbpZfXfTLT3s1O3L4wM1x8QY2_5qWQ-jxJq7uKjv8mQ4I"
AUTH = "gq8Yh5xA9l2mQ6pR"


class FakeTransport:
    """Push transport double; behavior is chosen per endpoint."""

    def __init__(self) -> None:
        self.behaviors: dict[str, Exception] = {}
        self.sent = []

    def fail(self, endpoint: str, exc: Exception) -> None:
        self.behaviors[endpoint] = exc

    def send(self, message) -> None:
        self.sent.append(message)
        exc = self.behaviors.get(message.endpoint)
        if exc is not None:
            raise exc


@pytest.fixture()
def config() -> CommonSettings:
    return CommonSettings(postgres_dsn="sqlite://", service_name="push-test", push_timeout_seconds=1.0)


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def registry(session_factory) -> SubscriptionRegistry:
    return SubscriptionRegistry(session_factory)


@pytest.fixture()
def logs(session_factory) -> DeliveryLogRepository:
    return DeliveryLogRepository(session_factory)


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def dispatcher(registry, logs, transport, config) -> NotificationDispatcher:
    return NotificationDispatcher(registry, logs, transport, config)


@pytest.fixture()
def retry_repository(session_factory) -> RetryIntentRepository:
    return RetryIntentRepository(session_factory)


@pytest.fixture()
def scheduler(retry_repository, dispatcher, config) -> RetryScheduler:
    return RetryScheduler(retry_repository, dispatcher, config)


@pytest.fixture()
def now() -> datetime:
    return datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def transient_error() -> TransientDeliveryError:
    return TransientDeliveryError("push delivery failed (status=503)")


@pytest.fixture()
def gone_error() -> PermanentDeliveryError:
    return PermanentDeliveryError("push endpoint gone (status=410)")
