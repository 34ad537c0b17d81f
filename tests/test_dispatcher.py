import asyncio
import time
from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from promopush.common.config import CommonSettings
from promopush.common.db import as_utc
from promopush.common.errors import NotFoundError, ValidationError
from promopush.services.dispatcher.models import DeliveryLog
from promopush.services.dispatcher.service import NotificationDispatcher
from promopush.services.retry.models import RetryIntent
from conftest import AUTH, P256DH


def _logs(session_factory) -> list[DeliveryLog]:
    with session_factory() as db:
        return list(db.execute(select(DeliveryLog)).scalars())


def _intents(session_factory) -> list[RetryIntent]:
    with session_factory() as db:
        return list(db.execute(select(RetryIntent)).scalars())


def test_dispatch_without_subscriptions_sends_nothing(dispatcher, session_factory, transport):
    result = asyncio.run(dispatcher.dispatch("user-1", "Approved", "Your post was approved"))

    assert result.sent_count == 0
    assert result.failed_subscription_ids == []
    assert result.error is None
    assert transport.sent == []
    assert _logs(session_factory) == []


def test_partial_failure_logs_each_attempt_and_retries_only_failed_device(
    dispatcher, scheduler, registry, transport, session_factory, transient_error
):
    ok = registry.register("user-1", "https://push.example/ok", P256DH, AUTH)
    bad = registry.register("user-1", "https://push.example/bad", P256DH, AUTH)
    transport.fail("https://push.example/bad", transient_error)

    result = asyncio.run(
        dispatcher.dispatch("user-1", "Approved", "Nice work", {"url": "/submissions/9"}, "submission_approved")
    )
    intents = scheduler.schedule_failures(
        result, "user-1", "Approved", "Nice work", {"url": "/submissions/9"}, "submission_approved"
    )

    assert result.sent_count == 1
    assert result.failed_subscription_ids == [bad.id]
    logs = {row.subscription_id: row for row in _logs(session_factory)}
    assert logs[ok.id].delivered is True
    assert logs[bad.id].delivered is False
    assert logs[bad.id].error == "push delivery failed (status=503)"
    assert logs[ok.id].type == "submission_approved"

    assert len(intents) == 1
    stored = _intents(session_factory)
    assert [row.subscription_id for row in stored] == [bad.id]
    assert stored[0].status == "pending"
    assert stored[0].attempt_count == 0


def test_successful_delivery_touches_subscription(dispatcher, registry):
    sub = registry.register("user-1", "https://push.example/ok", P256DH, AUTH)
    long_ago = datetime(2020, 1, 1, tzinfo=timezone.utc)
    registry.touch(sub.id, at=long_ago)

    asyncio.run(dispatcher.dispatch("user-1", "Hi", "there"))

    assert as_utc(registry.get(sub.id).last_used_at) > long_ago


def test_payload_carries_delivery_id_and_type(dispatcher, registry, transport, session_factory):
    registry.register("user-1", "https://push.example/ok", P256DH, AUTH)

    asyncio.run(dispatcher.dispatch("user-1", "Reminder", "Event tonight", {"url": "/events/3"}, "event_reminder"))

    message = transport.sent[0]
    (log,) = _logs(session_factory)
    assert message.data == {"url": "/events/3", "delivery_id": log.id, "type": "event_reminder"}


def test_unknown_notification_type_is_logged_as_other(dispatcher, registry, session_factory):
    registry.register("user-1", "https://push.example/ok", P256DH, AUTH)

    asyncio.run(dispatcher.dispatch("user-1", "Hi", "there", notification_type="brand_new_kind"))

    assert _logs(session_factory)[0].type == "other"


def test_gone_endpoint_removes_subscription_and_is_not_retried(
    dispatcher, scheduler, registry, transport, gone_error
):
    sub = registry.register("user-1", "https://push.example/gone", P256DH, AUTH)
    transport.fail("https://push.example/gone", gone_error)

    result = asyncio.run(dispatcher.dispatch("user-1", "Hi", "there"))

    assert result.permanent_failure_ids == [sub.id]
    assert result.transient_failure_ids == []
    assert registry.get(sub.id) is None
    assert scheduler.schedule_failures(result, "user-1", "Hi", "there", None, "general") == []


def test_unexpected_transport_error_is_an_ordinary_failure(dispatcher, registry, transport):
    sub = registry.register("user-1", "https://push.example/boom", P256DH, AUTH)
    transport.fail("https://push.example/boom", RuntimeError("socket closed"))

    result = asyncio.run(dispatcher.dispatch("user-1", "Hi", "there"))

    assert result.failed_subscription_ids == [sub.id]
    assert "socket closed" in result.errors[sub.id]


def test_slow_transport_times_out_as_failure(registry, logs, session_factory):
    class SlowTransport:
        def send(self, message):
            time.sleep(0.3)

    config = CommonSettings(postgres_dsn="sqlite://", push_timeout_seconds=0.05)
    dispatcher = NotificationDispatcher(registry, logs, SlowTransport(), config)
    sub = registry.register("user-1", "https://push.example/slow", P256DH, AUTH)

    result = asyncio.run(dispatcher.dispatch("user-1", "Hi", "there"))

    assert result.sent_count == 0
    assert "timed out" in result.errors[sub.id]
    assert _logs(session_factory)[0].delivered is False


def test_subscription_filter_targets_single_device(dispatcher, registry, transport):
    registry.register("user-1", "https://push.example/a", P256DH, AUTH)
    b = registry.register("user-1", "https://push.example/b", P256DH, AUTH)

    result = asyncio.run(dispatcher.dispatch("user-1", "Hi", "there", subscription_ids=[b.id]))

    assert result.sent_count == 1
    assert [m.endpoint for m in transport.sent] == ["https://push.example/b"]


def test_record_click_only_after_delivery(dispatcher, registry, transport, session_factory, transient_error):
    registry.register("user-1", "https://push.example/ok", P256DH, AUTH)
    registry.register("user-1", "https://push.example/bad", P256DH, AUTH)
    transport.fail("https://push.example/bad", transient_error)
    asyncio.run(dispatcher.dispatch("user-1", "Hi", "there"))
    by_delivery = {row.delivered: row for row in _logs(session_factory)}

    clicked = dispatcher.record_click(by_delivery[True].id)
    again = dispatcher.record_click(by_delivery[True].id)

    assert clicked.clicked is True
    assert as_utc(again.clicked_at) == as_utc(clicked.clicked_at)
    with pytest.raises(ValidationError):
        dispatcher.record_click(by_delivery[False].id)
    with pytest.raises(NotFoundError):
        dispatcher.record_click("missing")
