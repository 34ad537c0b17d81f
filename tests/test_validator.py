import asyncio
from datetime import timedelta

from promopush.common.errors import TransientDeliveryError
from promopush.services.dispatcher.service import NotificationDispatcher
from promopush.services.registry.models import PushSubscription
from promopush.services.validator.service import SubscriptionValidator
from conftest import AUTH, P256DH


def _store(session_factory, endpoint, p256dh=P256DH, auth=AUTH, last_used_at=None):
    # Bypass registry validation to simulate rows written by older clients.
    row = PushSubscription(user_id="user-1", endpoint=endpoint, p256dh=p256dh, auth=auth)
    if last_used_at is not None:
        row.last_used_at = last_used_at
    with session_factory() as db:
        db.add(row)
        db.commit()
    return row


def test_sweep_removes_invalid_keys_only(registry, session_factory, now):
    good = _store(session_factory, "https://push.example/good", last_used_at=now)
    _store(session_factory, "https://push.example/slash", p256dh="BEl6/f5Y8X5Y", last_used_at=now)
    _store(session_factory, "https://push.example/plus", auth="gq8Y+h5xA9l2", last_used_at=now)

    summary = SubscriptionValidator(registry).sweep(now=now)

    assert summary.invalid_removed == 2
    assert summary.stale_removed == 0
    assert [row.id for row in registry.list_all()] == [good.id]


def test_sweep_removes_subscriptions_idle_sixty_days(registry, session_factory, now):
    fresh = _store(session_factory, "https://push.example/fresh", last_used_at=now - timedelta(days=59))
    _store(session_factory, "https://push.example/stale", last_used_at=now - timedelta(days=61))

    summary = SubscriptionValidator(registry).sweep(now=now)

    assert summary.stale_removed == 1
    assert [row.id for row in registry.list_all()] == [fresh.id]


def test_sweep_counts_each_row_once_and_is_idempotent(registry, session_factory, now):
    _store(session_factory, "https://push.example/both", p256dh="a/b", last_used_at=now - timedelta(days=90))
    _store(session_factory, "https://push.example/ok", last_used_at=now)
    validator = SubscriptionValidator(registry)

    first = validator.sweep(now=now)
    second = validator.sweep(now=now)

    assert first.as_response() == {
        "invalidRemoved": 1,
        "staleRemoved": 0,
        "totalSubscriptions": 2,
        "validRemaining": 1,
    }
    assert (second.invalid_removed, second.stale_removed) == (0, 0)


def test_subscription_swept_mid_dispatch_is_plain_failure(registry, logs, config):
    sub = registry.register("user-1", "https://push.example/x", P256DH, AUTH)

    class SweptTransport:
        def send(self, message):
            registry.remove(sub.id)
            raise TransientDeliveryError("push delivery failed (status=404)")

    dispatcher = NotificationDispatcher(registry, logs, SweptTransport(), config)

    result = asyncio.run(dispatcher.dispatch("user-1", "Hi", "there"))

    assert result.failed_subscription_ids == [sub.id]
    assert registry.get(sub.id) is None
