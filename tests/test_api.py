"""HTTP-level tests for the trigger endpoints."""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from promopush.common.config import CommonSettings, SettingsProvider
from promopush.common.db import utcnow
from promopush.services.analytics.main import create_app as create_analytics_app
from promopush.services.dispatcher.main import create_app as create_dispatcher_app
from promopush.services.retry.main import create_app as create_retry_app
from promopush.services.validator.main import create_app as create_validator_app
from promopush.services.retry.models import RetryIntent
from conftest import AUTH, P256DH


@pytest.fixture()
def dispatcher_client(session_factory, transport, config):
    return TestClient(create_dispatcher_app(session_factory, transport, config))


def _subscribe(client, user_id="user-1", endpoint="https://push.example/a", p256dh=P256DH):
    return client.post(
        "/subscriptions",
        json={"userId": user_id, "endpoint": endpoint, "keys": {"p256dh": p256dh, "auth": AUTH}},
    )


def test_dispatch_endpoint_reports_counts_and_schedules_retries(
    dispatcher_client, transport, retry_repository, transient_error
):
    _subscribe(dispatcher_client, endpoint="https://push.example/a")
    _subscribe(dispatcher_client, endpoint="https://push.example/b")
    transport.fail("https://push.example/b", transient_error)

    resp = dispatcher_client.post(
        "/dispatch",
        json={"userId": "user-1", "title": "Approved", "body": "Nice", "notificationType": "submission_approved"},
    )

    assert resp.status_code == 200
    assert resp.json() == {"sent": 1, "failed": 1, "retryScheduled": 1, "error": None}
    assert len(retry_repository.list_by_status("pending")) == 1


def test_dispatch_to_user_without_devices(dispatcher_client):
    resp = dispatcher_client.post("/dispatch", json={"userId": "ghost", "title": "Hi", "body": "there"})

    assert resp.status_code == 200
    assert resp.json()["sent"] == 0
    assert resp.json()["error"] is None


def test_dispatch_rejects_missing_fields(dispatcher_client):
    resp = dispatcher_client.post("/dispatch", json={"title": "Hi"})

    assert resp.status_code == 422


def test_register_subscription_with_bad_keys_is_400(dispatcher_client):
    resp = _subscribe(dispatcher_client, p256dh="not/base64url")

    assert resp.status_code == 400
    assert "p256dh" in resp.json()["error"]


def test_unsubscribe(dispatcher_client):
    _subscribe(dispatcher_client)

    resp = dispatcher_client.request(
        "DELETE", "/subscriptions", json={"userId": "user-1", "endpoint": "https://push.example/a"}
    )

    assert resp.json() == {"removed": True}


def test_click_endpoint(dispatcher_client, logs):
    entry = logs.append(user_id="user-1", title="Hi", notification_type="general", delivered=True)

    assert dispatcher_client.post(f"/deliveries/{entry.id}/click").json() == {"id": entry.id, "clicked": True}
    assert dispatcher_client.post("/deliveries/missing/click").status_code == 404


def test_unexpected_error_returns_500_json(session_factory, config):
    class ExplodingTransport:
        def send(self, message):
            raise RuntimeError("boom")

    app = create_dispatcher_app(session_factory, ExplodingTransport(), config)

    @app.get("/explode")
    def explode():
        raise RuntimeError("kaboom")

    client = TestClient(app, raise_server_exceptions=False)
    resp = client.get("/explode")

    assert resp.status_code == 500
    assert resp.json() == {"error": "kaboom"}


def test_retry_run_endpoint(session_factory, transport, config, retry_repository, registry):
    registry.register("user-1", "https://push.example/a", P256DH, AUTH)
    now = utcnow()
    retry_repository.add(
        RetryIntent(
            user_id="user-1",
            title="Approved",
            body="Nice",
            data={},
            notification_type="submission_approved",
            status="pending",
            attempt_count=0,
            max_attempts=3,
            last_attempt_at=now - timedelta(minutes=6),
            next_retry_at=now - timedelta(minutes=1),
        )
    )
    client = TestClient(create_retry_app(session_factory, transport, config))

    resp = client.post("/run")

    assert resp.json() == {"processed": 1, "successful": 1, "failed": 0, "permanentFailures": 0}
    assert client.get("/failures").json() == []


def test_validator_run_endpoint(session_factory, config, registry):
    registry.register("user-1", "https://push.example/a", P256DH, AUTH)
    client = TestClient(create_validator_app(session_factory, config))

    resp = client.post("/run")

    assert resp.json() == {"invalidRemoved": 0, "staleRemoved": 0, "totalSubscriptions": 1, "validRemaining": 1}


def test_retry_run_picks_up_refreshed_batch_size(session_factory, transport, retry_repository, registry):
    registry.register("user-1", "https://push.example/a", P256DH, AUTH)
    now = utcnow()
    for minutes in (3, 2, 1):
        retry_repository.add(
            RetryIntent(
                user_id="user-1",
                title="Approved",
                body="Nice",
                data={},
                notification_type="submission_approved",
                status="pending",
                attempt_count=0,
                max_attempts=3,
                last_attempt_at=now - timedelta(minutes=10),
                next_retry_at=now - timedelta(minutes=minutes),
            )
        )
    batch_sizes = iter([1, 2])
    clock = {"t": 0.0}
    provider = SettingsProvider(
        lambda: CommonSettings(postgres_dsn="sqlite://", service_name="push-test", retry_batch_size=next(batch_sizes)),
        ttl_seconds=60,
        clock=lambda: clock["t"],
    )
    client = TestClient(create_retry_app(session_factory, transport, provider))

    first = client.post("/run").json()
    clock["t"] = 61
    second = client.post("/run").json()

    assert first["processed"] == 1
    assert second["processed"] == 2


def test_analytics_endpoint(session_factory, config, logs):
    logs.append(user_id="u", title="one", notification_type="goal_achieved", delivered=True)
    logs.append(user_id="u", title="two", notification_type="goal_achieved", delivered=False)
    client = TestClient(create_analytics_app(session_factory, config))

    body = client.get("/analytics", params={"range": "7d"}).json()

    assert body["totalSent"] == 2
    assert body["deliveryRate"] == 50.0
    assert body["byType"] == [{"name": "goal_achieved", "count": 2}]
    assert client.get("/analytics", params={"range": "1y"}).status_code == 400


def test_health_and_metrics(dispatcher_client):
    assert dispatcher_client.get("/health").json() == {"ok": True}
    assert "push_attempts_total" in dispatcher_client.get("/metrics").text
