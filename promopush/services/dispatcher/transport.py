"""Push transport implementations (the browser/OS push service boundary)."""

import json
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, Protocol

import requests
from pywebpush import WebPushException, webpush

from promopush.common.config import CommonSettings
from promopush.common.errors import PermanentDeliveryError, TransientDeliveryError
from promopush.common.logging import logger


GONE_STATUSES = {HTTPStatus.NOT_FOUND, HTTPStatus.GONE}


@dataclass(frozen=True)
class PushMessage:
    """One encrypted push to one subscription endpoint."""

    endpoint: str
    p256dh: str
    auth: str
    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)

    def payload(self) -> str:
        return json.dumps({"title": self.title, "body": self.body, "data": self.data})


class PushTransport(Protocol):
    """Delivery contract: return on success, raise a `DeliveryError` otherwise."""

    def send(self, message: PushMessage) -> None:
        ...


class WebPushTransport:
    """`pywebpush` backed transport with VAPID signing."""

    def __init__(self, *, private_key: str, subject: str, timeout_seconds: float = 5.0, ttl_seconds: int = 86400):
        self._private_key = private_key
        self._subject = subject
        self._timeout_seconds = timeout_seconds
        self._ttl_seconds = ttl_seconds

    def send(self, message: PushMessage) -> None:
        subscription_info = {
            "endpoint": message.endpoint,
            "keys": {"p256dh": message.p256dh, "auth": message.auth},
        }
        try:
            webpush(
                subscription_info=subscription_info,
                data=message.payload(),
                vapid_private_key=self._private_key,
                vapid_claims={"sub": self._subject},
                timeout=self._timeout_seconds,
                ttl=self._ttl_seconds,
            )
        except WebPushException as exc:
            status_code = _extract_status_code(exc)
            if status_code in GONE_STATUSES:
                raise PermanentDeliveryError(f"push endpoint gone (status={status_code})") from exc
            raise TransientDeliveryError(
                f"push delivery failed (status={status_code if status_code else 'unknown'})"
            ) from exc
        except requests.RequestException as exc:
            raise TransientDeliveryError(f"push transport unreachable: {exc}") from exc
        except ValueError as exc:
            # Raised by the payload encryption step for unusable key material.
            raise TransientDeliveryError(f"push encryption failed: {exc}") from exc


class NullPushTransport:
    """Drops every message; used when push is disabled or VAPID keys are unset."""

    def send(self, message: PushMessage) -> None:
        logger.debug("push disabled; dropping message endpoint_present=%s", bool(message.endpoint))


def build_transport(config: CommonSettings) -> PushTransport:
    if config.push_mode == "null":
        logger.warning("push transport disabled push_enabled=%s", config.push_enabled)
        return NullPushTransport()
    return WebPushTransport(
        private_key=config.vapid_private_key,
        subject=config.vapid_subject,
        timeout_seconds=config.push_timeout_seconds,
        ttl_seconds=config.push_ttl_seconds,
    )


def _extract_status_code(exc: WebPushException) -> int | None:
    response = getattr(exc, "response", None)
    if response is None:
        return None
    status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None
