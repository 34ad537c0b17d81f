"""Notification dispatcher: fan one notification out to every device of a user.

The dispatcher only delivers and logs. It reports failed subscriptions to its
caller and never creates retry intents itself; retry policy lives in the retry
scheduler.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from promopush.common.config import CommonSettings
from promopush.common.errors import DeliveryError, PermanentDeliveryError, TransientDeliveryError
from promopush.common.logging import log_context, logger
from promopush.common.metrics import (
    dispatch_latency_seconds,
    push_attempts_total,
    push_send_seconds,
    subscriptions_removed_total,
)
from promopush.common.notification_types import NotificationType
from promopush.common.tracing import push_span
from promopush.services.dispatcher.repository import DeliveryLogRepository
from promopush.services.dispatcher.transport import PushMessage, PushTransport
from promopush.services.registry.models import PushSubscription
from promopush.services.registry.service import SubscriptionRegistry


@dataclass
class DeliveryOutcome:
    subscription_id: str
    delivery_id: str
    delivered: bool
    permanent: bool = False
    error: str | None = None


@dataclass
class DispatchResult:
    sent_count: int = 0
    failed_subscription_ids: list[str] = field(default_factory=list)
    permanent_failure_ids: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)
    attempted: int = 0

    @property
    def transient_failure_ids(self) -> list[str]:
        return [sid for sid in self.failed_subscription_ids if sid not in self.permanent_failure_ids]

    @property
    def error(self) -> str | None:
        """First failure message; None when nothing failed."""

        if self.errors:
            return next(iter(self.errors.values()))
        return None

    @property
    def undeliverable(self) -> bool:
        """No device left that a later retry could reach."""

        return self.sent_count == 0 and not self.transient_failure_ids


class NotificationDispatcher:
    """Deliver one notification to all (or selected) subscriptions of a user."""

    def __init__(
        self,
        registry: SubscriptionRegistry,
        logs: DeliveryLogRepository,
        transport: PushTransport,
        config: CommonSettings,
    ) -> None:
        self.registry = registry
        self.logs = logs
        self.transport = transport
        self.timeout_seconds = config.push_timeout_seconds
        self.service_name = config.service_name

    async def dispatch(
        self,
        user_id: str,
        title: str,
        body: str,
        data: dict[str, Any] | None = None,
        notification_type: NotificationType | str | None = NotificationType.GENERAL,
        subscription_ids: list[str] | None = None,
    ) -> DispatchResult:
        """Attempt delivery to every subscription concurrently; never short-circuits."""

        ntype = NotificationType.parse(notification_type)
        with log_context(user_id=user_id):
            subscriptions = self.registry.list_active(user_id)
            if subscription_ids is not None:
                wanted = set(subscription_ids)
                subscriptions = [sub for sub in subscriptions if sub.id in wanted]
            if not subscriptions:
                logger.info("dispatch_skipped reason=no_subscriptions type=%s", ntype.value)
                return DispatchResult()

            with push_span("push.dispatch", {"push.devices": len(subscriptions)}):
                with dispatch_latency_seconds.labels(service=self.service_name).time():
                    outcomes = await asyncio.gather(
                        *(self._deliver(sub, title, body, data or {}, ntype) for sub in subscriptions)
                    )

            result = DispatchResult(attempted=len(outcomes))
            for outcome in outcomes:
                if outcome.delivered:
                    result.sent_count += 1
                    continue
                result.failed_subscription_ids.append(outcome.subscription_id)
                result.errors[outcome.subscription_id] = outcome.error or "unknown error"
                if outcome.permanent:
                    result.permanent_failure_ids.append(outcome.subscription_id)
            logger.info(
                "dispatch_done type=%s attempted=%s sent=%s failed=%s",
                ntype.value,
                result.attempted,
                result.sent_count,
                len(result.failed_subscription_ids),
            )
            return result

    async def _deliver(
        self,
        subscription: PushSubscription,
        title: str,
        body: str,
        data: dict[str, Any],
        ntype: NotificationType,
    ) -> DeliveryOutcome:
        delivery_id = str(uuid4())
        message = PushMessage(
            endpoint=subscription.endpoint,
            p256dh=subscription.p256dh,
            auth=subscription.auth,
            title=title,
            body=body,
            data={**data, "delivery_id": delivery_id, "type": ntype.value},
        )
        outcome = DeliveryOutcome(subscription_id=subscription.id, delivery_id=delivery_id, delivered=False)
        start = time.perf_counter()
        try:
            # A timed-out send keeps running in its worker thread until the transport's own
            # timeout. If it still lands, the retry is a duplicate: delivery is at-least-once.
            await asyncio.wait_for(asyncio.to_thread(self.transport.send, message), timeout=self.timeout_seconds)
            outcome.delivered = True
        except asyncio.TimeoutError:
            outcome.error = str(TransientDeliveryError(f"push send timed out after {self.timeout_seconds}s"))
        except PermanentDeliveryError as exc:
            outcome.permanent = True
            outcome.error = str(exc)
        except DeliveryError as exc:
            outcome.error = str(exc)
        except Exception as exc:
            # Anything else from the transport is still just a failed attempt.
            logger.exception("push_transport_error subscription_id=%s", subscription.id)
            outcome.error = f"unexpected transport error: {exc}"
        finally:
            push_send_seconds.labels(service=self.service_name).observe(max(0.0, time.perf_counter() - start))

        if outcome.delivered:
            self.registry.touch(subscription.id)
        elif outcome.permanent:
            if self.registry.remove(subscription.id):
                subscriptions_removed_total.labels(service=self.service_name, reason="gone").inc()
            logger.warning(
                "subscription_gone subscription_id=%s error=%s",
                subscription.id,
                outcome.error,
            )
        else:
            logger.warning(
                "push_failed subscription_id=%s error=%s",
                subscription.id,
                outcome.error,
            )

        self.logs.append(
            delivery_id=delivery_id,
            user_id=subscription.user_id,
            subscription_id=subscription.id,
            title=title,
            notification_type=ntype.value,
            delivered=outcome.delivered,
            error=outcome.error,
        )
        push_attempts_total.labels(
            service=self.service_name,
            notification_type=ntype.value,
            result="delivered" if outcome.delivered else ("gone" if outcome.permanent else "failed"),
        ).inc()
        return outcome

    def record_click(self, delivery_id: str):
        """Record a click reported by the client for a delivered notification."""

        entry = self.logs.mark_clicked(delivery_id)
        logger.info("notification_clicked delivery_id=%s", delivery_id)
        return entry
