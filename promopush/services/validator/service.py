"""Subscription hygiene sweep: drop malformed and long-idle registrations."""

from dataclasses import dataclass
from datetime import datetime, timedelta

from promopush.common.db import utcnow
from promopush.common.logging import logger
from promopush.common.metrics import subscriptions_removed_total
from promopush.services.registry.keys import has_unsafe_chars
from promopush.services.registry.service import SubscriptionRegistry


@dataclass
class SweepSummary:
    invalid_removed: int = 0
    stale_removed: int = 0
    total_subscriptions: int = 0

    @property
    def valid_remaining(self) -> int:
        return max(0, self.total_subscriptions - self.invalid_removed - self.stale_removed)

    def as_response(self) -> dict[str, int]:
        return {
            "invalidRemoved": self.invalid_removed,
            "staleRemoved": self.stale_removed,
            "totalSubscriptions": self.total_subscriptions,
            "validRemaining": self.valid_remaining,
        }


class SubscriptionValidator:
    """Idempotent batch job over the subscription registry."""

    def __init__(self, registry: SubscriptionRegistry, stale_after_days: int = 60, service_name: str = "validator"):
        self.registry = registry
        self.stale_after = timedelta(days=stale_after_days)
        self.service_name = service_name

    def sweep(self, now: datetime | None = None) -> SweepSummary:
        now = now or utcnow()
        subscriptions = self.registry.list_all()
        summary = SweepSummary(total_subscriptions=len(subscriptions))

        invalid_ids = [
            sub.id for sub in subscriptions if has_unsafe_chars(sub.p256dh) or has_unsafe_chars(sub.auth)
        ]
        for subscription_id in invalid_ids:
            logger.info("invalid_subscription_found subscription_id=%s", subscription_id)
        summary.invalid_removed = self.registry.remove_many(invalid_ids)

        summary.stale_removed = self.registry.remove_unused_since(now - self.stale_after)

        subscriptions_removed_total.labels(service=self.service_name, reason="invalid").inc(summary.invalid_removed)
        subscriptions_removed_total.labels(service=self.service_name, reason="stale").inc(summary.stale_removed)
        logger.info(
            "sweep_finished total=%s invalid_removed=%s stale_removed=%s valid_remaining=%s",
            summary.total_subscriptions,
            summary.invalid_removed,
            summary.stale_removed,
            summary.valid_remaining,
        )
        return summary
