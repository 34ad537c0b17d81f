"""Subscription registry: owns the `push_subscriptions` table."""

from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import delete, select, update

from promopush.common.db import utcnow
from promopush.common.errors import ValidationError
from promopush.common.logging import logger
from promopush.services.registry.keys import is_base64url
from promopush.services.registry.models import PushSubscription


class SubscriptionRegistry:
    """Register, list, touch and remove device subscriptions."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    def _validate(self, user_id: str, endpoint: str, p256dh: str, auth: str) -> None:
        if not user_id or not user_id.strip():
            raise ValidationError("user_id is required")
        if not endpoint or not endpoint.strip():
            raise ValidationError("endpoint is required")
        if not is_base64url(p256dh):
            raise ValidationError("p256dh must be base64url encoded")
        if not is_base64url(auth):
            raise ValidationError("auth must be base64url encoded")

    def register(
        self,
        user_id: str,
        endpoint: str,
        p256dh: str,
        auth: str,
        user_agent: str | None = None,
    ) -> PushSubscription:
        """Store a subscription; an endpoint seen before is re-keyed in place."""

        self._validate(user_id, endpoint, p256dh, auth)
        endpoint = endpoint.strip()
        now = utcnow()
        with self.session_factory() as db:
            existing = db.execute(
                select(PushSubscription).where(PushSubscription.endpoint == endpoint)
            ).scalar_one_or_none()
            if existing is not None:
                existing.user_id = user_id
                existing.p256dh = p256dh
                existing.auth = auth
                existing.user_agent = user_agent
                existing.last_used_at = now
                db.commit()
                logger.info("subscription_rekeyed subscription_id=%s user_id=%s", existing.id, user_id)
                return existing

            subscription = PushSubscription(
                user_id=user_id,
                endpoint=endpoint,
                p256dh=p256dh,
                auth=auth,
                user_agent=user_agent,
                created_at=now,
                last_used_at=now,
            )
            db.add(subscription)
            db.commit()
            logger.info("subscription_registered subscription_id=%s user_id=%s", subscription.id, user_id)
            return subscription

    def list_active(self, user_id: str) -> list[PushSubscription]:
        with self.session_factory() as db:
            rows = db.execute(
                select(PushSubscription)
                .where(PushSubscription.user_id == user_id)
                .order_by(PushSubscription.created_at)
            ).scalars()
            return list(rows)

    def list_all(self) -> list[PushSubscription]:
        with self.session_factory() as db:
            return list(db.execute(select(PushSubscription)).scalars())

    def get(self, subscription_id: str) -> PushSubscription | None:
        with self.session_factory() as db:
            return db.get(PushSubscription, subscription_id)

    def touch(self, subscription_id: str, at: datetime | None = None) -> None:
        """Bump `last_used_at`; a row deleted meanwhile is silently ignored."""

        with self.session_factory() as db:
            db.execute(
                update(PushSubscription)
                .where(PushSubscription.id == subscription_id)
                .values(last_used_at=at or utcnow())
            )
            db.commit()

    def remove(self, subscription_id: str) -> bool:
        return self.remove_many([subscription_id]) == 1

    def remove_many(self, subscription_ids: Iterable[str]) -> int:
        ids = list(subscription_ids)
        if not ids:
            return 0
        with self.session_factory() as db:
            result = db.execute(delete(PushSubscription).where(PushSubscription.id.in_(ids)))
            db.commit()
            return result.rowcount or 0

    def remove_unused_since(self, cutoff: datetime) -> int:
        """Delete subscriptions whose `last_used_at` is older than `cutoff`."""

        with self.session_factory() as db:
            result = db.execute(delete(PushSubscription).where(PushSubscription.last_used_at < cutoff))
            db.commit()
            return result.rowcount or 0

    def unregister(self, user_id: str, endpoint: str) -> bool:
        """Remove one device, scoped by owner so users cannot drop others' devices."""

        with self.session_factory() as db:
            result = db.execute(
                delete(PushSubscription).where(
                    PushSubscription.user_id == user_id,
                    PushSubscription.endpoint == endpoint.strip(),
                )
            )
            db.commit()
            return (result.rowcount or 0) > 0
