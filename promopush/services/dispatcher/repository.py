"""Delivery log reads/writes used by the dispatcher and analytics."""

from datetime import datetime

from sqlalchemy import select

from promopush.common.db import utcnow
from promopush.common.errors import NotFoundError, ValidationError
from promopush.services.dispatcher.models import DeliveryLog


class DeliveryLogRepository:
    """Append-only access to `notification_logs`."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    def append(
        self,
        *,
        user_id: str,
        title: str,
        notification_type: str,
        delivered: bool,
        subscription_id: str | None = None,
        error: str | None = None,
        delivery_id: str | None = None,
        sent_at: datetime | None = None,
    ) -> DeliveryLog:
        entry = DeliveryLog(
            user_id=user_id,
            subscription_id=subscription_id,
            title=title,
            type=notification_type,
            sent_at=sent_at or utcnow(),
            delivered=delivered,
            clicked=False,
            error=error,
        )
        if delivery_id is not None:
            entry.id = delivery_id
        with self.session_factory() as db:
            db.add(entry)
            db.commit()
        return entry

    def mark_clicked(self, delivery_id: str, at: datetime | None = None) -> DeliveryLog:
        """Flag a delivered entry as clicked; repeated reports keep the first click."""

        with self.session_factory() as db:
            entry = db.get(DeliveryLog, delivery_id)
            if entry is None:
                raise NotFoundError(f"delivery {delivery_id} not found")
            if not entry.delivered:
                raise ValidationError(f"delivery {delivery_id} was never delivered")
            if not entry.clicked:
                entry.clicked = True
                entry.clicked_at = at or utcnow()
                db.commit()
            return entry

    def list_since(self, since: datetime) -> list[DeliveryLog]:
        """Entries sent at or after `since`, newest first."""

        with self.session_factory() as db:
            rows = db.execute(
                select(DeliveryLog).where(DeliveryLog.sent_at >= since).order_by(DeliveryLog.sent_at.desc())
            ).scalars()
            return list(rows)
