"""Retry intent reads/writes with claim and terminal-state guards."""

from datetime import datetime

from sqlalchemy import or_, select, update

from promopush.common.state_machine import ELIGIBLE_STATUSES
from promopush.services.retry.models import RetryIntent


class RetryIntentRepository:
    """Access to `push_notification_retries`."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    def add(self, intent: RetryIntent) -> RetryIntent:
        with self.session_factory() as db:
            db.add(intent)
            db.commit()
        return intent

    def get(self, intent_id: str) -> RetryIntent | None:
        with self.session_factory() as db:
            return db.get(RetryIntent, intent_id)

    def list_by_status(self, status: str, limit: int = 100) -> list[RetryIntent]:
        with self.session_factory() as db:
            rows = db.execute(
                select(RetryIntent)
                .where(RetryIntent.status == status)
                .order_by(RetryIntent.created_at.desc())
                .limit(limit)
            ).scalars()
            return list(rows)

    def due(self, now: datetime, limit: int) -> list[RetryIntent]:
        """Eligible intents whose retry time has come, oldest schedule first."""

        with self.session_factory() as db:
            rows = db.execute(
                select(RetryIntent)
                .where(
                    RetryIntent.status.in_(ELIGIBLE_STATUSES),
                    RetryIntent.next_retry_at <= now,
                    RetryIntent.attempt_count < RetryIntent.max_attempts,
                )
                .order_by(RetryIntent.next_retry_at)
                .limit(limit)
            ).scalars()
            return list(rows)

    def claim(self, intent: RetryIntent, now: datetime, stale_before: datetime) -> bool:
        """Compare-and-set `claimed_at` against the row as it was selected.

        False when another run holds a fresh claim, or has already written an
        outcome since `intent` was read (status or attempt count moved, or the
        row was rescheduled into the future).
        """

        with self.session_factory() as db:
            result = db.execute(
                update(RetryIntent)
                .where(
                    RetryIntent.id == intent.id,
                    RetryIntent.status == intent.status,
                    RetryIntent.status.in_(ELIGIBLE_STATUSES),
                    RetryIntent.attempt_count == intent.attempt_count,
                    RetryIntent.next_retry_at <= now,
                    or_(RetryIntent.claimed_at.is_(None), RetryIntent.claimed_at < stale_before),
                )
                .values(claimed_at=now)
            )
            db.commit()
            return result.rowcount == 1

    def apply(self, intent: RetryIntent, values: dict) -> bool:
        """Write an outcome only if the row still matches the claimed snapshot.

        Terminal rows never match, so they are never changed again. The claim is
        released in the same statement.
        """

        with self.session_factory() as db:
            result = db.execute(
                update(RetryIntent)
                .where(
                    RetryIntent.id == intent.id,
                    RetryIntent.status == intent.status,
                    RetryIntent.attempt_count == intent.attempt_count,
                )
                .values(**values, claimed_at=None)
            )
            db.commit()
            return result.rowcount == 1
