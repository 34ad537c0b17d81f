"""Delivery analytics: derive rates and breakdowns from delivery logs."""

from collections import Counter
from collections.abc import Iterable
from datetime import date, datetime, timedelta

from promopush.common.db import as_utc, utcnow
from promopush.common.errors import AggregationError, ValidationError
from promopush.common.logging import logger
from promopush.common.metrics import analytics_rows_skipped_total
from promopush.common.notification_types import NotificationType
from promopush.services.analytics.schemas import (
    AnalyticsSnapshot,
    DailyCounts,
    NamedCount,
    RecentNotification,
)
from promopush.services.dispatcher.repository import DeliveryLogRepository


TOP_TYPES = 5
DAILY_WINDOW = 14
RANGE_PRESETS: dict[str, int] = {"7d": 7, "30d": 30, "90d": 90}


def _rate(part: int, whole: int) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


def _checked(row) -> tuple[datetime, bool, bool, str]:
    sent_at = as_utc(getattr(row, "sent_at", None))
    if sent_at is None:
        raise AggregationError(f"log {getattr(row, 'id', '?')} has no sent_at")
    delivered = bool(getattr(row, "delivered", False))
    clicked = bool(getattr(row, "clicked", False))
    if clicked and not delivered:
        raise AggregationError(f"log {getattr(row, 'id', '?')} clicked without delivery")
    return sent_at, delivered, clicked, NotificationType.parse(getattr(row, "type", None)).value


def build_snapshot(rows: Iterable, since: datetime | None = None, recent_limit: int = 10) -> AnalyticsSnapshot:
    """Fold log rows into a snapshot. Malformed rows are skipped, not fatal."""

    valid = []
    skipped = 0
    for row in rows:
        try:
            valid.append((row, *_checked(row)))
        except AggregationError as exc:
            skipped += 1
            logger.warning("analytics_row_skipped reason=%s", exc)

    total_sent = len(valid)
    total_delivered = sum(1 for _, _, delivered, _, _ in valid if delivered)
    total_clicked = sum(1 for _, _, _, clicked, _ in valid if clicked)

    type_counts = Counter(ntype for _, _, _, _, ntype in valid)
    # Ties keep a stable, name-ordered result.
    by_type = sorted(type_counts.items(), key=lambda item: (-item[1], item[0]))[:TOP_TYPES]

    status_counts = {
        "delivered": total_delivered,
        "undelivered": total_sent - total_delivered,
        "clicked": total_clicked,
    }

    days: dict[date, DailyCounts] = {}
    for _, sent_at, delivered, clicked, _ in valid:
        bucket = days.setdefault(sent_at.date(), DailyCounts(date=sent_at.date()))
        bucket.sent += 1
        bucket.delivered += int(delivered)
        bucket.clicked += int(clicked)
    by_day = [days[key] for key in sorted(days)][-DAILY_WINDOW:]

    newest_first = sorted(valid, key=lambda item: item[1], reverse=True)[:recent_limit]
    recent = [
        RecentNotification(
            title=getattr(row, "title", "") or "",
            sent_at=sent_at,
            delivered=delivered,
            clicked=clicked,
            type=ntype,
        )
        for row, sent_at, delivered, clicked, ntype in newest_first
    ]

    return AnalyticsSnapshot(
        since=since,
        total_sent=total_sent,
        total_delivered=total_delivered,
        total_clicked=total_clicked,
        total_failed=total_sent - total_delivered,
        delivery_rate=_rate(total_delivered, total_sent),
        click_rate=_rate(total_clicked, total_delivered),
        by_type=[NamedCount(name=name, count=count) for name, count in by_type],
        by_status=[NamedCount(name=name, count=count) for name, count in status_counts.items() if count > 0],
        by_day=by_day,
        recent=recent,
        skipped_rows=skipped,
    )


class DeliveryAnalytics:
    """Read-only aggregation over the delivery log table."""

    def __init__(self, logs: DeliveryLogRepository, service_name: str = "analytics", recent_limit: int = 10) -> None:
        self.logs = logs
        self.service_name = service_name
        self.recent_limit = recent_limit

    def aggregate(self, since: datetime) -> AnalyticsSnapshot:
        snapshot = build_snapshot(self.logs.list_since(since), since=since, recent_limit=self.recent_limit)
        if snapshot.skipped_rows:
            analytics_rows_skipped_total.labels(service=self.service_name).inc(snapshot.skipped_rows)
        return snapshot

    def aggregate_range(self, range_key: str, now: datetime | None = None) -> AnalyticsSnapshot:
        """Aggregate over a named window (`7d`, `30d`, `90d`)."""

        days = RANGE_PRESETS.get(range_key)
        if days is None:
            raise ValidationError(f"unknown range {range_key!r}; expected one of {sorted(RANGE_PRESETS)}")
        return self.aggregate((now or utcnow()) - timedelta(days=days))
