"""Retry scheduler: re-dispatch failed notifications with backoff.

Each run is a stateless batch: select due intents, claim them, dispatch, and
write the outcome back. Intents move `pending -> retrying -> success|failed`;
terminal rows are kept for audit and never touched again.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from promopush.common.config import CommonSettings
from promopush.common.db import utcnow
from promopush.common.logging import log_context, logger
from promopush.common.metrics import (
    retry_claim_conflicts_total,
    retry_intents_created_total,
    retry_outcomes_total,
)
from promopush.common.notification_types import NotificationType
from promopush.common.state_machine import FAILED, PENDING, RETRYING, SUCCESS, validate_transition
from promopush.common.tracing import push_span
from promopush.services.dispatcher.service import DispatchResult, NotificationDispatcher
from promopush.services.retry.backoff import backoff
from promopush.services.retry.models import RetryIntent
from promopush.services.retry.repository import RetryIntentRepository


@dataclass
class RetryRunSummary:
    processed: int = 0
    successful: int = 0
    failed: int = 0
    permanent_failures: int = 0
    skipped: int = 0

    def as_response(self) -> dict[str, int]:
        return {
            "processed": self.processed,
            "successful": self.successful,
            "failed": self.failed,
            "permanentFailures": self.permanent_failures,
        }


class RetryScheduler:
    """Owns retry intent creation and the periodic retry batch."""

    def __init__(
        self,
        repository: RetryIntentRepository,
        dispatcher: NotificationDispatcher,
        config: CommonSettings,
    ) -> None:
        self.repository = repository
        self.dispatcher = dispatcher
        self.batch_size = config.retry_batch_size
        self.max_attempts = config.retry_max_attempts
        self.claim_timeout = timedelta(seconds=config.retry_claim_timeout_seconds)
        self.short_circuit_permanent = config.retry_short_circuit_permanent
        self.service_name = config.service_name

    def schedule(
        self,
        user_id: str,
        title: str,
        body: str,
        data: dict[str, Any] | None,
        notification_type: NotificationType | str | None,
        error: str | None,
        subscription_id: str | None = None,
        now: datetime | None = None,
    ) -> RetryIntent:
        """Persist a `pending` intent for a delivery whose first attempt failed."""

        now = now or utcnow()
        intent = self.repository.add(
            RetryIntent(
                user_id=user_id,
                subscription_id=subscription_id,
                title=title,
                body=body,
                data=data or {},
                notification_type=NotificationType.parse(notification_type).value,
                status=PENDING,
                attempt_count=0,
                max_attempts=self.max_attempts,
                last_attempt_at=now,
                next_retry_at=now + backoff(0),
                last_error=error,
                created_at=now,
            )
        )
        retry_intents_created_total.labels(service=self.service_name).inc()
        logger.info(
            "retry_scheduled retry_id=%s user_id=%s subscription_id=%s next_retry_at=%s",
            intent.id,
            user_id,
            subscription_id,
            intent.next_retry_at.isoformat(),
        )
        return intent

    def schedule_failures(
        self,
        result: DispatchResult,
        user_id: str,
        title: str,
        body: str,
        data: dict[str, Any] | None,
        notification_type: NotificationType | str | None,
    ) -> list[RetryIntent]:
        """One intent per transiently failed subscription; gone endpoints are not retried."""

        return [
            self.schedule(
                user_id,
                title,
                body,
                data,
                notification_type,
                error=result.errors.get(subscription_id),
                subscription_id=subscription_id,
            )
            for subscription_id in result.transient_failure_ids
        ]

    async def run_once(self, now: datetime | None = None) -> RetryRunSummary:
        """Process one capped batch of due intents."""

        now = now or utcnow()
        summary = RetryRunSummary()
        intents = self.repository.due(now, self.batch_size)
        logger.info("retry_run_started due=%s", len(intents))
        for intent in intents:
            if not self.repository.claim(intent, now, stale_before=now - self.claim_timeout):
                summary.skipped += 1
                retry_claim_conflicts_total.labels(service=self.service_name).inc()
                logger.info("retry_claim_conflict retry_id=%s", intent.id)
                continue
            with log_context(retry_id=intent.id):
                with push_span("retry.process", {"retry.attempt": intent.attempt_count + 1}):
                    await self._process(intent, now, summary)
        logger.info(
            "retry_run_finished processed=%s successful=%s failed=%s permanent_failures=%s skipped=%s",
            summary.processed,
            summary.successful,
            summary.failed,
            summary.permanent_failures,
            summary.skipped,
        )
        return summary

    async def _process(self, intent: RetryIntent, now: datetime, summary: RetryRunSummary) -> None:
        result: DispatchResult | None = None
        try:
            result = await self.dispatcher.dispatch(
                intent.user_id,
                intent.title,
                intent.body,
                data=intent.data,
                notification_type=intent.notification_type,
                subscription_ids=[intent.subscription_id] if intent.subscription_id else None,
            )
            error = result.error or ("no active subscriptions" if result.attempted == 0 else None)
        except Exception as exc:
            logger.exception("retry_dispatch_error retry_id=%s", intent.id)
            error = str(exc) or exc.__class__.__name__

        if result is not None and result.sent_count > 0:
            if not self._transition(intent, SUCCESS, {"status": SUCCESS, "last_attempt_at": now}, summary):
                return
            summary.successful += 1
            retry_outcomes_total.labels(service=self.service_name, outcome=SUCCESS).inc()
            logger.info("retry_succeeded retry_id=%s attempt=%s", intent.id, intent.attempt_count + 1)
            return

        attempt_count = intent.attempt_count + 1
        undeliverable = self.short_circuit_permanent and result is not None and result.undeliverable
        if attempt_count >= intent.max_attempts or undeliverable:
            applied = self._transition(
                intent,
                FAILED,
                {
                    "status": FAILED,
                    "attempt_count": attempt_count,
                    "last_attempt_at": now,
                    "last_error": error,
                },
                summary,
            )
            if not applied:
                return
            summary.failed += 1
            summary.permanent_failures += 1
            retry_outcomes_total.labels(service=self.service_name, outcome=FAILED).inc()
            logger.warning(
                "retry_failed_permanently retry_id=%s attempts=%s undeliverable=%s error=%s",
                intent.id,
                attempt_count,
                undeliverable,
                error,
            )
            return

        next_retry_at = now + backoff(attempt_count)
        applied = self._transition(
            intent,
            RETRYING,
            {
                "status": RETRYING,
                "attempt_count": attempt_count,
                "last_attempt_at": now,
                "next_retry_at": next_retry_at,
                "last_error": error,
            },
            summary,
        )
        if not applied:
            return
        summary.failed += 1
        retry_outcomes_total.labels(service=self.service_name, outcome=RETRYING).inc()
        logger.info(
            "retry_rescheduled retry_id=%s attempts=%s next_retry_at=%s error=%s",
            intent.id,
            attempt_count,
            next_retry_at.isoformat(),
            error,
        )

    def _transition(self, intent: RetryIntent, new_status: str, values: dict, summary: RetryRunSummary) -> bool:
        validate_transition(intent.status, new_status)
        if not self.repository.apply(intent, values):
            # Another writer moved the row first; its outcome stands.
            summary.skipped += 1
            retry_claim_conflicts_total.labels(service=self.service_name).inc()
            logger.warning(
                "retry_outcome_conflict retry_id=%s expected_status=%s expected_attempts=%s",
                intent.id,
                intent.status,
                intent.attempt_count,
            )
            return False
        summary.processed += 1
        return True
