"""Closed set of notification categories used for display and aggregation."""

from enum import Enum


class NotificationType(str, Enum):
    SUBMISSION_APPROVED = "submission_approved"
    SUBMISSION_REJECTED = "submission_rejected"
    SUBMISSION_RECEIVED = "submission_received"
    EVENT_REMINDER = "event_reminder"
    GOAL_ACHIEVED = "goal_achieved"
    ADMIN_MESSAGE = "admin_message"
    GENERAL = "general"
    OTHER = "other"

    @classmethod
    def parse(cls, value: "str | NotificationType | None") -> "NotificationType":
        """Map any stored/incoming value onto the enum; unknown values become `OTHER`."""

        if isinstance(value, cls):
            return value
        if not value:
            return cls.OTHER
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.OTHER
