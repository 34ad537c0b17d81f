"""Retry intent state machine enforced by the retry scheduler."""

from promopush.common.errors import InvalidTransitionError


PENDING = "pending"
RETRYING = "retrying"
SUCCESS = "success"
FAILED = "failed"

ELIGIBLE_STATUSES: tuple[str, ...] = (PENDING, RETRYING)
TERMINAL_STATUSES: tuple[str, ...] = (SUCCESS, FAILED)

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    PENDING: {RETRYING, SUCCESS, FAILED},
    RETRYING: {RETRYING, SUCCESS, FAILED},
    SUCCESS: set(),
    FAILED: set(),
}


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def validate_transition(current: str, new: str) -> None:
    """Raise when a transition is not allowed by the state machine."""

    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(f"Invalid transition: {current} -> {new}")
