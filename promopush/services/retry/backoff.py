"""Fixed retry backoff table."""

from datetime import timedelta

# Indexed by attempt count; the last entry repeats for anything beyond.
BACKOFF_MINUTES: tuple[int, ...] = (5, 15, 60, 180)


def backoff(attempt_count: int) -> timedelta:
    index = min(max(attempt_count, 0), len(BACKOFF_MINUTES) - 1)
    return timedelta(minutes=BACKOFF_MINUTES[index])
