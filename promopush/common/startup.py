"""One startup line per service: selected env keys plus the effective push mode."""

import os

from promopush.common.config import CommonSettings
from promopush.common.logging import logger


SECRET_MARKERS = ("PRIVATE", "SECRET", "PASSWORD", "TOKEN", "DSN")


def _safe_env(name: str) -> str:
    """Env value, or a placeholder for unset keys and anything credential-like (VAPID key, DSN)."""

    value = os.getenv(name)
    if value is None:
        return "<unset>"
    if any(marker in name for marker in SECRET_MARKERS):
        return "<redacted>"
    return value


def log_startup_config(config: CommonSettings, keys: list[str]) -> None:
    """Log `keys` (redacted) with the push transport this process would build."""

    summary = {
        "service": config.service_name,
        "push_mode": config.push_mode,
        "tracing": config.tracing_enabled,
    }
    summary.update({key: _safe_env(key) for key in keys})
    logger.info("startup_config=%s", summary)
