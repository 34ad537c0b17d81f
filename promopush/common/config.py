"""Central environment-driven settings shared by all push services.

Each service process loads this once at startup. Components receive the
settings object at construction; long-running processes that need to pick up
changed values read through `SettingsProvider` instead of a global cache.
"""

import time
from typing import Callable

from pydantic_settings import BaseSettings, SettingsConfigDict


class CommonSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "unknown-service"
    log_level: str = "INFO"
    postgres_dsn: str
    otel_exporter_otlp_endpoint: str = "http://otel-collector:4318/v1/traces"
    tracing_enabled: bool = True
    vapid_public_key: str = ""
    vapid_private_key: str = ""
    vapid_subject: str = "mailto:ops@example.com"
    push_enabled: bool = True
    push_timeout_seconds: float = 5.0
    push_ttl_seconds: int = 86400
    retry_batch_size: int = 50
    retry_max_attempts: int = 3
    retry_claim_timeout_seconds: int = 300
    retry_short_circuit_permanent: bool = True
    stale_subscription_days: int = 60
    analytics_recent_limit: int = 10
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def push_mode(self) -> str:
        """`webpush` when VAPID sending is configured, otherwise `null` (messages dropped)."""

        return "webpush" if self.push_enabled and self.vapid_private_key else "null"


class SettingsProvider:
    """Hold one settings snapshot and reload it once it is older than `ttl_seconds`.

    Batch endpoints read `current` at the start of every run, so a changed batch
    size, attempt cap or staleness window applies from the next run without a
    restart. Process-wide concerns (engine, logging, tracing) keep the snapshot
    taken at import.
    """

    def __init__(
        self,
        loader: Callable[[], CommonSettings] = CommonSettings,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._loader = loader
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._current = loader()
        self._loaded_at = clock()

    @property
    def current(self) -> CommonSettings:
        if self._clock() - self._loaded_at >= self._ttl_seconds:
            self.refresh()
        return self._current

    def refresh(self) -> CommonSettings:
        """Reload settings unconditionally and restart the TTL window."""

        self._current = self._loader()
        self._loaded_at = self._clock()
        return self._current


def as_provider(config: "CommonSettings | SettingsProvider") -> SettingsProvider:
    """Treat a fixed settings object as a provider that never reloads."""

    if isinstance(config, SettingsProvider):
        return config
    return SettingsProvider(lambda: config, ttl_seconds=float("inf"))


settings_provider = SettingsProvider()
settings = settings_provider.current
