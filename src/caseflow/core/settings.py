"""
Centralized settings for caseflow.

One validated, cached settings object holds every tunable of the runner,
the quota engine and the alert dispatcher. Values come from ``CASEFLOW_*``
environment variables or a ``.env`` file.

Examples:
    >>> from caseflow.core.settings import get_settings
    >>> settings = get_settings()
    >>> settings.global_concurrency
    2

    Overriding for one process::

        CASEFLOW_GLOBAL_CONCURRENCY=4 CASEFLOW_ALERT_WEBHOOK_URL=https://hooks.slack.com/... caseflow jobs requeue-stale

Tags:
    caseflow-core, configuration, settings, pydantic, caching

Doc-Types:
    api-reference
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CaseflowSettings(BaseSettings):
    """Caseflow configuration.

    Fields
    ──────
    database_url            : Backing store for ledger, usage and job rows
    global_concurrency      : Max jobs the runner executes at once
    stale_threshold_minutes : Age after which a "processing" row is reclaimed
    max_retries             : Retries after the first attempt
    base_delay_seconds      : Backoff base; delay = base * 2**attempt + jitter
    jitter_max_seconds      : Upper bound of the uniform jitter
    sweep_interval_seconds  : Period of the stale-job sweeper
    alert_webhook_url       : Outbound notification endpoint (None = log only)
    throttle_minutes        : Per (type, throttle_key) alert dedup window
    failure_window_minutes  : Sliding window for failure-spike detection
    failure_spike_threshold : Failures in window that trigger a spike alert
    backlog_threshold       : Queue depth that triggers a backlog alert
    """

    model_config = SettingsConfigDict(
        env_prefix="CASEFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Storage ──────────────────────────────────────────────────
    database_url: str = Field(default="sqlite:///data/caseflow.db")

    # ── Job runner ───────────────────────────────────────────────
    global_concurrency: int = Field(default=2, ge=1)
    stale_threshold_minutes: int = Field(default=15, ge=1)
    max_retries: int = Field(default=3, ge=0)
    base_delay_seconds: float = Field(default=2.0, ge=0)
    jitter_max_seconds: float = Field(default=1.0, ge=0)
    sweep_interval_seconds: int = Field(default=300, ge=1)

    # ── Alerting ─────────────────────────────────────────────────
    alert_webhook_url: str | None = Field(default=None)
    alert_timeout_seconds: float = Field(default=10.0, gt=0)
    throttle_minutes: int = Field(default=15, ge=0)
    failure_window_minutes: int = Field(default=10, ge=1)
    failure_spike_threshold: int = Field(default=10, ge=1)
    backlog_threshold: int = Field(default=20, ge=0)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    @field_validator("alert_webhook_url")
    @classmethod
    def _blank_url_is_none(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value

    @field_validator("log_format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        if value not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return value


_settings_cache: dict[str, CaseflowSettings] = {}


def get_settings(*, _force_reload: bool = False) -> CaseflowSettings:
    """Load, validate, and cache a :class:`CaseflowSettings` instance."""
    if _force_reload or "default" not in _settings_cache:
        _settings_cache["default"] = CaseflowSettings()
    return _settings_cache["default"]


def clear_settings_cache() -> None:
    """Drop the cached settings (tests and CLI overrides)."""
    _settings_cache.clear()


__all__ = ["CaseflowSettings", "get_settings", "clear_settings_cache"]
