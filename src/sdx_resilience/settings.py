from __future__ import annotations

from typing import Any

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sdx_resilience.circuit_breaker import CircuitBreakerConfig
from sdx_resilience.logging import get_log_level_value
from sdx_resilience.retry import RetryPolicy


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class ResilienceSettings(BaseSettings):
    """Environment-driven defaults for retry policies and circuit breakers."""

    model_config = prefixed_settings_config("SDX_RESILIENCE_")

    log_level: str = "INFO"

    retry_max_retries: int = 3
    retry_initial_delay: float = 1.0
    retry_max_delay: float = 30.0
    retry_backoff_factor: float = 2.0
    retry_jitter: bool = True

    breaker_failure_threshold: int = 5
    breaker_reset_timeout: float = 30.0
    breaker_half_open_max: int = 3

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        get_log_level_value(value)
        return value.strip().upper()

    @model_validator(mode="after")
    def _validate_resilience_settings(self) -> ResilienceSettings:
        if self.retry_max_retries < 0:
            raise ValueError("retry_max_retries must be >= 0")
        if self.retry_initial_delay < 0:
            raise ValueError("retry_initial_delay must be >= 0")
        if self.retry_max_delay < self.retry_initial_delay:
            raise ValueError("retry_max_delay must be >= retry_initial_delay")
        if self.retry_backoff_factor < 1:
            raise ValueError("retry_backoff_factor must be >= 1")
        if self.breaker_failure_threshold < 1:
            raise ValueError("breaker_failure_threshold must be >= 1")
        if self.breaker_reset_timeout < 0:
            raise ValueError("breaker_reset_timeout must be >= 0")
        if self.breaker_half_open_max < 1:
            raise ValueError("breaker_half_open_max must be >= 1")
        return self

    def retry_policy(self, **overrides: Any) -> RetryPolicy:
        """Build a ``RetryPolicy`` from settings, applying keyword overrides.

        Hooks that cannot come from the environment (``retry_condition``,
        ``on_retry``, ``cancellation``) are passed as overrides.
        """
        values: dict[str, Any] = {
            "max_retries": self.retry_max_retries,
            "initial_delay": self.retry_initial_delay,
            "max_delay": self.retry_max_delay,
            "backoff_factor": self.retry_backoff_factor,
            "jitter": self.retry_jitter,
        }
        values.update(overrides)
        return RetryPolicy(**values)

    def breaker_config(self, **overrides: Any) -> CircuitBreakerConfig:
        """Build a ``CircuitBreakerConfig`` from settings and overrides."""
        values: dict[str, Any] = {
            "failure_threshold": self.breaker_failure_threshold,
            "reset_timeout": self.breaker_reset_timeout,
            "half_open_max": self.breaker_half_open_max,
        }
        values.update(overrides)
        return CircuitBreakerConfig(**values)
