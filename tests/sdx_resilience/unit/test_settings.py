from __future__ import annotations

import asyncio

import pytest
from pydantic import ValidationError

from sdx_resilience.circuit_breaker import CircuitBreakerConfig
from sdx_resilience.retry import RetryPolicy
from sdx_resilience.settings import ResilienceSettings, prefixed_settings_config


def test_settings_defaults_match_primitive_defaults() -> None:
    settings = ResilienceSettings()

    assert settings.log_level == "INFO"
    assert settings.retry_policy() == RetryPolicy()
    assert settings.breaker_config() == CircuitBreakerConfig()


def test_settings_read_prefixed_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SDX_RESILIENCE_RETRY_MAX_RETRIES", "5")
    monkeypatch.setenv("SDX_RESILIENCE_RETRY_INITIAL_DELAY", "0.5")
    monkeypatch.setenv("sdx_resilience_retry_jitter", "false")
    monkeypatch.setenv("SDX_RESILIENCE_BREAKER_FAILURE_THRESHOLD", "2")
    monkeypatch.setenv("SDX_RESILIENCE_BREAKER_RESET_TIMEOUT", "12.5")
    monkeypatch.setenv("SDX_RESILIENCE_LOG_LEVEL", " debug ")

    settings = ResilienceSettings()
    policy = settings.retry_policy()
    config = settings.breaker_config()

    assert settings.log_level == "DEBUG"
    assert policy.max_retries == 5
    assert policy.initial_delay == 0.5
    assert policy.jitter is False
    assert config.failure_threshold == 2
    assert config.reset_timeout == 12.5
    assert config.half_open_max == 3


def test_retry_policy_accepts_hook_overrides() -> None:
    cancellation = asyncio.Event()

    def _never(error: Exception, attempt: int) -> bool:
        return False

    policy = ResilienceSettings().retry_policy(
        retry_condition=_never,
        cancellation=cancellation,
        max_retries=0,
    )

    assert policy.retry_condition is _never
    assert policy.cancellation is cancellation
    assert policy.max_retries == 0


def test_breaker_config_accepts_overrides() -> None:
    config = ResilienceSettings().breaker_config(
        half_open_max=1,
        excluded_exceptions=(KeyError,),
    )

    assert config.half_open_max == 1
    assert config.excluded_exceptions == (KeyError,)


@pytest.mark.parametrize(
    "overrides",
    [
        {"log_level": "TRACE"},
        {"retry_max_retries": -1},
        {"retry_initial_delay": -0.5},
        {"retry_initial_delay": 10.0, "retry_max_delay": 1.0},
        {"retry_backoff_factor": 0.5},
        {"breaker_failure_threshold": 0},
        {"breaker_reset_timeout": -1.0},
        {"breaker_half_open_max": 0},
    ],
)
def test_settings_reject_invalid_values(overrides: dict[str, object]) -> None:
    with pytest.raises(ValidationError):
        ResilienceSettings(**overrides)  # type: ignore[arg-type]


def test_prefixed_settings_config_is_case_insensitive() -> None:
    config = prefixed_settings_config("MY_APP_")

    assert config["env_prefix"] == "MY_APP_"
    assert config["case_sensitive"] is False
