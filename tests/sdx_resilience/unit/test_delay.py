from __future__ import annotations

import random

import pytest
from tenacity import RetryCallState

from sdx_resilience.retry import (
    RetryPolicy,
    calculate_delay,
    wait_capped_exponential_jitter,
)


@pytest.mark.parametrize(
    ("attempt", "expected"),
    [
        (1, 1.0),
        (2, 2.0),
        (3, 4.0),
        (5, 16.0),
        (6, 30.0),
        (40, 30.0),
    ],
)
def test_delay_without_jitter_is_capped_exponential(
    attempt: int,
    expected: float,
) -> None:
    policy = RetryPolicy(jitter=False)

    assert calculate_delay(attempt, policy) == expected


def test_delay_uses_backoff_factor_and_initial_delay() -> None:
    policy = RetryPolicy(
        initial_delay=0.25,
        max_delay=100.0,
        backoff_factor=3.0,
        jitter=False,
    )

    assert [calculate_delay(n, policy) for n in range(1, 5)] == [
        0.25,
        0.75,
        2.25,
        6.75,
    ]


def test_backoff_factor_of_one_keeps_delay_constant() -> None:
    policy = RetryPolicy(initial_delay=0.5, backoff_factor=1.0, jitter=False)

    assert {calculate_delay(n, policy) for n in range(1, 10)} == {0.5}


def test_huge_attempt_numbers_saturate_at_max_delay() -> None:
    policy = RetryPolicy(max_delay=12.0, jitter=False)

    assert calculate_delay(5000, policy) == 12.0
    assert calculate_delay(5000, RetryPolicy(backoff_factor=2, jitter=False)) == 30.0


def test_jitter_scales_into_half_open_range() -> None:
    policy = RetryPolicy(initial_delay=1.0, max_delay=30.0)

    assert calculate_delay(3, policy, random_fn=lambda: 0.0) == 2.0
    assert calculate_delay(3, policy, random_fn=lambda: 0.5) == 3.0
    assert calculate_delay(3, policy, random_fn=lambda: 0.999) < 4.0


def test_jittered_delay_samples_stay_within_bounds() -> None:
    rng = random.Random(1234)
    policy = RetryPolicy(initial_delay=0.2, max_delay=5.0)

    for attempt in range(1, 12):
        capped = min(0.2 * 2.0 ** (attempt - 1), 5.0)
        for _ in range(50):
            delay = calculate_delay(attempt, policy, random_fn=rng.random)
            assert 0.5 * capped <= delay < capped


def test_jitter_is_sampled_independently_per_call() -> None:
    samples = iter([0.0, 0.5])
    policy = RetryPolicy(initial_delay=1.0)

    first = calculate_delay(1, policy, random_fn=lambda: next(samples))
    second = calculate_delay(1, policy, random_fn=lambda: next(samples))

    assert first == 0.5
    assert second == 0.75


def test_attempt_must_be_positive() -> None:
    with pytest.raises(ValueError, match="attempt must be >= 1"):
        calculate_delay(0, RetryPolicy())


def test_wait_strategy_uses_retry_state_attempt_number() -> None:
    policy = RetryPolicy(initial_delay=0.1, jitter=False)
    wait = wait_capped_exponential_jitter(policy)
    retry_state = RetryCallState(retry_object=None, fn=None, args=(), kwargs={})  # type: ignore[arg-type]

    assert wait(retry_state) == 0.1
    retry_state.attempt_number = 3
    assert wait(retry_state) == 0.4
