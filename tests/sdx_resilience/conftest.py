from __future__ import annotations

import pytest

from tests.sdx_resilience.support.fakes import FakeClock, FakeLogger, RecordingSleep


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def fake_clock() -> FakeClock:
    """Provide a manually advanced wall clock per test."""
    return FakeClock()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    """Provide a sleep replacement that records delays without waiting."""
    return RecordingSleep()
