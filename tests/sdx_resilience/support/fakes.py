from __future__ import annotations

from datetime import UTC, datetime, timedelta


class FakeLogger:
    """Capture structured logger events for assertions."""

    def __init__(self) -> None:
        self.events: list[str] = []
        self.calls: list[tuple[str, str, dict[str, object]]] = []

    def _record(self, level: str, event: str, **kwargs: object) -> None:
        self.events.append(event)
        self.calls.append((level, event, kwargs))

    def info(self, event: str, **kwargs: object) -> None:
        self._record("info", event, **kwargs)

    def warning(self, event: str, **kwargs: object) -> None:
        self._record("warning", event, **kwargs)

    def error(self, event: str, **kwargs: object) -> None:
        self._record("error", event, **kwargs)

    def exception(self, event: str, **kwargs: object) -> None:
        self._record("exception", event, **kwargs)


class FakeClock:
    """Manually advanced UTC wall clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = datetime(2020, 1, 1, tzinfo=UTC) if start is None else start

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now = self._now + timedelta(seconds=seconds)


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FlakyOperation:
    """Async operation failing a fixed number of times before succeeding."""

    def __init__(
        self,
        failures: int,
        *,
        result: object = "ok",
        error: Exception | None = None,
    ) -> None:
        self.failures = failures
        self.result = result
        self.error = RuntimeError("flaky") if error is None else error
        self.calls = 0

    async def __call__(self) -> object:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.result
