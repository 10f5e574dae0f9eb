from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta


class FakeLogger:
    """Capture structured logger events for assertions."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, dict[str, object]]] = []

    def _record(self, level: str, event: str, **kwargs: object) -> None:
        self.calls.append((level, event, kwargs))

    def info(self, event: str, **kwargs: object) -> None:
        self._record("info", event, **kwargs)

    def warning(self, event: str, **kwargs: object) -> None:
        self._record("warning", event, **kwargs)

    def error(self, event: str, **kwargs: object) -> None:
        self._record("error", event, **kwargs)

    def exception(self, event: str, **kwargs: object) -> None:
        self._record("exception", event, **kwargs)

    def events(self, level: str | None = None) -> list[str]:
        return [
            event
            for call_level, event, _ in self.calls
            if level is None or call_level == level
        ]


class FakeClock:
    """Controllable UTC clock patched over module-level ``_utcnow`` functions."""

    EPOCH = datetime(2020, 1, 1, tzinfo=UTC)

    def __init__(self, start: datetime | None = None) -> None:
        self._now = self.EPOCH if start is None else start

    def now(self) -> datetime:
        return self._now

    def at(self, seconds: float) -> datetime:
        """Return the time ``seconds`` after the clock's epoch."""
        return self.EPOCH + timedelta(seconds=seconds)

    def set(self, seconds: float) -> None:
        self._now = self.at(seconds)

    def advance(self, seconds: float) -> None:
        self._now = self._now + timedelta(seconds=seconds)


@dataclass(slots=True)
class RecordingListener:
    events: list[tuple[str, object]] = field(default_factory=list)

    async def on_call_rejected(self, key: str) -> None:
        self.events.append(("rejected", key))

    async def on_fallback_used(self, key: str) -> None:
        self.events.append(("fallback", key))

    async def on_call_succeeded(self, key: str, elapsed: float) -> None:
        self.events.append(("succeeded", key))

    async def on_call_failed(
        self, key: str, exc: BaseException, elapsed: float
    ) -> None:
        self.events.append(("failed", (key, exc.__class__.__name__)))


@dataclass(slots=True)
class ExplodingListener:
    async def on_call_rejected(self, key: str) -> None:
        raise RuntimeError("boom")

    async def on_fallback_used(self, key: str) -> None:
        raise RuntimeError("boom")

    async def on_call_succeeded(self, key: str, elapsed: float) -> None:
        raise RuntimeError("boom")

    async def on_call_failed(
        self, key: str, exc: BaseException, elapsed: float
    ) -> None:
        raise RuntimeError("boom")
