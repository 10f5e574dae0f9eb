from __future__ import annotations

import pytest

import cloud_breaker.circuit_breaker.manager as manager_mod
import cloud_breaker.circuit_breaker.storage as storage_mod
from cloud_breaker.circuit_breaker import (
    CircuitBreakerConfig,
    CircuitBreakerEngine,
    CircuitBreakerManager,
    InMemoryBreakerStore,
)
from tests.cloud_breaker.support.fakes import FakeClock, FakeLogger


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    """Freeze breaker time at a controllable fake clock."""
    fake_clock = FakeClock()
    monkeypatch.setattr(manager_mod, "_utcnow", fake_clock.now)
    monkeypatch.setattr(storage_mod, "_utcnow", fake_clock.now)
    return fake_clock


@pytest.fixture
def store(fake_logger: FakeLogger) -> InMemoryBreakerStore:
    """Provide an empty in-memory breaker store per test."""
    return InMemoryBreakerStore(logger=fake_logger)


@pytest.fixture
def manager(
    store: InMemoryBreakerStore, fake_logger: FakeLogger
) -> CircuitBreakerManager:
    """Provide a manager with threshold 3 and a 30 second cool-down."""
    return CircuitBreakerManager(
        store,
        CircuitBreakerConfig(failure_threshold=3, reset_timeout_seconds=30),
        logger=fake_logger,
    )


@pytest.fixture
def engine(
    manager: CircuitBreakerManager, fake_logger: FakeLogger
) -> CircuitBreakerEngine:
    """Provide an engine over the shared test manager."""
    return CircuitBreakerEngine(manager, logger=fake_logger)
