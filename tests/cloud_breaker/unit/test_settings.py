from __future__ import annotations

from typing import Any, cast

import pytest
from pydantic import ValidationError

from cloud_breaker.circuit_breaker import CircuitBreakerConfig
from cloud_breaker.settings import BreakerSettings


def _build_settings(**overrides: object) -> BreakerSettings:
    values: dict[str, object] = {
        "service_name": "orders",
        "failure_threshold": 5,
        "reset_timeout_seconds": 30,
    }
    values.update(overrides)
    return BreakerSettings(**cast(Any, values))


def test_settings_build_breaker_config() -> None:
    settings = _build_settings()

    assert settings.breaker_config() == CircuitBreakerConfig(
        failure_threshold=5,
        reset_timeout_seconds=30,
    )
    assert settings.table_name is None
    assert settings.redis_key_prefix == "circuit_breaker:"
    assert settings.log_level == "INFO"


def test_settings_read_prefixed_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CLOUDCB_SERVICE_NAME", "payments")
    monkeypatch.setenv("CLOUDCB_FAILURE_THRESHOLD", "3")
    monkeypatch.setenv("cloudcb_reset_timeout_seconds", "45")
    monkeypatch.setenv("CLOUDCB_TABLE_NAME", "circuit-breakers")

    settings = BreakerSettings()  # type: ignore[call-arg]

    assert settings.service_name == "payments"
    assert settings.failure_threshold == 3
    assert settings.reset_timeout_seconds == 45
    assert settings.table_name == "circuit-breakers"


@pytest.mark.parametrize(
    "missing",
    ["service_name", "failure_threshold", "reset_timeout_seconds"],
)
def test_settings_require_explicit_policy(
    missing: str, monkeypatch: pytest.MonkeyPatch
) -> None:
    for name in ("SERVICE_NAME", "FAILURE_THRESHOLD", "RESET_TIMEOUT_SECONDS"):
        monkeypatch.delenv(f"CLOUDCB_{name}", raising=False)
    values: dict[str, object] = {
        "service_name": "orders",
        "failure_threshold": 5,
        "reset_timeout_seconds": 30,
    }
    del values[missing]

    with pytest.raises(ValidationError):
        BreakerSettings(**cast(Any, values))


def test_settings_strip_service_name() -> None:
    assert _build_settings(service_name="  orders ").service_name == "orders"


@pytest.mark.parametrize(
    "overrides",
    [
        {"service_name": "   "},
        {"table_name": ""},
        {"failure_threshold": 0},
        {"reset_timeout_seconds": -1},
        {"log_level": "TRACE"},
    ],
)
def test_settings_reject_invalid_values(overrides: dict[str, object]) -> None:
    with pytest.raises(ValidationError):
        _build_settings(**overrides)


def test_settings_normalize_log_level() -> None:
    assert _build_settings(log_level=" debug ").log_level == "DEBUG"
