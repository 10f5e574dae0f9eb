from __future__ import annotations

from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cloud_breaker.circuit_breaker.manager import CircuitBreakerConfig
from cloud_breaker.logging import get_log_level_value

ENV_PREFIX = "CLOUDCB_"


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class BreakerSettings(BaseSettings):
    """Settings for services sharing distributed circuit breakers.

    ``service_name``, ``failure_threshold`` and ``reset_timeout_seconds`` have
    no defaults: a service that forgets to configure them fails at startup.
    Build one instance at bootstrap and pass it down; nothing here is global.
    """

    model_config = prefixed_settings_config(ENV_PREFIX)

    service_name: str
    failure_threshold: int
    reset_timeout_seconds: int
    table_name: str | None = None
    redis_key_prefix: str = "circuit_breaker:"
    log_level: str = "INFO"

    @field_validator("service_name", "table_name", mode="before")
    @classmethod
    def _validate_non_empty_string(
        cls, value: object, info: ValidationInfo
    ) -> object:
        if not isinstance(value, str):
            return value
        normalized = value.strip()
        if not normalized:
            raise ValueError(f"{info.field_name} must be non-empty")
        return normalized

    @field_validator("failure_threshold", "reset_timeout_seconds")
    @classmethod
    def _validate_positive(cls, value: int, info: ValidationInfo) -> int:
        if value < 1:
            raise ValueError(f"{info.field_name} must be >= 1")
        return value

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        get_log_level_value(value)
        return value.strip().upper()

    def breaker_config(self) -> CircuitBreakerConfig:
        """Build the policy object consumed by ``CircuitBreakerManager``."""
        return CircuitBreakerConfig(
            failure_threshold=self.failure_threshold,
            reset_timeout_seconds=self.reset_timeout_seconds,
        )
