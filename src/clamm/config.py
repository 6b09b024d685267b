"""
clamm Engine Configuration

EngineConfig.from_env() reads the settings below from the environment and
validates them; nothing is read at import time.

Environment variables:
- CLAMM_ENVIRONMENT: environment name attached to every log line
- CLAMM_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR or CRITICAL
- CLAMM_LOG_FILE: JSON log file path; console only when unset
- CLAMM_DEFAULT_FEE_TIER: LOW, MEDIUM, STANDARD or HIGH
- CLAMM_METRICS_ENABLED: 1 to attach Prometheus metrics to new pools
- CLAMM_OBSERVATION_CARDINALITY_NEXT: oracle slots reserved at initialize
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
FEE_TIERS = ("LOW", "MEDIUM", "STANDARD", "HIGH")
MAX_OBSERVATION_CARDINALITY = 65535


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


def _get_choice(env: Mapping[str, str], env_var: str, default: str, choices: tuple[str, ...]) -> str:
    value = env.get(env_var, default).strip().upper() or default
    if value not in choices:
        raise ConfigurationError(
            f"{env_var} must be one of {', '.join(choices)}, got {value!r}"
        )
    return value


def _get_flag(env: Mapping[str, str], env_var: str, default: str) -> bool:
    value = env.get(env_var, default).strip()
    if value not in ("0", "1"):
        raise ConfigurationError(f"{env_var} must be 0 or 1, got {value!r}")
    return value == "1"


def _get_int(env: Mapping[str, str], env_var: str, default: str, minimum: int, maximum: int) -> int:
    raw = env.get(env_var, default).strip()
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{env_var} must be an integer, got {raw!r}") from e
    if not minimum <= value <= maximum:
        raise ConfigurationError(f"{env_var} must be within [{minimum}, {maximum}], got {value}")
    return value


@dataclass(frozen=True)
class EngineConfig:
    """Engine settings; from_env() builds one from CLAMM_* environment variables."""

    environment: str = "development"
    log_level: str = "INFO"
    log_file: str | None = None
    default_fee_tier: str = "STANDARD"
    metrics_enabled: bool = True
    observation_cardinality_next: int = 1

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "EngineConfig":
        env = os.environ if env is None else env
        return cls(
            environment=env.get("CLAMM_ENVIRONMENT", "development").strip() or "development",
            log_level=_get_choice(env, "CLAMM_LOG_LEVEL", "INFO", LOG_LEVELS),
            log_file=env.get("CLAMM_LOG_FILE", "").strip() or None,
            default_fee_tier=_get_choice(env, "CLAMM_DEFAULT_FEE_TIER", "STANDARD", FEE_TIERS),
            metrics_enabled=_get_flag(env, "CLAMM_METRICS_ENABLED", "1"),
            observation_cardinality_next=_get_int(
                env, "CLAMM_OBSERVATION_CARDINALITY_NEXT", "1", 1, MAX_OBSERVATION_CARDINALITY
            ),
        )

