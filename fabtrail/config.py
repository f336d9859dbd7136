"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from fabtrail.models.config import AuditSinkConfig, AuthConfig, FabtrailConfig, LogConfig


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"FABTRAIL_{key}", default)


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float) -> float:
    return float(_env(key, str(default)))


def _env_list(key: str, default: str) -> list[str]:
    return [part.strip() for part in _env(key, default).split(",") if part.strip()]


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_log_format(value: str) -> str:
    valid = {"json", "console"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log format: {value}. Must be one of {valid}")
    return value.lower()


def _validate_url(value: str) -> str:
    if value and not value.startswith(("http://", "https://")):
        raise ValueError(f"URL must start with http:// or https://, got: {value!r}")
    return value


def load_config() -> FabtrailConfig:
    """Load configuration from FABTRAIL_* environment variables."""
    return FabtrailConfig(
        auth=AuthConfig(
            jwt_secret_ref=_env("AUTH_JWT_SECRET_REF", "JWT_SECRET"),
            jwt_algorithms=_env_list("AUTH_JWT_ALGORITHMS", "HS256"),
            session_url=_validate_url(_env("AUTH_SESSION_URL", "")),
            session_timeout_seconds=_env_float("AUTH_SESSION_TIMEOUT", 2.0),
        ),
        sink=AuditSinkConfig(
            url=_validate_url(_env("AUDIT_SINK_URL", "")),
            timeout_seconds=_env_int("AUDIT_SINK_TIMEOUT", 10, min_val=1, max_val=60),
            secret_ref=_env("AUDIT_SINK_SECRET_REF", ""),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
            format=_validate_log_format(_env("LOG_FORMAT", "json")),
        ),
    )
