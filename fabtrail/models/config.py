"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class AuthConfig:
    """Actor resolution configuration."""

    jwt_secret_ref: str = "JWT_SECRET"
    jwt_algorithms: list[str] = field(default_factory=lambda: ["HS256"])
    session_url: str = ""
    session_timeout_seconds: float = 2.0


@dataclass
class AuditSinkConfig:
    """Audit persistence port configuration."""

    url: str = ""
    timeout_seconds: int = 10
    secret_ref: str = ""


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"
    format: str = "json"


@dataclass
class FabtrailConfig:
    """Top-level fabtrail configuration."""

    auth: AuthConfig = field(default_factory=AuthConfig)
    sink: AuditSinkConfig = field(default_factory=AuditSinkConfig)
    log: LogConfig = field(default_factory=LogConfig)
