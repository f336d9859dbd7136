"""Audit trail data structures and enumerations."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from uuid import uuid4

from fabtrail.models.changes import ChangeSet, to_jsonable


class Severity(StrEnum):
    """Audit entry severity level."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass(frozen=True)
class Actor:
    """Resolved identity attributed to an audit entry."""

    id: str
    name: str
    role: str = "user"


UNKNOWN_ACTOR = Actor(id="unknown", name="Unknown User", role="user")


@dataclass(frozen=True)
class RequestContext:
    """Request-carried identity and client data, supplied by the HTTP layer."""

    authorization: str | None = None
    cookies: str | None = None
    ip_address: str = "unknown"
    user_agent: str = "unknown"

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> RequestContext:
        """Build a context from raw request headers (case-insensitive)."""
        lowered = {str(k).lower(): str(v) for k, v in headers.items()}
        forwarded = lowered.get("x-forwarded-for", "").split(",")[0].strip()
        return cls(
            authorization=lowered.get("authorization") or None,
            cookies=lowered.get("cookie") or None,
            ip_address=forwarded or lowered.get("x-real-ip") or "unknown",
            user_agent=lowered.get("user-agent") or "unknown",
        )

    @property
    def bearer_token(self) -> str | None:
        """Credential of a ``Bearer`` Authorization header; None for other schemes."""
        if not self.authorization:
            return None
        parts = self.authorization.strip().split(None, 1)
        if len(parts) != 2 or parts[0].lower() != "bearer":
            return None
        return parts[1].strip() or None


@dataclass(frozen=True)
class AuditEntry:
    """Durable record of one audited action.

    Immutable: handed to the persistence port exactly as built.
    """

    actor: Actor
    action: str
    resource: str
    details: ChangeSet | Mapping[str, object] | None = None
    resource_id: str | None = None
    success: bool = True
    severity: Severity = Severity.INFO
    ip_address: str = "unknown"
    user_agent: str = "unknown"
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    entry_id: str = field(default_factory=lambda: str(uuid4()))

    @property
    def summary(self) -> tuple[str, ...]:
        if isinstance(self.details, ChangeSet):
            return self.details.summary
        return ()

    def to_dict(self) -> dict[str, object]:
        """Serialise to the audit log document shape."""
        if isinstance(self.details, ChangeSet):
            details: object = self.details.to_dict()
        else:
            details = to_jsonable(self.details) if self.details is not None else {}
        return {
            "entryId": self.entry_id,
            "userId": self.actor.id,
            "username": self.actor.name,
            "userRole": self.actor.role,
            "action": self.action,
            "resource": self.resource,
            "resourceId": self.resource_id,
            "details": details,
            "success": self.success,
            "severity": self.severity.value,
            "timestamp": self.timestamp.astimezone(UTC).isoformat(),
            "ipAddress": self.ip_address,
            "userAgent": self.user_agent,
        }
