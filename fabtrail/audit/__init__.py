"""Audit trail write path for fabtrail.

Exports:
    ActorResolver      -- Degrading fallback chain ending in a concrete Actor.
    SessionLookup      -- Port resolving a bearer credential to a session.
    JwtSessionLookup   -- Session lookup by verifying a signed token (PyJWT).
    HttpSessionLookup  -- Session lookup through a validation endpoint (httpx).
    AuditSink          -- Persistence port for audit entries.
    InMemoryAuditSink  -- Append-only in-process sink.
    WebhookAuditSink   -- JSON POST sink.
    AuditLogger        -- Best-effort, never-raising audit writer.
    isolated           -- Failure-isolation combinator for side-effecting steps.
    build_audit_logger -- Factory used by the application bootstrap.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import structlog

from fabtrail.audit.actor import ActorResolver, HttpSessionLookup, JwtSessionLookup, SessionLookup
from fabtrail.audit.logger import AuditLogger, isolated
from fabtrail.audit.sinks import AuditSink, AuditWriteError, InMemoryAuditSink, WebhookAuditSink

if TYPE_CHECKING:
    from fabtrail.models.config import FabtrailConfig

_log = structlog.get_logger(component="audit")

__all__ = [
    "ActorResolver",
    "AuditLogger",
    "AuditSink",
    "AuditWriteError",
    "HttpSessionLookup",
    "InMemoryAuditSink",
    "JwtSessionLookup",
    "SessionLookup",
    "WebhookAuditSink",
    "build_audit_logger",
    "isolated",
]


def build_audit_logger(config: FabtrailConfig) -> AuditLogger:
    """Build an AuditLogger from configuration and environment-resolved secrets.

    The ``*_secret_ref`` fields are names of environment variables that hold
    the actual secret values.

    Session lookup:
        ``auth.session_url`` set -> HttpSessionLookup against that endpoint.
        otherwise, env var named by ``auth.jwt_secret_ref`` non-empty ->
        JwtSessionLookup.  Neither -> no session lookup; actors come from
        token claims or cookies.

    Sink:
        ``sink.url`` set -> WebhookAuditSink, with ``Authorization: Bearer``
        from the env var named by ``sink.secret_ref`` when it resolves.
        otherwise -> InMemoryAuditSink.
    """
    return AuditLogger(
        sink=_build_sink(config),
        resolver=ActorResolver(session_lookup=_build_session_lookup(config)),
    )


def _build_session_lookup(config: FabtrailConfig) -> SessionLookup | None:
    auth = config.auth
    if auth.session_url:
        _log.info("session_lookup_enabled", lookup="http")
        return HttpSessionLookup(url=auth.session_url, timeout=auth.session_timeout_seconds)

    secret = os.environ.get(auth.jwt_secret_ref, "") if auth.jwt_secret_ref else ""
    if secret:
        _log.info("session_lookup_enabled", lookup="jwt", algorithms=auth.jwt_algorithms)
        return JwtSessionLookup(secret=secret, algorithms=auth.jwt_algorithms)

    _log.info("session_lookup_disabled", reason="no session url or jwt secret configured")
    return None


def _build_sink(config: FabtrailConfig) -> AuditSink:
    sink_cfg = config.sink
    if sink_cfg.url:
        headers: dict[str, str] = {}
        if sink_cfg.secret_ref:
            token = os.environ.get(sink_cfg.secret_ref, "")
            if token:
                headers["Authorization"] = f"Bearer {token}"
            else:
                _log.debug("audit_sink_secret_skipped", reason="secret ref env var is empty")
        _log.info("audit_sink_enabled", sink="webhook")
        return WebhookAuditSink(url=sink_cfg.url, headers=headers, timeout=float(sink_cfg.timeout_seconds))

    _log.info("no_audit_sink_configured", fallback="memory")
    return InMemoryAuditSink()
