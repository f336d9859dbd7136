"""Best-effort audit logging.

AuditLogger combines a ChangeSet with a resolved Actor into an AuditEntry and
hands it to the injected AuditSink.

* Never raises -- every side-effecting step runs through ``isolated``, which
  reports failures on the diagnostic channel (structlog + metrics) and
  substitutes a fallback.
* ``submit`` is fire-and-forget; it schedules ``log`` as a background task so
  the business write never waits on the audit trail.
* Always produces an entry: a failed diff degrades to an empty ChangeSet.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar

import structlog

from fabtrail.audit.actor import ActorResolver
from fabtrail.audit.sinks import AuditSink
from fabtrail.diff.changeset import FABRIC_FIELDS, ORDER_FIELDS, PARTY_FIELDS, ChangeSetBuilder
from fabtrail.models.audit import UNKNOWN_ACTOR, Actor, AuditEntry, RequestContext, Severity
from fabtrail.models.changes import ChangeSet
from fabtrail.observability.metrics import (
    audit_entries_total,
    audit_step_failures_total,
    audit_write_total,
    changesets_built_total,
)

_log = structlog.get_logger(component="audit.logger")

T = TypeVar("T")

ChangeSetSource = ChangeSet | Callable[[], ChangeSet]

LOGIN_ACTOR_ID = "login-process"


async def isolated(
    step: str,
    operation: Callable[[], Awaitable[T] | T],
    fallback: T,
    **context: Any,
) -> T:
    """Run *operation*; on any exception report it and return *fallback*.

    *operation* may be a plain callable or return an awaitable.
    """
    try:
        result = operation()
        if inspect.isawaitable(result):
            return await result  # type: ignore[no-any-return]
        return result  # type: ignore[return-value]
    except Exception as exc:  # noqa: BLE001
        _log.error(
            "audit_step_failed",
            step=step,
            error=str(exc),
            error_type=type(exc).__name__,
            **context,
        )
        audit_step_failures_total.labels(step=step).inc()
        return fallback


def default_severity(action: str, success: bool) -> Severity:
    """``error`` for reported failures, ``warning`` for deletions, else ``info``."""
    if not success:
        return Severity.ERROR
    if action == "delete" or action.endswith("_delete"):
        return Severity.WARNING
    return Severity.INFO


def _default_builders() -> dict[str, ChangeSetBuilder]:
    return {
        "order": ChangeSetBuilder(ORDER_FIELDS),
        "party": ChangeSetBuilder(PARTY_FIELDS),
        "fabric": ChangeSetBuilder(FABRIC_FIELDS),
    }


class AuditLogger:
    """Writes audit entries through an AuditSink without ever failing the caller."""

    def __init__(
        self,
        sink: AuditSink,
        resolver: ActorResolver | None = None,
        builders: Mapping[str, ChangeSetBuilder] | None = None,
    ) -> None:
        self._sink = sink
        self._resolver = resolver or ActorResolver()
        self._builders = dict(builders) if builders is not None else _default_builders()
        # Strong references so pending background writes are not collected.
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def log(
        self,
        action: str,
        resource: str,
        resource_id: str | None = None,
        change_set: ChangeSetSource | None = None,
        context: RequestContext | None = None,
        *,
        details: Mapping[str, object] | None = None,
        success: bool = True,
        severity: Severity | None = None,
        actor: Actor | None = None,
    ) -> None:
        """Assemble and persist one audit entry.  Never raises."""
        if actor is None:
            actor = await isolated(
                "actor_resolution",
                lambda: self._resolver.resolve(context),
                UNKNOWN_ACTOR,
                action=action,
            )

        payload: ChangeSet | Mapping[str, object] | None = details
        if change_set is not None:
            resolved = await isolated(
                "change_set",
                lambda: change_set() if callable(change_set) else change_set,
                None,
                action=action,
                resource=resource,
            )
            if resolved is None:
                changesets_built_total.labels(outcome="degraded").inc()
                resolved = ChangeSet.empty()
            payload = resolved

        entry = AuditEntry(
            actor=actor,
            action=action,
            resource=resource,
            resource_id=str(resource_id) if resource_id is not None else None,
            details=payload,
            success=success,
            severity=severity or default_severity(action, success),
            ip_address=context.ip_address if context else "unknown",
            user_agent=context.user_agent if context else "unknown",
        )
        audit_entries_total.labels(resource=resource, severity=entry.severity.value).inc()

        written = await isolated(
            "sink_write",
            lambda: self._write(entry),
            False,
            sink=self._sink.sink_name,
            entry_id=entry.entry_id,
            action=action,
        )
        audit_write_total.labels(sink=self._sink.sink_name, success="true" if written else "false").inc()
        if written:
            _log.info(
                "audit_entry_written",
                sink=self._sink.sink_name,
                entry_id=entry.entry_id,
                action=action,
                resource=resource,
                resource_id=entry.resource_id,
                actor=actor.name,
                changes=len(entry.summary),
            )

    async def _write(self, entry: AuditEntry) -> bool:
        await self._sink.write(entry)
        return True

    def submit(self, action: str, resource: str, *args: Any, **kwargs: Any) -> None:
        """Schedule ``log(...)`` as a background task and return immediately."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as exc:
            # no running event loop; the entry is dropped
            _log.error("audit_submit_dropped", action=action, resource=resource, error=str(exc))
            audit_step_failures_total.labels(step="submit").inc()
            return
        task = loop.create_task(self.log(action, resource, *args, **kwargs))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for every submitted entry to finish (shutdown and tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ------------------------------------------------------------------
    # Convenience operations, action names follow ``<resource>_<verb>``
    # ------------------------------------------------------------------

    def change_set_for(self, resource: str, old: Mapping[str, Any], patch: Mapping[str, Any]) -> ChangeSet:
        """Build a ChangeSet with the descriptor list registered for *resource*."""
        builder = self._builders.get(resource) or ChangeSetBuilder(())
        change_set = builder.build(old, patch)
        changesets_built_total.labels(outcome="changed" if change_set.has_changes else "unchanged").inc()
        return change_set

    async def log_create(
        self,
        resource: str,
        resource_id: str,
        details: Mapping[str, object] | None = None,
        context: RequestContext | None = None,
    ) -> None:
        await self.log(f"{resource}_create", resource, resource_id, context=context, details=details)

    async def log_update(
        self,
        resource: str,
        resource_id: str,
        old: Mapping[str, Any],
        patch: Mapping[str, Any],
        context: RequestContext | None = None,
    ) -> None:
        await self.log(
            f"{resource}_update",
            resource,
            resource_id,
            change_set=lambda: self.change_set_for(resource, old, patch),
            context=context,
        )

    async def log_delete(
        self,
        resource: str,
        resource_id: str,
        details: Mapping[str, object] | None = None,
        context: RequestContext | None = None,
    ) -> None:
        await self.log(f"{resource}_delete", resource, resource_id, context=context, details=details)

    async def log_view(
        self,
        resource: str,
        resource_id: str | None = None,
        context: RequestContext | None = None,
    ) -> None:
        await self.log("view", resource, resource_id, context=context)

    async def log_error(
        self,
        action: str,
        resource: str,
        error_message: str,
        context: RequestContext | None = None,
    ) -> None:
        await self.log(
            action,
            resource,
            context=context,
            details={"errorMessage": error_message},
            success=False,
        )

    async def log_login(
        self,
        username: str,
        success: bool,
        context: RequestContext | None = None,
        error_message: str | None = None,
    ) -> None:
        """Record a login attempt.  No session exists yet, so no resolution."""
        await self.log(
            "login" if success else "login_failed",
            "auth",
            context=context,
            details={"username": username, "errorMessage": error_message},
            success=success,
            severity=Severity.INFO if success else Severity.WARNING,
            actor=Actor(id=LOGIN_ACTOR_ID, name=username, role="system"),
        )

    async def log_logout(self, context: RequestContext | None = None) -> None:
        await self.log("logout", "auth", context=context)
