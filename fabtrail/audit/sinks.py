"""Audit persistence ports.

AuditSink          -- ABC every persistence implementation must satisfy.
InMemoryAuditSink  -- Append-only in-process store with simple queries.
WebhookAuditSink   -- POSTs each entry as JSON to an HTTP endpoint.

Unlike the rest of the audit path, sinks *do* raise on failure; the
AuditLogger isolates those failures from its callers.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import httpx
import structlog

from fabtrail.models.audit import AuditEntry, Severity

_log = structlog.get_logger(component="audit.sinks")


class AuditWriteError(Exception):
    """Raised when a sink could not durably accept an entry."""


class AuditSink(ABC):
    """Abstract base class for audit persistence ports."""

    @property
    @abstractmethod
    def sink_name(self) -> str:
        """Identifier used in metrics and logs."""

    @abstractmethod
    async def write(self, entry: AuditEntry) -> None:
        """Persist *entry*.

        Raises:
            AuditWriteError: (or any other exception) if the write failed.
        """


class InMemoryAuditSink(AuditSink):
    """Append-only audit store held in process memory.

    Entries are never updated or removed once appended.
    """

    def __init__(self) -> None:
        self._entries: list[AuditEntry] = []

    @property
    def sink_name(self) -> str:
        return "memory"

    @property
    def entries(self) -> list[AuditEntry]:
        return list(self._entries)

    async def write(self, entry: AuditEntry) -> None:
        self._entries.append(entry)

    def by_resource(self, resource: str, resource_id: str | None = None) -> list[AuditEntry]:
        """Entries for a resource (optionally one record), newest first."""
        matches = [
            e
            for e in self._entries
            if e.resource == resource and (resource_id is None or e.resource_id == resource_id)
        ]
        return sorted(matches, key=lambda e: e.timestamp, reverse=True)

    def errors(self) -> list[AuditEntry]:
        """Failed actions and error/critical entries, newest first."""
        matches = [
            e for e in self._entries if not e.success or e.severity in (Severity.ERROR, Severity.CRITICAL)
        ]
        return sorted(matches, key=lambda e: e.timestamp, reverse=True)


class WebhookAuditSink(AuditSink):
    """Delivers audit entries by POSTing a JSON document to a URL.

    Args:
        url:       Full endpoint URL.
        headers:   Optional extra headers (e.g. Authorization).
        timeout:   HTTP request timeout in seconds. Defaults to 10.
        transport: Optional httpx transport, used by tests.
    """

    def __init__(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not url:
            raise ValueError("Audit sink url must not be empty")
        self._url = url
        self._headers = headers or {}
        self._timeout = timeout
        self._transport = transport

    @property
    def sink_name(self) -> str:
        return "webhook"

    async def write(self, entry: AuditEntry) -> None:
        request_headers = {
            "Content-Type": "application/json",
            **self._headers,
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self._url, json=entry.to_dict(), headers=request_headers)
        except httpx.TimeoutException as exc:
            raise AuditWriteError(f"audit sink request timed out: {self._url}") from exc
        except httpx.HTTPError as exc:
            raise AuditWriteError(f"audit sink http error: {exc}") from exc

        if not response.is_success:
            _log.warning(
                "audit_sink_non_2xx_response",
                status_code=response.status_code,
                body=response.text[:200],
                entry_id=entry.entry_id,
            )
            raise AuditWriteError(f"audit sink returned HTTP {response.status_code}")
