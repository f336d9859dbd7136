"""Shared fixtures for fabtrail integration tests.

Provides an AuditLogger wired to in-process sinks, request contexts carrying
signed bearer tokens, and realistic order snapshots so tests can exercise the
full diff-and-audit path without any network access.
"""

from __future__ import annotations

from typing import Any

import jwt
import pytest

from fabtrail.audit.actor import ActorResolver, JwtSessionLookup
from fabtrail.audit.logger import AuditLogger
from fabtrail.audit.sinks import AuditSink, AuditWriteError, InMemoryAuditSink
from fabtrail.models.audit import AuditEntry, RequestContext

JWT_SECRET = "integration-secret-key-that-is-long-enough"

# ---------------------------------------------------------------------------
# Record factory helpers
# ---------------------------------------------------------------------------


def make_item(
    quality: str = "Cotton 40s",
    quantity: int = 100,
    description: str = "White",
    image_urls: list[str] | None = None,
) -> dict[str, Any]:
    """Create an order line item with sensible defaults for testing."""
    return {
        "quality": {"_id": f"q-{quality.lower().replace(' ', '-')}", "name": quality},
        "quantity": quantity,
        "description": description,
        "imageUrls": list(image_urls) if image_urls is not None else [],
    }


def make_order(
    order_id: str = "o-1001",
    status: str = "pending",
    po_number: str = "PO-1",
    items: list[dict[str, Any]] | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Create a full order snapshot as loaded from the store."""
    order = {
        "_id": order_id,
        "orderType": "Dying",
        "party": {"_id": "p-1", "name": "Acme Mills"},
        "contactName": "Suresh",
        "poNumber": po_number,
        "status": status,
        "items": items if items is not None else [make_item(image_urls=["a.jpg", "b.jpg"])],
    }
    order.update(extra)
    return order


def make_context(
    user_id: str = "u-1",
    username: str = "ravi",
    role: str = "admin",
    secret: str = JWT_SECRET,
) -> RequestContext:
    """Create a request context carrying a signed bearer token."""
    token = jwt.encode({"id": user_id, "username": username, "role": role}, secret, algorithm="HS256")
    return RequestContext.from_headers(
        {
            "Authorization": f"Bearer {token}",
            "X-Forwarded-For": "203.0.113.7",
            "User-Agent": "pytest",
        }
    )


# ---------------------------------------------------------------------------
# Sinks
# ---------------------------------------------------------------------------


class FailingAuditSink(AuditSink):
    """Sink that rejects every write."""

    def __init__(self) -> None:
        self.attempts: list[AuditEntry] = []

    @property
    def sink_name(self) -> str:
        return "failing"

    async def write(self, entry: AuditEntry) -> None:
        self.attempts.append(entry)
        raise AuditWriteError("audit store unavailable")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def memory_sink() -> InMemoryAuditSink:
    return InMemoryAuditSink()


@pytest.fixture
def failing_sink() -> FailingAuditSink:
    return FailingAuditSink()


@pytest.fixture
def resolver() -> ActorResolver:
    return ActorResolver(session_lookup=JwtSessionLookup(JWT_SECRET))


@pytest.fixture
def audit_logger(memory_sink: InMemoryAuditSink, resolver: ActorResolver) -> AuditLogger:
    return AuditLogger(sink=memory_sink, resolver=resolver)


@pytest.fixture
def bearer_context() -> RequestContext:
    return make_context()
