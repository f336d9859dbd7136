"""Tests for audit data structures: RequestContext and AuditEntry."""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta, timezone
from decimal import Decimal

from fabtrail.diff.changeset import build_change_set
from fabtrail.models.audit import Actor, AuditEntry, RequestContext, Severity
from fabtrail.models.changes import to_jsonable


class TestRequestContext:
    def test_from_headers(self) -> None:
        ctx = RequestContext.from_headers(
            {
                "Authorization": "Bearer abc",
                "Cookie": "username=ravi",
                "X-Forwarded-For": "203.0.113.7, 10.0.0.1",
                "User-Agent": "Mozilla/5.0",
            }
        )
        assert ctx.bearer_token == "abc"
        assert ctx.cookies == "username=ravi"
        assert ctx.ip_address == "203.0.113.7"
        assert ctx.user_agent == "Mozilla/5.0"

    def test_real_ip_fallback(self) -> None:
        assert RequestContext.from_headers({"x-real-ip": "198.51.100.2"}).ip_address == "198.51.100.2"

    def test_defaults_when_headers_missing(self) -> None:
        ctx = RequestContext.from_headers({})
        assert ctx.ip_address == "unknown"
        assert ctx.user_agent == "unknown"
        assert ctx.bearer_token is None

    def test_bearer_token_forms(self) -> None:
        assert RequestContext(authorization="bearer xyz").bearer_token == "xyz"
        assert RequestContext(authorization="abc").bearer_token is None
        assert RequestContext(authorization="Basic dXNlcjpwYXNz").bearer_token is None
        assert RequestContext(authorization="Bearer").bearer_token is None
        assert RequestContext(authorization="  ").bearer_token is None


class TestAuditEntry:
    def test_to_dict_with_change_set(self) -> None:
        change_set = build_change_set({"status": "pending"}, {"status": "delivered"})
        entry = AuditEntry(
            actor=Actor("u1", "ravi", "admin"),
            action="order_update",
            resource="order",
            resource_id="o1",
            details=change_set,
            timestamp=datetime(2024, 1, 15, 16, 0, tzinfo=timezone(timedelta(hours=5, minutes=30))),
            ip_address="203.0.113.7",
        )
        data = entry.to_dict()
        assert data["userId"] == "u1"
        assert data["username"] == "ravi"
        assert data["userRole"] == "admin"
        assert data["severity"] == "info"
        assert data["timestamp"] == "2024-01-15T10:30:00+00:00"
        assert data["details"]["changeSummary"] == ["Status: Pending → Delivered"]
        assert data["ipAddress"] == "203.0.113.7"
        assert entry.summary == ("Status: Pending → Delivered",)

    def test_to_dict_with_plain_details(self) -> None:
        entry = AuditEntry(
            actor=Actor("u1", "ravi"),
            action="order_delete",
            resource="order",
            details={"deletedAt": date(2024, 1, 15), "amount": Decimal("12.50")},
            severity=Severity.WARNING,
        )
        data = entry.to_dict()
        assert data["details"] == {"deletedAt": "2024-01-15", "amount": "12.50"}
        assert data["severity"] == "warning"
        assert entry.summary == ()

    def test_entry_ids_unique(self) -> None:
        a = AuditEntry(actor=Actor("u1", "ravi"), action="view", resource="order")
        b = AuditEntry(actor=Actor("u1", "ravi"), action="view", resource="order")
        assert a.entry_id != b.entry_id
        assert a.timestamp.tzinfo is UTC


class TestToJsonable:
    def test_nested(self) -> None:
        value = {"when": datetime(2024, 1, 1, tzinfo=UTC), "tags": {"b", "a"}, "n": (1, 2)}
        assert to_jsonable(value) == {"when": "2024-01-01T00:00:00+00:00", "tags": ["a", "b"], "n": [1, 2]}
