"""Tests for session lookups and the ActorResolver fallback chain."""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
import jwt
import pytest

from fabtrail.audit.actor import (
    ActorResolver,
    HttpSessionLookup,
    JwtSessionLookup,
    SessionLookup,
    actor_from_claims,
)
from fabtrail.models.audit import UNKNOWN_ACTOR, Actor, RequestContext

_SECRET = "test-secret-key-that-is-long-enough-for-hs256"


def _token(secret: str = _SECRET, **claims: Any) -> str:
    payload = {"id": "u1", "username": "ravi", "role": "admin", **claims}
    return jwt.encode(payload, secret, algorithm="HS256")


def _bearer(token: str, **kwargs: Any) -> RequestContext:
    return RequestContext(authorization=f"Bearer {token}", **kwargs)


class _StaticLookup(SessionLookup):
    def __init__(self, session: Mapping[str, Any] | None = None, error: Exception | None = None) -> None:
        self._session = session
        self._error = error
        self.calls: list[str] = []

    @property
    def lookup_name(self) -> str:
        return "static"

    async def lookup(self, credential: str) -> Mapping[str, Any] | None:
        self.calls.append(credential)
        if self._error is not None:
            raise self._error
        return self._session


# ---------------------------------------------------------------------------
# JwtSessionLookup
# ---------------------------------------------------------------------------


class TestJwtSessionLookup:
    async def test_valid_token_returns_claims(self) -> None:
        session = await JwtSessionLookup(_SECRET).lookup(_token())
        assert session is not None
        assert session["username"] == "ravi"
        assert session["role"] == "admin"

    async def test_wrong_secret_returns_none(self) -> None:
        token = _token(secret="another-secret-key-that-is-long-enough-too")
        assert await JwtSessionLookup(_SECRET).lookup(token) is None

    async def test_expired_token_returns_none(self) -> None:
        token = _token(exp=datetime.now(UTC) - timedelta(minutes=5))
        assert await JwtSessionLookup(_SECRET).lookup(token) is None

    async def test_garbage_returns_none(self) -> None:
        assert await JwtSessionLookup(_SECRET).lookup("not-a-token") is None

    def test_empty_secret_rejected(self) -> None:
        with pytest.raises(ValueError):
            JwtSessionLookup("")


# ---------------------------------------------------------------------------
# HttpSessionLookup
# ---------------------------------------------------------------------------


def _transport(status: int = 200, body: object = None, error: Exception | None = None) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if error is not None:
            raise error
        assert request.headers["Authorization"] == "Bearer tok"
        return httpx.Response(status, content=json.dumps(body).encode())

    return httpx.MockTransport(handler)


class TestHttpSessionLookup:
    async def test_success_returns_user(self) -> None:
        body = {"success": True, "user": {"id": "u1", "username": "ravi", "role": "admin"}}
        lookup = HttpSessionLookup("http://auth.local/validate", transport=_transport(body=body))
        assert await lookup.lookup("tok") == body["user"]

    async def test_unsuccessful_body_returns_none(self) -> None:
        lookup = HttpSessionLookup("http://auth.local/validate", transport=_transport(body={"success": False}))
        assert await lookup.lookup("tok") is None

    async def test_rejected_status_returns_none(self) -> None:
        lookup = HttpSessionLookup("http://auth.local/validate", transport=_transport(401, {"success": False}))
        assert await lookup.lookup("tok") is None

    async def test_connection_error_returns_none(self) -> None:
        transport = _transport(error=httpx.ConnectError("refused"))
        assert await HttpSessionLookup("http://auth.local/validate", transport=transport).lookup("tok") is None

    async def test_timeout_returns_none(self) -> None:
        transport = _transport(error=httpx.ReadTimeout("slow"))
        assert await HttpSessionLookup("http://auth.local/validate", transport=transport).lookup("tok") is None


# ---------------------------------------------------------------------------
# Claims
# ---------------------------------------------------------------------------


class TestActorFromClaims:
    def test_full_claims(self) -> None:
        assert actor_from_claims({"id": "u1", "username": "ravi", "role": "admin"}) == Actor("u1", "ravi", "admin")

    def test_alternate_claim_names(self) -> None:
        assert actor_from_claims({"sub": "u9", "name": "Meera"}) == Actor("u9", "Meera", "user")
        assert actor_from_claims({"_id": "u3", "userRole": "staff"}) == Actor("u3", "unknown", "staff")

    def test_no_identity(self) -> None:
        assert actor_from_claims({"role": "admin"}) is None


# ---------------------------------------------------------------------------
# ActorResolver
# ---------------------------------------------------------------------------


class TestActorResolver:
    async def test_no_context_is_unknown(self) -> None:
        assert await ActorResolver().resolve(None) == UNKNOWN_ACTOR

    async def test_session_lookup_preferred(self) -> None:
        lookup = _StaticLookup({"id": "s1", "username": "session-user", "role": "manager"})
        actor = await ActorResolver(lookup).resolve(_bearer(_token()))
        assert actor == Actor("s1", "session-user", "manager")
        assert len(lookup.calls) == 1

    async def test_token_claims_when_session_missing(self) -> None:
        actor = await ActorResolver(_StaticLookup(None)).resolve(_bearer(_token()))
        assert actor == Actor("u1", "ravi", "admin")

    async def test_token_claims_without_session_port(self) -> None:
        actor = await ActorResolver().resolve(_bearer(_token(secret="unrelated-secret-key-of-sufficient-length")))
        assert actor.name == "ravi"

    async def test_session_lookup_error_falls_through(self) -> None:
        lookup = _StaticLookup(error=RuntimeError("database down"))
        actor = await ActorResolver(lookup).resolve(_bearer(_token()))
        assert actor == Actor("u1", "ravi", "admin")

    async def test_cookie_hint(self) -> None:
        ctx = RequestContext(cookies="username=meera; userId=u7; theme=dark")
        assert await ActorResolver().resolve(ctx) == Actor("u7", "meera", "user")

    async def test_undecodable_token_falls_to_cookie(self) -> None:
        ctx = _bearer("opaque-token", cookies="username=meera")
        assert await ActorResolver().resolve(ctx) == Actor("unknown", "meera", "user")

    async def test_non_bearer_scheme_falls_to_cookie(self) -> None:
        lookup = _StaticLookup({"id": "u1", "username": "ravi", "role": "admin"})
        ctx = RequestContext(authorization="Basic dXNlcjpwYXNz", cookies="username=meera")
        assert await ActorResolver(lookup).resolve(ctx) == Actor("unknown", "meera", "user")
        assert lookup.calls == []

    async def test_nothing_identifies_actor(self) -> None:
        ctx = RequestContext(cookies="theme=dark", ip_address="10.0.0.1")
        assert await ActorResolver().resolve(ctx) == UNKNOWN_ACTOR
