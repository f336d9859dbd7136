"""Actor resolution for audit entries.

ActorResolver walks a degrading fallback chain and always ends in a concrete
Actor:

1. session lookup through the injected SessionLookup port (bearer credential);
2. identity claims decoded straight from the bearer token payload;
3. a username hint carried in the request cookies;
4. the ``UNKNOWN_ACTOR`` sentinel.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from http.cookies import CookieError, SimpleCookie
from typing import Any

import httpx
import jwt
import structlog

from fabtrail.models.audit import UNKNOWN_ACTOR, Actor, RequestContext
from fabtrail.observability.metrics import actor_resolution_total

_log = structlog.get_logger(component="audit.actor")

_ID_CLAIMS = ("id", "_id", "userId", "sub")
_NAME_CLAIMS = ("username", "name")


class SessionLookup(ABC):
    """Port resolving a bearer credential to a session.

    Implementations return a mapping with ``id``/``username``/``name``/``role``
    keys, or None when the credential does not identify a session.
    """

    @property
    @abstractmethod
    def lookup_name(self) -> str:
        """Identifier used in logs."""

    @abstractmethod
    async def lookup(self, credential: str) -> Mapping[str, Any] | None:
        """Return the session for *credential*, or None."""


class JwtSessionLookup(SessionLookup):
    """Verifies a signed session token and returns its claims.

    Args:
        secret:     Shared signing secret.
        algorithms: Accepted signing algorithms. Defaults to HS256.
    """

    def __init__(self, secret: str, algorithms: list[str] | None = None) -> None:
        if not secret:
            raise ValueError("JWT secret must not be empty")
        self._secret = secret
        self._algorithms = algorithms or ["HS256"]

    @property
    def lookup_name(self) -> str:
        return "jwt"

    async def lookup(self, credential: str) -> Mapping[str, Any] | None:
        try:
            payload = jwt.decode(credential, self._secret, algorithms=self._algorithms)
        except jwt.ExpiredSignatureError:
            _log.debug("session_token_expired")
            return None
        except jwt.InvalidTokenError as exc:
            _log.debug("session_token_invalid", error=str(exc))
            return None
        return payload if isinstance(payload, dict) else None


class HttpSessionLookup(SessionLookup):
    """Asks a session-validation endpoint who owns a bearer credential.

    The endpoint is called with ``GET`` and an ``Authorization: Bearer``
    header and is expected to answer
    ``{"success": true, "user": {"id": ..., "username": ..., "role": ...}}``.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 2.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not url:
            raise ValueError("Session lookup url must not be empty")
        self._url = url
        self._timeout = timeout
        self._transport = transport

    @property
    def lookup_name(self) -> str:
        return "http"

    async def lookup(self, credential: str) -> Mapping[str, Any] | None:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(self._url, headers={"Authorization": f"Bearer {credential}"})
        except httpx.TimeoutException:
            _log.warning("session_lookup_timeout", url=self._url)
            return None
        except httpx.HTTPError as exc:
            _log.warning("session_lookup_http_error", error=str(exc))
            return None

        if not response.is_success:
            _log.debug("session_lookup_rejected", status_code=response.status_code)
            return None
        try:
            body = response.json()
        except ValueError:
            _log.warning("session_lookup_bad_body", body=response.text[:200])
            return None
        if not isinstance(body, dict) or not body.get("success"):
            return None
        user = body.get("user")
        return user if isinstance(user, dict) else None


def _first(claims: Mapping[str, Any], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = claims.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def actor_from_claims(claims: Mapping[str, Any]) -> Actor | None:
    """Build an Actor from session or token claims; None if they name no one."""
    actor_id = _first(claims, _ID_CLAIMS)
    name = _first(claims, _NAME_CLAIMS)
    if actor_id is None and name is None:
        return None
    role = _first(claims, ("role", "userRole")) or "user"
    return Actor(id=actor_id or "unknown", name=name or "unknown", role=role)


def _actor_from_token(token: str) -> Actor | None:
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError as exc:
        _log.debug("token_claims_undecodable", error=str(exc))
        return None
    return actor_from_claims(claims) if isinstance(claims, dict) else None


def _actor_from_cookies(raw: str) -> Actor | None:
    cookie: SimpleCookie = SimpleCookie()
    try:
        cookie.load(raw)
    except CookieError as exc:
        _log.debug("cookie_unparseable", error=str(exc))
        return None
    values = {key: morsel.value for key, morsel in cookie.items()}
    username = _first(values, ("username", "user"))
    if username is None:
        return None
    return Actor(
        id=_first(values, ("userId",)) or "unknown",
        name=username,
        role=_first(values, ("userRole", "role")) or "user",
    )


class ActorResolver:
    """Determines who performed an action.  Never raises."""

    def __init__(self, session_lookup: SessionLookup | None = None) -> None:
        self._session_lookup = session_lookup

    async def resolve(self, context: RequestContext | None) -> Actor:
        try:
            actor, source = await self._resolve(context)
        except Exception as exc:  # noqa: BLE001
            _log.warning("actor_resolution_failed", error=str(exc))
            actor, source = UNKNOWN_ACTOR, "unknown"
        actor_resolution_total.labels(source=source).inc()
        return actor

    async def _resolve(self, context: RequestContext | None) -> tuple[Actor, str]:
        if context is None:
            return UNKNOWN_ACTOR, "unknown"

        token = context.bearer_token
        if token and self._session_lookup is not None:
            session = await self._lookup_session(self._session_lookup, token)
            actor = actor_from_claims(session) if session else None
            if actor is not None:
                return actor, "session"

        if token:
            actor = _actor_from_token(token)
            if actor is not None:
                return actor, "token_claims"

        if context.cookies:
            actor = _actor_from_cookies(context.cookies)
            if actor is not None:
                return actor, "cookie"

        return UNKNOWN_ACTOR, "unknown"

    @staticmethod
    async def _lookup_session(port: SessionLookup, token: str) -> Mapping[str, Any] | None:
        try:
            return await port.lookup(token)
        except Exception as exc:  # noqa: BLE001
            _log.warning("session_lookup_failed", lookup=port.lookup_name, error=str(exc))
            return None
