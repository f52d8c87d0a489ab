"""
auth/sessions.py -- Server-side sessions bound to an opaque signed cookie.

A session is a record in the key-value store under "sess:<id>" holding a
SessionData payload. The client only ever holds the cookie "<id>.<signature>",
signed with an itsdangerous Signer keyed by SECRET_KEY (HMAC-SHA256). A
cookie with a bad signature or no live record is treated as an anonymous
visitor.

Lifecycle:
  - Anonymous visitors get no record and no cookie.
  - set_current_user_id() always moves the session to a fresh id, deletes
    the old record and schedules a Set-Cookie. A cookie planted before login
    never comes to identify the user who logs in with it.
  - destroy() deletes the record and always schedules a cookie deletion,
    even when the store fails -- the client must stop presenting the id.

SessionManager is per-request state. Routes obtain it through the
auth.dependencies.get_session() dependency, pass it explicitly into
AuthService operations, then call write_cookie(response) to apply any
pending cookie change to the outgoing response.

Layer rule: no imports from api/ or fastapi. cache/ is imported for the store
contract.
"""

from __future__ import annotations

import hashlib
import logging
import secrets

from itsdangerous import BadSignature, Signer
from pydantic import BaseModel, ValidationError

from cache.store import KeyValueStore, StoreError
from core.config import Settings

logger = logging.getLogger("threadline.auth.sessions")

SESSION_PREFIX = "sess:"


class SessionData(BaseModel):
    """Typed session payload. user_id None means anonymous."""

    user_id: int | None = None


def _signer(secret_key: str) -> Signer:
    return Signer(secret_key, salt="threadline.session", digest_method=hashlib.sha256)


def encode_cookie(session_id: str, secret_key: str) -> str:
    return _signer(secret_key).sign(session_id).decode("utf-8")


def decode_cookie(value: str, secret_key: str) -> str | None:
    """Return the session id from a signed cookie value, or None if tampered."""
    try:
        session_id = _signer(secret_key).unsign(value).decode("utf-8")
    except BadSignature:
        return None
    return session_id or None


class SessionManager:
    """Per-request handle on one server-side session."""

    def __init__(
        self,
        store: KeyValueStore,
        settings: Settings,
        session_id: str | None = None,
        data: SessionData | None = None,
    ) -> None:
        self._store = store
        self._settings = settings
        self.session_id = session_id
        self.data = data or SessionData()
        self._issue_cookie = False
        self._clear_cookie = False

    @classmethod
    async def load(cls, store: KeyValueStore, settings: Settings, cookie_value: str | None) -> SessionManager:
        """Resolve a cookie value into a SessionManager (anonymous if unusable)."""
        if not cookie_value:
            return cls(store, settings)
        session_id = decode_cookie(cookie_value, settings.secret_key)
        if session_id is None:
            logger.warning("Rejected session cookie with invalid signature")
            return cls(store, settings)
        raw = await store.get(SESSION_PREFIX + session_id)
        if raw is None:
            return cls(store, settings)
        try:
            data = SessionData.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable session payload")
            return cls(store, settings)
        return cls(store, settings, session_id=session_id, data=data)

    @property
    def current_user_id(self) -> int | None:
        return self.data.user_id

    async def set_current_user_id(self, user_id: int) -> None:
        """Bind an authenticated user under a freshly issued session id."""
        previous = self.session_id
        self.session_id = secrets.token_urlsafe(32)
        self._issue_cookie = True
        self.data = SessionData(user_id=user_id)
        await self._store.set(
            SESSION_PREFIX + self.session_id,
            self.data.model_dump_json(),
            self._settings.session_ttl_seconds,
        )
        self._clear_cookie = False
        if previous is not None:
            try:
                await self._store.delete(SESSION_PREFIX + previous)
            except StoreError as exc:
                logger.warning("Could not delete rotated session record: %s", exc)

    async def destroy(self) -> bool:
        """Delete the session record. Returns False if the store failed.

        The cookie is cleared either way. A missing record is not a failure:
        the session is gone, which is what the caller asked for.
        """
        self._clear_cookie = True
        self._issue_cookie = False
        session_id, self.session_id = self.session_id, None
        self.data = SessionData()
        if session_id is None:
            return True
        try:
            await self._store.delete(SESSION_PREFIX + session_id)
        except StoreError as exc:
            logger.error("Session destroy failed: %s", exc)
            return False
        return True

    def write_cookie(self, response) -> None:
        """Apply the pending cookie change (issue or clear) to a response."""
        name = self._settings.session_cookie_name
        if self._clear_cookie:
            response.delete_cookie(name, httponly=True, samesite="lax", secure=self._settings.secure_cookies)
        elif self._issue_cookie and self.session_id is not None:
            response.set_cookie(
                name,
                value=encode_cookie(self.session_id, self._settings.secret_key),
                httponly=True,
                samesite="lax",
                secure=self._settings.secure_cookies,
                max_age=self._settings.session_ttl_seconds,
            )

