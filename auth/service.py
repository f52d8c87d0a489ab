"""
auth/service.py -- Registration, login, logout and password recovery.

AuthService composes the user directory (UserStore), the key-value store
holding reset tokens, the notifier and the per-request SessionManager into
the account operations exposed over HTTP.

Contract:
  - User-correctable failures come back as data: UserResponse.errors holds
    exactly one FieldError with a fixed message. Operations never raise for
    bad input, unknown users, taken names or dead tokens.
  - logout() and forgot_password() return plain booleans.
  - Blocking work (SQLAlchemy calls, argon2) runs via asyncio.to_thread, so
    each operation is a chain of awaits and no request stalls another.

Known disclosure (kept deliberately, see DESIGN.md): login says whether the
email/username exists, and forgot-password is slower for unknown emails
unless EQUALIZE_FORGOT_PASSWORD_LATENCY is enabled.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import asyncio
import logging

from auth.models import User, UserResponse
from auth.notifier import Notifier
from auth.passwords import generate_reset_token, hash_password, verify_password
from auth.sessions import SessionManager
from auth.store import UserConflictError, UserStore
from auth.validation import validate_password_reset, validate_registration
from cache.store import KeyValueStore
from core.config import Settings

logger = logging.getLogger("threadline.auth.service")

FORGET_PASSWORD_PREFIX = "forget-password:"


class AuthService:
    def __init__(
        self,
        *,
        users: UserStore,
        tokens: KeyValueStore,
        notifier: Notifier,
        settings: Settings,
    ) -> None:
        self._users = users
        self._tokens = tokens
        self._notifier = notifier
        self._settings = settings
        self._pending: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def current_user(self, session: SessionManager) -> User | None:
        if session.current_user_id is None:
            return None
        return await asyncio.to_thread(self._users.get_by_id, session.current_user_id)

    async def list_users(self) -> list[User]:
        return await asyncio.to_thread(self._users.list_users)

    # ------------------------------------------------------------------
    # Register / login / logout
    # ------------------------------------------------------------------

    async def register(self, username: str, email: str, password: str, session: SessionManager) -> UserResponse:
        errors = validate_registration(username, email, password)
        if errors:
            return UserResponse(errors=errors)

        hashed = await asyncio.to_thread(hash_password, password)
        try:
            user = await asyncio.to_thread(self._users.create_user, username, email, hashed)
        except UserConflictError:
            return UserResponse.fail("usernameOrEmail", "username or email already taken")

        await session.set_current_user_id(user.id)
        logger.info("Registered user %s", user.id)
        return UserResponse(user=user)

    async def login(self, username_or_email: str, password: str, session: SessionManager) -> UserResponse:
        by_email = "@" in username_or_email
        if by_email:
            user = await asyncio.to_thread(self._users.get_by_email, username_or_email)
        else:
            user = await asyncio.to_thread(self._users.get_by_username, username_or_email)
        if user is None:
            kind = "email" if by_email else "username"
            return UserResponse.fail("usernameOrEmail", f"that {kind} doesn't exist")

        if not await asyncio.to_thread(verify_password, password, user.hashed_password):
            return UserResponse.fail("password", "incorrect password")

        await session.set_current_user_id(user.id)
        logger.info("User %s logged in", user.id)
        return UserResponse(user=user)

    async def logout(self, session: SessionManager) -> bool:
        user_id = session.current_user_id
        ok = await session.destroy()
        if ok and user_id is not None:
            logger.info("User %s logged out", user_id)
        return ok

    # ------------------------------------------------------------------
    # Password recovery
    # ------------------------------------------------------------------

    async def forgot_password(self, email: str) -> bool:
        """Issue a reset token and email it. Always returns True.

        An unknown email waits out the configured delay instead of issuing a
        token. With equalize_forgot_password_latency the known-email branch
        is padded to the same floor.
        """
        loop = asyncio.get_running_loop()
        started = loop.time()
        delay = self._settings.forgot_password_delay_seconds
        equalize = self._settings.equalize_forgot_password_latency

        user = await asyncio.to_thread(self._users.get_by_email, email)
        if user is None:
            await asyncio.sleep(delay - (loop.time() - started) if equalize else delay)
            return True

        token = generate_reset_token()
        await self._tokens.set(
            FORGET_PASSWORD_PREFIX + token,
            str(user.id),
            self._settings.reset_token_ttl_seconds,
        )
        reset_link = f"{self._settings.frontend_url}/reset-password/{token}"
        self._dispatch(self._notifier.send_reset_email(user.email, reset_link, user.username))
        logger.info("Password reset issued for user %s", user.id)

        if equalize:
            remaining = delay - (loop.time() - started)
            if remaining > 0:
                await asyncio.sleep(remaining)
        return True

    async def reset_password(
        self,
        token: str,
        new_password: str,
        confirm_password: str,
        session: SessionManager,
    ) -> UserResponse:
        errors = validate_password_reset(new_password, confirm_password)
        if errors:
            return UserResponse(errors=errors)

        key = FORGET_PASSWORD_PREFIX + token
        stored = await self._tokens.get(key)
        if stored is None:
            return UserResponse.fail("token", "token expired")

        user = await asyncio.to_thread(self._users.get_by_id, int(stored))
        if user is None:
            return UserResponse.fail("token", "user no longer exists")

        hashed = await asyncio.to_thread(hash_password, new_password)
        # Claim the token before writing: of two concurrent resets only the
        # one whose delete removed the key may change the password.
        if not await self._tokens.delete(key):
            return UserResponse.fail("token", "token expired")

        await asyncio.to_thread(self._users.update_password, user.id, hashed)
        user.hashed_password = hashed
        await session.set_current_user_id(user.id)
        logger.info("Password reset completed for user %s", user.id)
        return UserResponse(user=user)

    # ------------------------------------------------------------------
    # Background dispatch
    # ------------------------------------------------------------------

    def _dispatch(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._on_dispatch_done)

    def _on_dispatch_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Reset email dispatch failed: %s", exc, exc_info=exc)

    async def drain(self) -> None:
        """Wait for in-flight email dispatches. Called on shutdown."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
