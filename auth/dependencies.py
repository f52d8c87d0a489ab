"""
auth/dependencies.py -- FastAPI Depends() helpers for sessions and the service.

get_session() resolves the qid cookie into a SessionManager for the current
request. An absent, forged or expired cookie yields an anonymous session --
this never raises for a bad cookie, so public endpoints stay reachable.

get_auth_service() returns the AuthService built in the app lifespan.

Layer rule: no imports from api/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.service import AuthService
from auth.sessions import SessionManager
from cache.store import KeyValueStore
from core.config import Settings, get_settings


async def get_session(request: Request) -> SessionManager:
    """Return the SessionManager for this request's qid cookie.

    Use as a FastAPI dependency:
        @router.post("/auth/logout")
        async def route(session: SessionManager = Depends(get_session)): ...
    """
    settings: Settings = getattr(request.app.state, "settings", None) or get_settings()
    store: KeyValueStore = request.app.state.kv_store
    return await SessionManager.load(store, settings, request.cookies.get(settings.session_cookie_name))


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service
