"""
api/routes/v1/auth.py -- Account and session REST endpoints.

Routes:
  GET  /api/v1/auth/me               -- current user, or null when anonymous
  GET  /api/v1/users                 -- all registered users
  POST /api/v1/auth/register         -- create account; logs the new user in
  POST /api/v1/auth/login            -- username-or-email + password login
  POST /api/v1/auth/logout           -- destroy session; clears the qid cookie
  POST /api/v1/auth/forgot-password  -- email a reset link; always true
  POST /api/v1/auth/reset-password   -- consume a reset token; logs the user in

Conventions:
  Field errors are data, not faults: register/login/reset-password answer
  200 with {"errors": [...], "user": null}. Only malformed request bodies
  produce a 422 (handled in api/main.py).

  Each handler receives the request's SessionManager from get_session(),
  passes it into the service explicitly, then calls session.write_cookie()
  so a Set-Cookie (bind) or cookie deletion (logout) reaches the client.

  Cache-Control: no-store on every response that carries identity.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from api.models import (
    ForgotPasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
    UserOut,
    UserResponseOut,
)
from auth.dependencies import get_auth_service, get_session
from auth.service import AuthService
from auth.sessions import SessionManager

router = APIRouter()


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=UserOut | None)
async def me(
    response: Response,
    session: SessionManager = Depends(get_session),
    service: AuthService = Depends(get_auth_service),
) -> UserOut | None:
    """Return the user bound to the session cookie, or null."""
    response.headers["Cache-Control"] = "no-store"
    user = await service.current_user(session)
    return UserOut.from_domain(user) if user is not None else None


@router.get("/users", response_model=list[UserOut])
async def list_users(service: AuthService = Depends(get_auth_service)) -> list[UserOut]:
    return [UserOut.from_domain(u) for u in await service.list_users()]


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=UserResponseOut)
async def register(
    body: RegisterRequest,
    response: Response,
    session: SessionManager = Depends(get_session),
    service: AuthService = Depends(get_auth_service),
) -> UserResponseOut:
    result = await service.register(body.username, body.email, body.password, session)
    session.write_cookie(response)
    response.headers["Cache-Control"] = "no-store"
    return UserResponseOut.from_domain(result)


@router.post("/auth/login", response_model=UserResponseOut)
async def login(
    body: LoginRequest,
    response: Response,
    session: SessionManager = Depends(get_session),
    service: AuthService = Depends(get_auth_service),
) -> UserResponseOut:
    result = await service.login(body.username_or_email, body.password, session)
    session.write_cookie(response)
    response.headers["Cache-Control"] = "no-store"
    return UserResponseOut.from_domain(result)


@router.post("/auth/logout", response_model=bool)
async def logout(
    response: Response,
    session: SessionManager = Depends(get_session),
    service: AuthService = Depends(get_auth_service),
) -> bool:
    """Destroy the session. The cookie is cleared even when this returns false."""
    ok = await service.logout(session)
    session.write_cookie(response)
    return ok


@router.post("/auth/forgot-password", response_model=bool)
async def forgot_password(
    body: ForgotPasswordRequest,
    service: AuthService = Depends(get_auth_service),
) -> bool:
    return await service.forgot_password(body.email)


@router.post("/auth/reset-password", response_model=UserResponseOut)
async def reset_password(
    body: ResetPasswordRequest,
    response: Response,
    session: SessionManager = Depends(get_session),
    service: AuthService = Depends(get_auth_service),
) -> UserResponseOut:
    result = await service.reset_password(body.token, body.new_password, body.confirm_password, session)
    session.write_cookie(response)
    response.headers["Cache-Control"] = "no-store"
    return UserResponseOut.from_domain(result)
