"""
auth/validation.py -- Field policy checks for registration and password reset.

Both validators short-circuit: at most one FieldError is returned per call,
in the order the rules are listed. An empty list means the input is valid.
Pure functions -- no I/O, no logging.

The username may not contain "@" because login accepts either a username or
an email in the same field and routes on the presence of "@".
"""

from __future__ import annotations

from auth.models import FieldError

MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 6


def validate_registration(username: str, email: str, password: str) -> list[FieldError]:
    if len(username) < MIN_USERNAME_LENGTH:
        return [FieldError("username", f"length must be at least {MIN_USERNAME_LENGTH}")]
    if "@" in username:
        return [FieldError("username", "cannot include an @")]
    if "@" not in email:
        return [FieldError("email", "invalid email")]
    if len(password) < MIN_PASSWORD_LENGTH:
        return [FieldError("password", f"length must be at least {MIN_PASSWORD_LENGTH}")]
    return []


def validate_password_reset(new_password: str, confirm_password: str) -> list[FieldError]:
    if len(new_password) < MIN_PASSWORD_LENGTH:
        return [FieldError("newPassword", f"length must be at least {MIN_PASSWORD_LENGTH}")]
    if confirm_password != new_password:
        return [FieldError("confirmPassword", "password not match")]
    return []
