"""
API request and response models for the Threadline auth endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Field names on the wire are camelCase so request fields line up with the
field names carried in FieldError (e.g. "usernameOrEmail", "newPassword").
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import FieldError, User, UserResponse

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

# max_length caps keep argon2 input bounded; policy checks (min lengths, "@")
# live in auth/validation.py and come back as field errors, not 422s.


class RegisterRequest(BaseModel):
    username: str = Field(max_length=255)
    email: str = Field(max_length=320)
    password: str = Field(max_length=1024)


class LoginRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    username_or_email: str = Field(alias="usernameOrEmail", max_length=320)
    password: str = Field(max_length=1024)


class ForgotPasswordRequest(BaseModel):
    email: str = Field(max_length=320)


class ResetPasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    token: str = Field(max_length=256)
    new_password: str = Field(alias="newPassword", max_length=1024)
    confirm_password: str = Field(alias="confirmPassword", max_length=1024)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class FieldErrorOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    message: str

    @classmethod
    def from_domain(cls, error: FieldError) -> "FieldErrorOut":
        return cls(field=error.field, message=error.message)


class UserOut(BaseModel):
    """Public view of a user. The password hash is never part of it."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    username: str
    email: str
    created_at: str = Field(alias="createdAt")
    updated_at: str = Field(alias="updatedAt")

    @classmethod
    def from_domain(cls, user: User) -> "UserOut":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            created_at=user.created_at or "",
            updated_at=user.updated_at or "",
        )


class UserResponseOut(BaseModel):
    errors: Optional[list[FieldErrorOut]] = None
    user: Optional[UserOut] = None

    @classmethod
    def from_domain(cls, result: UserResponse) -> "UserResponseOut":
        return cls(
            errors=[FieldErrorOut.from_domain(e) for e in result.errors] if result.errors else None,
            user=UserOut.from_domain(result.user) if result.user is not None else None,
        )


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


class ErrorDetail(BaseModel):
    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    error: ErrorDetail
