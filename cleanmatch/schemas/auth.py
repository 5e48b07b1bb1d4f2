"""Pydantic schemas for authentication API.

The wire format is camelCase; Python attributes stay snake_case.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for request/response bodies exchanged with the frontend."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterRequest(CamelModel):
    """Request for account registration.

    Presence and format checks beyond basic typing are done by the auth
    service so that every failure carries a field-specific message.
    """

    email: str = Field(default="", max_length=255)
    password: str = Field(default="", max_length=128)
    first_name: str = Field(default="", max_length=50)
    last_name: str = Field(default="", max_length=50)
    role: str = ""
    user_name: str | None = Field(default=None, max_length=30)
    phone: str | None = Field(default=None, max_length=20)

    # Cleaner-only
    address: str | None = Field(default=None, max_length=255)
    city: str | None = Field(default=None, max_length=100)
    state: str | None = Field(default=None, max_length=100)
    zip_code: str | None = Field(default=None, max_length=20)
    cleaning_services: list[str] | None = None
    cleaning_frequency: str | None = None
    preferred_hours: str | None = Field(default=None, max_length=255)


class LoginRequest(CamelModel):
    """Request for login."""

    email: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)


class RefreshRequest(CamelModel):
    """Request for token refresh."""

    refresh_token: str = Field(..., min_length=1)


class LogoutRequest(CamelModel):
    """Request for logout with optional refresh token revocation."""

    refresh_token: str | None = Field(
        None,
        description="Refresh token to revoke alongside the access token.",
    )


class ForgotPasswordRequest(CamelModel):
    email: str = Field(..., min_length=1, max_length=255)


class ResetPasswordRequest(CamelModel):
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=1, max_length=128)


class CleanerProfileResponse(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    cleaning_services: list[str]
    cleaning_frequency: str
    preferred_hours: str | None = None


class UserResponse(CamelModel):
    """Public view of a user. Never includes the password hash."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: UUID
    email: str
    user_name: str | None = None
    first_name: str
    last_name: str
    phone: str | None = None
    role: str
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    is_active: bool
    last_login_at: datetime | None = None
    created_at: datetime | None = None
    cleaner_profile: CleanerProfileResponse | None = None


class MessageResponse(CamelModel):
    """Generic success response."""

    success: bool = True
    message: str


class AuthResponse(CamelModel):
    """Response with the user and a fresh token pair."""

    success: bool = True
    message: str
    user: UserResponse
    token: str
    refresh_token: str


class RefreshResponse(CamelModel):
    """Response with a new access token; ``refreshToken`` only when rotated."""

    success: bool = True
    token: str
    user: UserResponse
    refresh_token: str | None = None


class UserEnvelope(CamelModel):
    success: bool = True
    user: UserResponse


class ErrorResponse(CamelModel):
    success: bool = False
    error: str
    field: str | None = None
