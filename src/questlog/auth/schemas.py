"""Request/response schemas for authentication endpoints."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class SignupRequest(BaseModel):
    """Email signup request."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)
    username: str = Field(..., min_length=3, max_length=64)
    fullname: str | None = Field(None, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        return v.lower().strip()

    @field_validator("username")
    @classmethod
    def strip_username(cls, v: str) -> str:
        """Usernames are compared verbatim, minus surrounding whitespace."""
        return v.strip()


class LoginRequest(BaseModel):
    """Login with email + password."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        return v.lower().strip()


class RefreshRequest(BaseModel):
    """Exchange a refresh token for a new token pair."""

    model_config = ConfigDict(populate_by_name=True)

    refresh_token: str = Field(..., alias="refreshToken")


class TokenResponse(BaseModel):
    """Token pair returned by signup, login and refresh."""

    model_config = ConfigDict(populate_by_name=True)

    token: str
    refresh_token: str = Field(..., alias="refreshToken")
    user_id: int = Field(..., alias="userId")


class MessageResponse(BaseModel):
    """Plain confirmation message."""

    message: str
