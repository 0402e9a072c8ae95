"""Pydantic request/response schemas for dc_gateway.

Password policy lives here, at the API boundary. The credential service
accepts any non-empty string.
All responses are wrapped in ApiResponse at the router layer.
"""

import re

from pydantic import BaseModel, EmailStr, Field, field_validator


def _check_password_policy(v: str) -> str:
    """At least one uppercase, one lowercase, one digit, one special character."""
    if not re.search(r"[A-Z]", v):
        raise ValueError("Password must contain at least 1 uppercase letter")
    if not re.search(r"[a-z]", v):
        raise ValueError("Password must contain at least 1 lowercase letter")
    if not re.search(r"[0-9]", v):
        raise ValueError("Password must contain at least 1 number")
    if not re.search(r"[^A-Za-z0-9]", v):
        raise ValueError("Password must contain at least 1 special character")
    return v


class RegisterRequest(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=127)
    last_name: str = Field(..., min_length=1, max_length=127)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)

    @field_validator("password")
    @classmethod
    def password_complexity(cls, v: str) -> str:
        return _check_password_policy(v)

    @property
    def full_name(self) -> str:
        return f"{self.first_name.strip()} {self.last_name.strip()}"


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class ChangePasswordRequest(BaseModel):
    email: EmailStr
    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=8, max_length=128)

    @field_validator("new_password")
    @classmethod
    def password_complexity(cls, v: str) -> str:
        return _check_password_policy(v)


class UserInfo(BaseModel):
    """Minimal user info embedded in responses."""

    user_id: str
    email: str
    name: str
    image: str | None = None
    role: str = "user"


class RegisterResponse(BaseModel):
    user_id: str
    email: str
    name: str
    created_at: str
