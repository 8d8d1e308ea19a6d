from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Principal(BaseModel):
    """Authenticated caller, valid for one request."""

    id: str
    email: str | None = None
    access_token: str = Field(repr=False)

    @classmethod
    def from_api(cls, data: dict[str, Any], authorization: str) -> Principal:
        return cls(id=data["id"], email=data.get("email"), access_token=authorization)


class AuthUser(BaseModel):
    """Row from the GoTrue admin users listing."""

    id: str
    email: str | None = None
    created_at: datetime | None = None
    last_sign_in_at: datetime | None = None
    email_confirmed_at: datetime | None = None

    model_config = ConfigDict(extra="ignore")


class UserProfile(BaseModel):
    id: str
    user_id: str
    username: str | None = None
    wallet_balance: float = 0
    avatar_url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(extra="ignore")


class AdminUser(BaseModel):
    """Combined auth user + profile row returned to the admin dashboard."""

    id: str
    user_id: str
    username: str | None = None
    wallet_balance: float = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None
    avatar_url: str | None = None
    email: str | None = None
    phone: str
    last_sign_in: datetime | None = None
    email_confirmed: bool = False
    is_admin: bool = Field(default=False, serialization_alias="isAdmin")
