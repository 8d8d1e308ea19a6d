"""Privileged administrative operations. Callers must pass the admin guard first."""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from coinflip.auth import AdminUser, InvalidRequestError, SupabaseClient
from coinflip.config import AdminConfig

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class AdminService:
    """User listing and password reset on top of the Supabase admin API."""

    def __init__(self, client: SupabaseClient, config: AdminConfig):
        self.client = client
        self.config = config

    async def list_users(self) -> list[AdminUser]:
        """Auth users merged with their profile and admin role, newest first."""
        auth_users = await self.client.list_auth_users()
        profiles = {p.user_id: p for p in await self.client.list_profiles()}
        admin_ids = await self.client.list_admin_user_ids()

        users = []
        for auth_user in auth_users:
            profile = profiles.get(auth_user.id)
            users.append(
                AdminUser(
                    id=profile.id if profile else auth_user.id,
                    user_id=auth_user.id,
                    username=profile.username if profile else None,
                    wallet_balance=profile.wallet_balance if profile else 0,
                    created_at=(profile.created_at if profile else None) or auth_user.created_at,
                    updated_at=profile.updated_at if profile else None,
                    avatar_url=profile.avatar_url if profile else None,
                    email=auth_user.email,
                    phone=self.phone_from_email(auth_user.email),
                    last_sign_in=auth_user.last_sign_in_at,
                    email_confirmed=auth_user.email_confirmed_at is not None,
                    is_admin=auth_user.id in admin_ids,
                )
            )

        users.sort(key=lambda u: u.created_at or _EPOCH, reverse=True)
        logger.info(f"Listed {len(users)} users ({len(admin_ids)} admins)")
        return users

    def phone_from_email(self, email: Optional[str]) -> str:
        """Phone sign-ups are stored as ``<phone>@<phone_email_domain>``."""
        email = email or ""
        if email.endswith(f"@{self.config.phone_email_domain}"):
            return email.split("@", 1)[0]
        return email

    def validate_password_reset(self, payload: dict[str, Any]) -> tuple[str, str]:
        user_id = payload.get("userId")
        new_password = payload.get("newPassword")

        if not user_id or not new_password:
            raise InvalidRequestError("Missing userId or newPassword")

        if not isinstance(user_id, str) or not isinstance(new_password, str):
            raise InvalidRequestError("userId and newPassword must be strings")

        if len(new_password) < self.config.min_password_length:
            raise InvalidRequestError(
                f"Password must be at least {self.config.min_password_length} characters"
            )

        return user_id, new_password

    async def reset_password(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Validate the request, then set the new password via the admin API."""
        user_id, new_password = self.validate_password_reset(payload)
        await self.client.update_user_password(user_id, new_password)
        return {"success": True, "message": "Password updated successfully"}
