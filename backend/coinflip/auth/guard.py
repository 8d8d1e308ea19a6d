"""Reusable admin gate for privileged endpoints."""

import logging
from typing import Optional

from fastapi import Header, Request

from .client import SupabaseClient
from .exceptions import (
    AdminAccessError,
    ForbiddenError,
    MissingCredentialsError,
    UnauthorizedError,
)
from .models import Principal

logger = logging.getLogger(__name__)


class AdminGuard:
    """
    Check-then-act gate: authenticated caller, then admin capability.

    Role revocation between the check and the guarded action is not detected.
    """

    def __init__(self, client: SupabaseClient):
        self.client = client

    async def __call__(self, authorization: Optional[str]) -> Principal:
        if not authorization:
            raise MissingCredentialsError("Missing authorization header")

        try:
            principal = await self.client.get_user(authorization)
        except AdminAccessError as e:
            logger.warning(f"Rejected credential: {e}")
            raise UnauthorizedError("Unauthorized") from e

        try:
            is_admin = await self.client.is_admin(authorization)
        except AdminAccessError as e:
            logger.warning(f"Admin check failed for {principal.id}: {e}")
            raise ForbiddenError("Unauthorized: Admin access required") from e

        if not is_admin:
            logger.warning(f"Non-admin {principal.id} called a privileged endpoint")
            raise ForbiddenError("Unauthorized: Admin access required")

        return principal


async def require_admin(
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> Principal:
    """FastAPI dependency running the application's AdminGuard."""
    guard: AdminGuard = request.app.state.admin_guard
    return await guard(authorization)
