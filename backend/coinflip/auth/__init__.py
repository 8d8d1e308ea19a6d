"""Supabase-backed authentication and the admin guard."""

from .client import SupabaseClient, SupabaseConfig, create_supabase_client
from .exceptions import (
    AdminAccessError,
    ForbiddenError,
    InvalidRequestError,
    MissingCredentialsError,
    SupabaseAPIError,
    UnauthorizedError,
)
from .guard import AdminGuard, require_admin
from .models import AdminUser, AuthUser, Principal, UserProfile

__all__ = [
    "SupabaseClient",
    "SupabaseConfig",
    "create_supabase_client",
    "AdminGuard",
    "require_admin",
    "AdminAccessError",
    "MissingCredentialsError",
    "UnauthorizedError",
    "ForbiddenError",
    "InvalidRequestError",
    "SupabaseAPIError",
    "AdminUser",
    "AuthUser",
    "Principal",
    "UserProfile",
]
