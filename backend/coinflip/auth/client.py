"""Supabase auth (GoTrue) and PostgREST client."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel

from .exceptions import SupabaseAPIError, UnauthorizedError
from .models import AuthUser, Principal, UserProfile

logger = logging.getLogger(__name__)


class SupabaseConfig(BaseModel):
    """Configuration for the Supabase client."""

    url: str
    anon_key: str
    service_role_key: str
    timeout_seconds: float = 15.0
    users_page_size: int = 1000


class SupabaseClient:
    """Async client acting either as the caller (anon key + their token) or as
    the service role."""

    def __init__(
        self,
        config: SupabaseConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> SupabaseClient:
        self._client = httpx.AsyncClient(
            base_url=self.config.url,
            timeout=self.config.timeout_seconds,
            transport=self._transport,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: Exception | None,
        exc_tb: Any,
    ) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError(
                "SupabaseClient must be used as async context manager"
            )
        return self._client

    def _service_headers(self) -> dict[str, str]:
        key = self.config.service_role_key
        return {"apikey": key, "Authorization": f"Bearer {key}"}

    def _user_headers(self, authorization: str) -> dict[str, str]:
        return {"apikey": self.config.anon_key, "Authorization": authorization}

    async def _request(
        self,
        method: str,
        path: str,
        headers: dict[str, str],
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
    ) -> Any:
        try:
            response = await self.client.request(
                method=method,
                url=path,
                params=params,
                json=json_data,
                headers=headers,
            )
        except httpx.RequestError as e:
            logger.error(f"Supabase request {method} {path} failed: {e}")
            raise SupabaseAPIError(f"Supabase unreachable: {e}") from e

        if response.status_code >= 400:
            message = _error_message(response)
            if response.status_code in (401, 403):
                raise UnauthorizedError(message, status_code=response.status_code)
            raise SupabaseAPIError(message, status_code=response.status_code)

        if not response.content:
            return None
        return response.json()

    # ------------------------------------------------------------------
    # Acting as the caller
    # ------------------------------------------------------------------

    async def get_user(self, authorization: str) -> Principal:
        """Resolve the caller behind an ``Authorization`` header value."""
        data = await self._request("GET", "/auth/v1/user", self._user_headers(authorization))
        if not data or not data.get("id"):
            raise UnauthorizedError("Unauthorized")
        return Principal.from_api(data, authorization)

    async def is_admin(self, authorization: str) -> bool:
        """Call the ``is_admin`` RPC with the caller's own credential."""
        data = await self._request(
            "POST", "/rest/v1/rpc/is_admin", self._user_headers(authorization), json_data={}
        )
        return data is True

    # ------------------------------------------------------------------
    # Acting as the service role
    # ------------------------------------------------------------------

    async def list_auth_users(self) -> list[AuthUser]:
        per_page = self.config.users_page_size
        users: list[AuthUser] = []
        page = 1

        while True:
            data = await self._request(
                "GET",
                "/auth/v1/admin/users",
                self._service_headers(),
                params={"page": page, "per_page": per_page},
            )
            batch = (data or {}).get("users", [])
            users.extend(AuthUser(**u) for u in batch)

            if len(batch) < per_page:
                break
            page += 1

        return users

    async def list_profiles(self) -> list[UserProfile]:
        data = await self._request(
            "GET", "/rest/v1/profiles", self._service_headers(), params={"select": "*"}
        )
        return [UserProfile(**p) for p in data or []]

    async def list_admin_user_ids(self) -> set[str]:
        data = await self._request(
            "GET",
            "/rest/v1/user_roles",
            self._service_headers(),
            params={"select": "user_id,role", "role": "eq.admin"},
        )
        return {row["user_id"] for row in data or []}

    async def update_user_password(self, user_id: str, password: str) -> None:
        await self._request(
            "PUT",
            f"/auth/v1/admin/users/{user_id}",
            self._service_headers(),
            json_data={"password": password},
        )
        logger.info(f"Password updated for user {user_id}")


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"Supabase error {response.status_code}"
    if isinstance(body, dict):
        for key in ("msg", "message", "error_description", "error"):
            if body.get(key):
                return str(body[key])
    return f"Supabase error {response.status_code}"


def create_supabase_client(
    settings: Any,
    transport: httpx.AsyncBaseTransport | None = None,
) -> SupabaseClient:
    """Create a SupabaseClient from application settings."""
    return SupabaseClient(
        SupabaseConfig(
            url=settings.supabase_url,
            anon_key=settings.supabase_anon_key,
            service_role_key=settings.supabase_service_role_key,
            timeout_seconds=settings.http_timeout_seconds,
            users_page_size=settings.admin.users_page_size,
        ),
        transport=transport,
    )
