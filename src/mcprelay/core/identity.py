"""Caller identity verification against the platform auth service."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import httpx

from mcprelay.config import Settings
from mcprelay.errors import AuthenticationError, ConfigurationError


@dataclass(frozen=True, slots=True)
class CallerIdentity:
    """Verified user behind a lifecycle request."""

    id: str
    email: str | None = None


class IdentityVerifier(Protocol):
    """Async verifier turning a bearer token into a caller identity."""

    async def verify(self, token: str) -> CallerIdentity:
        """Return the identity for ``token`` or raise ``AuthenticationError``."""


def bearer_token(authorization: str | None) -> str:
    """Extract the token from an ``Authorization: Bearer`` header value."""
    if not authorization:
        msg = "Missing authorization header"
        raise AuthenticationError(msg)
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        msg = "Invalid authorization header"
        raise AuthenticationError(msg)
    return token.strip()


class SupabaseIdentityVerifier:
    """Resolve user tokens through the Supabase ``/auth/v1/user`` endpoint."""

    def __init__(
        self,
        settings: Settings,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._client = client

    async def verify(self, token: str) -> CallerIdentity:
        base_url = self._settings.supabase_url
        service_key = self._settings.supabase_service_role_key or self._settings.supabase_anon_key
        if not base_url or not service_key:
            msg = "Identity service not configured"
            raise ConfigurationError(msg)

        url = f"{base_url.rstrip('/')}/auth/v1/user"
        headers = {"Authorization": f"Bearer {token}", "apikey": service_key}
        if self._client is not None:
            response = await self._client.get(url, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=self._settings.request_timeout_seconds) as client:
                response = await client.get(url, headers=headers)

        if not response.is_success:
            msg = "Invalid user token"
            raise AuthenticationError(msg)
        try:
            payload = response.json()
        except ValueError as exc:
            msg = "Invalid user token"
            raise AuthenticationError(msg) from exc
        user_id = payload.get("id") if isinstance(payload, dict) else None
        if not isinstance(user_id, str) or not user_id:
            msg = "Invalid user token"
            raise AuthenticationError(msg)
        email = payload.get("email")
        return CallerIdentity(id=user_id, email=email if isinstance(email, str) else None)
