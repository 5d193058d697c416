"""Common route helpers."""

from __future__ import annotations

from mcprelay.core.identity import CallerIdentity, IdentityVerifier, bearer_token


async def authenticate(authorization: str | None, verifier: IdentityVerifier) -> CallerIdentity:
    """Verify the caller's bearer token or raise ``AuthenticationError``."""
    return await verifier.verify(bearer_token(authorization))
