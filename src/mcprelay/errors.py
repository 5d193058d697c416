"""Relay error taxonomy rendered by the API layer."""

from __future__ import annotations

from fastapi import status


class RelayError(RuntimeError):
    """Base error carrying the HTTP status it should surface with."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(RelayError):
    """A required secret or setting is missing."""


class AuthenticationError(RelayError):
    """Caller bearer token missing or rejected."""

    status_code = status.HTTP_401_UNAUTHORIZED


class InputError(RelayError):
    """Caller payload is missing a required field."""

    status_code = status.HTTP_400_BAD_REQUEST


class ProviderError(RelayError):
    """Managed-connection provider answered with a non-success status."""

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, message: str, *, upstream_status: int | None = None) -> None:
        super().__init__(message)
        self.upstream_status = upstream_status
