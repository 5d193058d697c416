"""Shared API dependency providers.

This module is the composition root: the process-wide session and namespace
caches live here and are injected into the components that use them.
"""

from __future__ import annotations

from mcprelay.config import get_settings
from mcprelay.core.cache import InMemoryCache
from mcprelay.core.connection_manager import ConnectionManager
from mcprelay.core.identity import IdentityVerifier, SupabaseIdentityVerifier
from mcprelay.core.provider import SmitheryClient
from mcprelay.db.store import SQLiteStore
from mcprelay.mcp.executor import ToolExecutor
from mcprelay.mcp.session import SessionManager
from mcprelay.mcp.transport import JSONRPCTransport

_SESSION_CACHE = InMemoryCache()
_NAMESPACE_CACHE = InMemoryCache()


def get_store() -> SQLiteStore:
    settings = get_settings()
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)
    return SQLiteStore(db_path=settings.db_path)


def get_transport() -> JSONRPCTransport:
    return JSONRPCTransport(get_settings())


def get_session_manager() -> SessionManager:
    return SessionManager(get_transport(), _SESSION_CACHE)


def get_tool_executor() -> ToolExecutor:
    return ToolExecutor(
        transport=get_transport(),
        sessions=get_session_manager(),
        store=get_store(),
    )


def get_connection_manager() -> ConnectionManager:
    settings = get_settings()
    return ConnectionManager(
        store=get_store(),
        provider=SmitheryClient(settings),
        transport=get_transport(),
        namespaces=_NAMESPACE_CACHE,
        settings=settings,
    )


def get_identity_verifier() -> IdentityVerifier:
    return SupabaseIdentityVerifier(get_settings())
