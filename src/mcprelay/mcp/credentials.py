"""Per-server authorization header resolution."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from mcprelay.config import Settings
from mcprelay.models.server import GenericServer, ManagedServer, TargetServer

SESSION_HEADER = "Mcp-Session-Id"

type UrlPredicate = Callable[[str], bool]
type HeaderSource = Callable[[GenericServer, Settings], dict[str, str]]


@dataclass(slots=True)
class ResolvedRequest:
    """Outbound target URL and headers for one JSON-RPC call."""

    url: str
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ProviderCredential:
    """One entry of the known-provider table."""

    name: str
    matches: UrlPredicate
    headers: HeaderSource


def _host_fragment(fragment: str) -> UrlPredicate:
    return lambda url: fragment in url


def _bearer(token: str | None) -> dict[str, str]:
    if not token:
        return {}
    return {"Authorization": f"Bearer {token}"}


def _call_key_or(*env_fields: str) -> HeaderSource:
    def source(server: GenericServer, settings: Settings) -> dict[str, str]:
        if server.api_key:
            return _bearer(server.api_key)
        for env_field in env_fields:
            value = getattr(settings, env_field)
            if value:
                return _bearer(value)
        return {}

    return source


def _internal_platform(_: GenericServer, settings: Settings) -> dict[str, str]:
    key = settings.supabase_anon_key
    if not key:
        return {}
    return {"Authorization": f"Bearer {key}", "apikey": key}


PROVIDER_CREDENTIALS: tuple[ProviderCredential, ...] = (
    ProviderCredential("tavily", _host_fragment("mcp.tavily.com"), _call_key_or("tavily_api_key")),
    ProviderCredential(
        "customgpt",
        _host_fragment("mcp.customgpt.ai"),
        _call_key_or("customgpt_project_token", "customgpt_api_key"),
    ),
    ProviderCredential("exa", _host_fragment("mcp.exa.ai"), _call_key_or("exa_api_key")),
    ProviderCredential(
        "composio",
        _host_fragment("mcp.composio.dev"),
        _call_key_or("composio_api_key"),
    ),
    ProviderCredential(
        "smithery",
        _host_fragment("server.smithery.ai"),
        _call_key_or("smithery_api_key"),
    ),
    ProviderCredential(
        "internal",
        _host_fragment("supabase.co/functions/v1/"),
        _internal_platform,
    ),
)


def managed_relay_url(settings: Settings, namespace: str, connection_id: str) -> str:
    return f"{settings.managed_relay_base}/connect/{namespace}/{connection_id}/mcp"


def match_provider(url: str) -> ProviderCredential | None:
    """Return the first provider table entry matching ``url``."""
    for entry in PROVIDER_CREDENTIALS:
        if entry.matches(url):
            return entry
    return None


def resolve_credentials(
    server: TargetServer,
    settings: Settings,
    session_id: str | None = None,
) -> ResolvedRequest:
    """Pick the target URL and auth headers for ``server``.

    Managed servers are routed to the provider relay with the process-wide
    provider key and never carry a session header. Generic servers go through
    the provider table, then the per-call key, then no authorization.
    """
    if isinstance(server, ManagedServer):
        return ResolvedRequest(
            url=managed_relay_url(settings, server.namespace, server.connection_id),
            headers=_bearer(settings.smithery_api_key),
        )

    provider = match_provider(server.url)
    if provider is not None:
        headers = provider.headers(server, settings)
    else:
        headers = _bearer(server.api_key)

    if session_id:
        headers[SESSION_HEADER] = session_id
    return ResolvedRequest(url=server.url, headers=headers)
