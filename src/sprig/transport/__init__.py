"""
Client bindings for sprig.

Each supported HTTP client gets a binding (conversion functions plus a send) and an
adapter that wires the binding into the plugin pipeline:

- httpx: ``PluginTransport``, an async transport wrapping the real one
- aiohttp: ``AiohttpPluginClient``, a session wrapper that defers ``raise_for_status``
- requests: ``RequestsPluginClient``, an async wrapper running sends in a thread pool

Client modules are imported lazily so that only the installed clients are needed.
"""

from collections.abc import Sequence
from typing import Any

from ..plugins import Plugin
from .base import ClientBinding

CLIENTS = ("httpx", "aiohttp", "requests")


def create_adapter(
    name: str, client: Any = None, plugins: Sequence[Plugin] | None = None
) -> Any:
    """
    Wrap ``client`` with the plugin pipeline, choosing the adapter by client name.

    Available clients:
    - httpx: ``client`` is an ``httpx.AsyncBaseTransport`` (default: a new one)
    - aiohttp: ``client`` is an ``aiohttp.ClientSession`` (required)
    - requests: ``client`` is a ``requests.Session`` (default: a new one)
    """
    name = name.lower()
    if name == "httpx":
        from .httpx import create_httpx_transport

        return create_httpx_transport(client, plugins)
    elif name == "aiohttp":
        try:
            from .aiohttp import create_aiohttp_client
        except ImportError as err:
            raise ImportError(
                "aiohttp adapter requires aiohttp package. Install with: pip install 'sprig-http[aiohttp]'"
            ) from err
        if client is None:
            raise ValueError("aiohttp adapter needs an aiohttp.ClientSession")
        return create_aiohttp_client(client, plugins)
    elif name == "requests":
        try:
            from .requests import create_requests_client
        except ImportError as err:
            raise ImportError(
                "requests adapter requires requests package. Install with: pip install 'sprig-http[requests]'"
            ) from err
        return create_requests_client(client, plugins)
    else:
        raise ValueError(
            f"Unknown client: {name}. Available: {', '.join(CLIENTS)}"
        )


__all__ = ["CLIENTS", "ClientBinding", "create_adapter"]
