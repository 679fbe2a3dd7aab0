"""
Httpx binding for sprig.

The plugin pipeline is installed as an ``httpx.AsyncBaseTransport`` that wraps the
real transport, so every request an ``httpx.AsyncClient`` sends (redirect hops
included) goes through the hooks, and retries go straight to the inner transport.

Example:
    transport = create_httpx_transport(plugins=[RetryPlugin(limit=3)])
    async with httpx.AsyncClient(transport=transport) as client:
        response = await client.get("https://example.com")

Cancellation and the fetch-style request options travel in ``request.extensions``:

    await client.get(url, extensions={SIGNAL_EXTENSION: AbortSignal.timeout(2)})
"""

from collections.abc import Sequence

import httpx

from ..conversion import DECODED_RESPONSE_HEADERS
from ..conversion import SKIPPED_HEADERS
from ..conversion import bust_cache
from ..conversion import merge_headers
from ..models import CacheMode
from ..models import Credentials
from ..models import Request
from ..models import Response
from ..pipeline import Pipeline
from ..plugins import Plugin
from .base import ClientBinding

SIGNAL_EXTENSION = "sprig.signal"
CREDENTIALS_EXTENSION = "sprig.credentials"
CACHE_EXTENSION = "sprig.cache"


class HttpxBinding(ClientBinding[httpx.Request, httpx.Response]):
    """
    Transport-level binding: bodies are always plain bytes because the transport
    sits below httpx's own JSON/form encoders.
    """

    def __init__(self, transport: httpx.AsyncBaseTransport):
        self._transport = transport

    async def to_canonical_request(self, native: httpx.Request) -> Request:
        content = await native.aread()
        return Request(
            url=str(native.url),
            method=native.method,
            headers=[
                (key, value)
                for key, value in native.headers.multi_items()
                if key.lower() not in SKIPPED_HEADERS
            ],
            body=content or None,
            signal=native.extensions.get(SIGNAL_EXTENSION),
            credentials=native.extensions.get(
                CREDENTIALS_EXTENSION, Credentials.SAME_ORIGIN
            ),
            cache=native.extensions.get(CACHE_EXTENSION, CacheMode.DEFAULT),
        )

    async def apply_canonical_request(
        self, native: httpx.Request, request: Request
    ) -> httpx.Request:
        content = await request.read() if request.body is not None else None
        extensions = {
            **native.extensions,
            CREDENTIALS_EXTENSION: request.credentials,
            CACHE_EXTENSION: request.cache,
        }
        if request.signal is not None:
            extensions[SIGNAL_EXTENSION] = request.signal
        else:
            extensions.pop(SIGNAL_EXTENSION, None)

        return httpx.Request(
            request.method,
            bust_cache(request.url, request.cache),
            headers=merge_headers(native.headers.multi_items(), request.headers),
            content=content,
            extensions=extensions,
        )

    async def to_canonical_response(self, native: httpx.Response) -> Response:
        content = await native.aread()
        return Response(
            status=native.status_code,
            status_text=native.reason_phrase,
            headers=[
                (key, value)
                for key, value in native.headers.multi_items()
                if key.lower() not in DECODED_RESPONSE_HEADERS
            ],
            body=content,
        )

    async def apply_canonical_response(
        self, native: httpx.Response, response: Response
    ) -> httpx.Response:
        content = await response.read()
        extensions = {
            **native.extensions,
            "reason_phrase": response.status_text.encode("ascii", "replace"),
        }
        return httpx.Response(
            response.status,
            headers=merge_headers(
                native.headers.multi_items(),
                response.headers,
                drop=DECODED_RESPONSE_HEADERS,
            ),
            content=content,
            extensions=extensions,
        )

    async def send(self, native: httpx.Request) -> httpx.Response:
        return await self._transport.handle_async_request(native)


class PluginTransport(httpx.AsyncBaseTransport):
    """
    Async transport that runs the plugin pipeline around an inner transport.

    Wrapping a ``PluginTransport`` in another one layers a second pipeline on top;
    the inner plugins run below (and inside the retries of) the outer ones.

    Args:
        transport: Transport that actually sends (default: httpx.AsyncHTTPTransport)
        plugins: Ordered plugins
    """

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        plugins: Sequence[Plugin] = (),
    ):
        self._transport = transport or httpx.AsyncHTTPTransport()
        self._pipeline = Pipeline(HttpxBinding(self._transport), plugins)

    @property
    def plugins(self) -> tuple[Plugin, ...]:
        return self._pipeline.plugins

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        return await self._pipeline.handle(request)

    async def aclose(self) -> None:
        await self._transport.aclose()


def create_httpx_transport(
    client: httpx.AsyncBaseTransport | None = None,
    plugins: Sequence[Plugin] | None = None,
) -> httpx.AsyncBaseTransport:
    """
    Wrap ``client`` (an httpx transport) with the plugin pipeline.

    Without plugins the inner transport is returned unchanged.
    """
    if not plugins:
        return client or httpx.AsyncHTTPTransport()
    return PluginTransport(client, plugins)
