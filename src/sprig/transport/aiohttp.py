"""
Aiohttp binding for sprig.

aiohttp builds its wire request internally, so the native request here is the call
itself: the method, URL and keyword options that would be passed to
``ClientSession.request``. The native response is the ``aiohttp.ClientResponse``
returned for it, with its body preloaded so plugins can read and replace it.

Status validation (``raise_for_status``) is deferred until the response hooks have
run, so plugins can still retry or rewrite a 4xx/5xx answer.

Example:
    async with aiohttp.ClientSession(raise_for_status=True) as session:
        client = create_aiohttp_client(session, plugins=[RetryPlugin()])
        response = await client.get("https://example.com")
        print(await response.text())
"""

import json
from collections.abc import Mapping
from collections.abc import Sequence
from typing import Any
from typing import NamedTuple
from urllib.parse import urlencode

import aiohttp
from multidict import CIMultiDict
from multidict import CIMultiDictProxy
from yarl import URL

from ..conversion import DECODED_RESPONSE_HEADERS
from ..conversion import FORM_URLENCODED
from ..conversion import bust_cache
from ..conversion import decode_body
from ..conversion import merge_headers
from ..models import AbortSignal
from ..models import Request
from ..models import Response
from ..pipeline import Pipeline
from ..plugins import Plugin
from .base import ClientBinding


class AiohttpCall(NamedTuple):
    """A pending ``ClientSession.request(method, url, **options)`` call."""

    method: str
    url: str
    options: dict[str, Any]


class _BufferWriter:
    """Collects what an aiohttp payload writes, instead of sending it."""

    def __init__(self):
        self.chunks: list[bytes] = []

    async def write(self, chunk: bytes) -> None:
        self.chunks.append(bytes(chunk))


async def _encode_payload(data: Any) -> tuple[Any, str | None]:
    if isinstance(data, str):
        return data.encode("utf-8"), "text/plain; charset=utf-8"
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data), "application/octet-stream"
    if isinstance(data, Mapping) or (
        isinstance(data, (list, tuple)) and all(isinstance(i, tuple) for i in data)
    ):
        items = data.items() if isinstance(data, Mapping) else data
        return urlencode(list(items)).encode("ascii"), FORM_URLENCODED
    if isinstance(data, aiohttp.FormData):
        payload = data()
        writer = _BufferWriter()
        await payload.write(writer)
        return b"".join(writer.chunks), payload.content_type
    # file objects and async generators stay lazy
    return data, "application/octet-stream"


class AiohttpBinding(ClientBinding[AiohttpCall, aiohttp.ClientResponse]):
    """
    Session-level binding. Bodies are handed back to aiohttp in the form it would
    have built them from: ``json=`` for JSON, ``FormData`` for multipart, text for
    urlencoded/plain bodies and raw bytes for everything else.

    Args:
        session: ``aiohttp.ClientSession`` or anything with the same ``request``
    """

    def __init__(self, session: Any):
        self._session = session

    async def to_canonical_request(self, native: AiohttpCall) -> Request:
        options = native.options
        url = URL(native.url)
        if options.get("params"):
            url = url.extend_query(options["params"])

        headers = CIMultiDict(options.get("headers") or {})
        body: Any = None
        content_type = None
        if options.get("json") is not None:
            body = json.dumps(options["json"]).encode("utf-8")
            content_type = "application/json"
        elif options.get("data") is not None:
            body, content_type = await _encode_payload(options["data"])
        if content_type and "Content-Type" not in headers:
            headers["Content-Type"] = content_type

        return Request(
            url=str(url),
            method=native.method,
            headers=headers.items(),
            body=body,
        )

    async def apply_canonical_request(
        self, native: AiohttpCall, request: Request
    ) -> AiohttpCall:
        options = {
            key: value
            for key, value in native.options.items()
            if key not in ("data", "json", "params", "headers")
        }
        drop: tuple[str, ...] = ()

        if request.body is not None:
            raw = await request.read()
            decoded = decode_body(request.headers.get("content-type"), raw)
            if decoded.kind == "json" and decoded.value is None:
                # json=None means "no body" to aiohttp, send the literal null
                options["data"] = raw
            elif decoded.kind == "json":
                options["json"] = decoded.value
            elif decoded.kind == "form":
                form = aiohttp.FormData()
                for field in decoded.value:
                    form.add_field(
                        field.name,
                        field.value,
                        filename=field.filename,
                        content_type=field.content_type,
                    )
                options["data"] = form
                # FormData writes its own boundary
                drop = ("content-type",)
            else:
                options["data"] = decoded.value

        native_headers = CIMultiDict(native.options.get("headers") or {})
        options["headers"] = merge_headers(native_headers.items(), request.headers, drop)
        return AiohttpCall(request.method, bust_cache(request.url, request.cache), options)

    async def to_canonical_response(self, native: aiohttp.ClientResponse) -> Response:
        body = await native.read()
        return Response(
            status=native.status,
            status_text=native.reason or "",
            headers=[
                (key, value)
                for key, value in native.headers.items()
                if key.lower() not in DECODED_RESPONSE_HEADERS
            ],
            body=body,
            url=str(native.url),
        )

    async def apply_canonical_response(
        self, native: aiohttp.ClientResponse, response: Response
    ) -> aiohttp.ClientResponse:
        headers = merge_headers(
            native.headers.items(), response.headers, drop=DECODED_RESPONSE_HEADERS
        )
        native.status = response.status
        native.reason = response.status_text
        native._headers = CIMultiDictProxy(CIMultiDict(headers))
        native._raw_headers = tuple(
            (key.encode("utf-8"), value.encode("utf-8")) for key, value in headers
        )
        # headers and raw_headers are reified on first access
        cache = getattr(native, "_cache", None)
        if cache is not None:
            cache.pop("headers", None)
            cache.pop("raw_headers", None)
        native._body = await response.read()
        return native

    async def send(self, native: AiohttpCall) -> aiohttp.ClientResponse:
        return await self._session.request(
            native.method, native.url, raise_for_status=False, **native.options
        )


class AiohttpPluginClient:
    """
    ``ClientSession``-like client that runs the plugin pipeline for every call.

    Responses come back fully read, so there is nothing to release; ``text()``,
    ``json()`` and ``read()`` return the body the plugins settled on.

    Args:
        session: ``aiohttp.ClientSession`` (or another ``AiohttpPluginClient``)
        plugins: Ordered plugins
        raise_for_status: Status policy applied after the response hooks.
            Defaults to the session's own ``raise_for_status``.
    """

    def __init__(
        self,
        session: Any,
        plugins: Sequence[Plugin] = (),
        raise_for_status: Any = None,
    ):
        self._session = session
        if raise_for_status is None:
            raise_for_status = getattr(session, "raise_for_status", False)
        self._raise_for_status = raise_for_status
        self._pipeline = Pipeline(AiohttpBinding(session), plugins)

    @property
    def plugins(self) -> tuple[Plugin, ...]:
        return self._pipeline.plugins

    @property
    def raise_for_status(self) -> Any:
        return self._raise_for_status

    def extend(self, plugins: Sequence[Plugin]) -> "AiohttpPluginClient":
        """Return a client that runs ``plugins`` on top of this one."""
        return AiohttpPluginClient(self, plugins, self._raise_for_status)

    async def request(
        self,
        method: str,
        url: Any,
        *,
        signal: AbortSignal | None = None,
        raise_for_status: Any = None,
        **options: Any,
    ) -> aiohttp.ClientResponse:
        call = AiohttpCall(method.upper(), str(url), options)
        response = await self._pipeline.handle(call, signal)

        policy = self._raise_for_status if raise_for_status is None else raise_for_status
        if policy is True:
            response.raise_for_status()
        elif callable(policy):
            await policy(response)
        return response

    async def get(self, url: Any, **options: Any) -> aiohttp.ClientResponse:
        return await self.request("GET", url, **options)

    async def post(self, url: Any, **options: Any) -> aiohttp.ClientResponse:
        return await self.request("POST", url, **options)

    async def put(self, url: Any, **options: Any) -> aiohttp.ClientResponse:
        return await self.request("PUT", url, **options)

    async def patch(self, url: Any, **options: Any) -> aiohttp.ClientResponse:
        return await self.request("PATCH", url, **options)

    async def delete(self, url: Any, **options: Any) -> aiohttp.ClientResponse:
        return await self.request("DELETE", url, **options)

    async def head(self, url: Any, **options: Any) -> aiohttp.ClientResponse:
        return await self.request("HEAD", url, **options)

    async def close(self) -> None:
        await self._session.close()

    async def __aenter__(self) -> "AiohttpPluginClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def create_aiohttp_client(
    client: Any,
    plugins: Sequence[Plugin] | None = None,
    raise_for_status: Any = None,
) -> AiohttpPluginClient:
    """
    Wrap ``client`` (an ``aiohttp.ClientSession``) with the plugin pipeline.

    Without plugins the wrapper sends straight through the session.
    """
    return AiohttpPluginClient(client, plugins or (), raise_for_status)
