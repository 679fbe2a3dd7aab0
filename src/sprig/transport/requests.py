"""
Requests binding for sprig.

requests is synchronous, so the plugin client is an async wrapper: the pipeline runs
on the event loop and every ``Session.send`` runs in the default thread pool. The
response body is read inside the worker thread, which means ``stream=True`` still
hands back a fully read response.
"""

import asyncio
from collections.abc import Sequence
from typing import Any

import requests
from requests.structures import CaseInsensitiveDict
from requests.utils import get_encoding_from_headers

from ..conversion import DECODED_RESPONSE_HEADERS
from ..conversion import bust_cache
from ..conversion import decode_body
from ..conversion import merge_headers
from ..models import AbortSignal
from ..models import Request
from ..models import Response
from ..pipeline import Pipeline
from ..plugins import Plugin
from .base import ClientBinding


class RequestsBinding(ClientBinding[requests.PreparedRequest, requests.Response]):
    """
    Binding over one ``Session.send`` call.

    Args:
        session: ``requests.Session`` or a ``RequestsPluginClient`` to layer on
        send_kwargs: Keyword arguments for ``Session.send`` (timeout, verify, ...)
    """

    def __init__(self, session: Any, send_kwargs: dict[str, Any] | None = None):
        self._session = session
        self._send_kwargs = send_kwargs or {}

    async def to_canonical_request(self, native: requests.PreparedRequest) -> Request:
        return Request(
            url=native.url,
            method=native.method,
            headers=[
                (key, value)
                for key, value in native.headers.items()
                if key.lower() != "content-length"
            ],
            body=native.body,
        )

    async def apply_canonical_request(
        self, native: requests.PreparedRequest, request: Request
    ) -> requests.PreparedRequest:
        prepared = native.copy()
        prepared.prepare_method(request.method)
        prepared.prepare_url(bust_cache(request.url, request.cache), None)

        data: Any = None
        files: Any = None
        json_body: Any = None
        drop: tuple[str, ...] = ()
        if request.body is not None:
            raw = await request.read()
            decoded = decode_body(request.headers.get("content-type"), raw)
            if decoded.kind == "json" and decoded.value is None:
                # json=None means "no body" to requests, send the literal null
                data = raw
            elif decoded.kind == "json":
                json_body = decoded.value
            elif decoded.kind == "form":
                # text fields go in as filename-less parts to stay multipart
                files = [
                    (field.name, (field.filename, field.value, field.content_type))
                    for field in decoded.value
                ]
                drop = ("content-type",)
            elif decoded.kind == "text":
                # http.client would encode a str body as latin-1
                data = decoded.value.encode("utf-8")
            else:
                data = decoded.value or None

        prepared.headers = CaseInsensitiveDict(
            merge_headers(native.headers.items(), request.headers, drop)
        )
        prepared.prepare_body(data, files, json_body)
        return prepared

    async def to_canonical_response(self, native: requests.Response) -> Response:
        return Response(
            status=native.status_code,
            status_text=native.reason or "",
            headers=[
                (key, value)
                for key, value in native.headers.items()
                if key.lower() not in DECODED_RESPONSE_HEADERS
            ],
            body=native.content,
            url=native.url or "",
        )

    async def apply_canonical_response(
        self, native: requests.Response, response: Response
    ) -> requests.Response:
        native.status_code = response.status
        native.reason = response.status_text
        native.headers = CaseInsensitiveDict(
            merge_headers(
                native.headers.items(), response.headers, drop=DECODED_RESPONSE_HEADERS
            )
        )
        native._content = await response.read()
        native.encoding = get_encoding_from_headers(native.headers)
        return native

    async def send(self, native: requests.PreparedRequest) -> requests.Response:
        if isinstance(self._session, RequestsPluginClient):
            return await self._session.send(native, **self._send_kwargs)

        loop = asyncio.get_running_loop()

        def send_and_read() -> requests.Response:
            response = self._session.send(native, **self._send_kwargs)
            response.content  # noqa: B018 - load the body off the event loop
            return response

        return await loop.run_in_executor(None, send_and_read)


class RequestsPluginClient:
    """
    Async wrapper around ``requests.Session`` that runs the plugin pipeline.

    Note: This is a compatibility layer for code that already configures a requests
    session (adapters, auth, cookies). For fully async I/O, use httpx or aiohttp.

    Args:
        session: ``requests.Session`` (or another ``RequestsPluginClient``)
        plugins: Ordered plugins
        raise_for_status: Call ``Response.raise_for_status()`` after the
            response hooks have run
        timeout: Default ``timeout`` for ``Session.send``
    """

    def __init__(
        self,
        session: Any,
        plugins: Sequence[Plugin] = (),
        raise_for_status: bool = False,
        timeout: float | None = None,
    ):
        self._session = session
        self._plugins = tuple(plugins)
        self._raise_for_status = raise_for_status
        self._timeout = timeout

    @property
    def plugins(self) -> tuple[Plugin, ...]:
        return self._plugins

    @property
    def session(self) -> requests.Session:
        """The innermost ``requests.Session``."""
        if isinstance(self._session, RequestsPluginClient):
            return self._session.session
        return self._session

    def extend(self, plugins: Sequence[Plugin]) -> "RequestsPluginClient":
        """Return a client that runs ``plugins`` on top of this one."""
        return RequestsPluginClient(
            self, plugins, self._raise_for_status, self._timeout
        )

    async def request(
        self,
        method: str,
        url: str,
        *,
        signal: AbortSignal | None = None,
        params: Any = None,
        data: Any = None,
        json: Any = None,
        headers: Any = None,
        files: Any = None,
        auth: Any = None,
        cookies: Any = None,
        timeout: float | None = None,
        allow_redirects: bool = True,
        proxies: dict[str, str] | None = None,
        stream: bool | None = None,
        verify: Any = None,
        cert: Any = None,
    ) -> requests.Response:
        """Same arguments as ``requests.Session.request``, plus ``signal``."""
        session = self.session
        prepared = session.prepare_request(
            requests.Request(
                method=method.upper(),
                url=url,
                headers=headers,
                files=files,
                data=data or {},
                json=json,
                params=params or {},
                auth=auth,
                cookies=cookies,
            )
        )
        settings = session.merge_environment_settings(
            prepared.url, proxies or {}, stream, verify, cert
        )
        return await self.send(
            prepared,
            signal=signal,
            timeout=timeout if timeout is not None else self._timeout,
            allow_redirects=allow_redirects,
            **settings,
        )

    async def send(
        self,
        prepared: requests.PreparedRequest,
        *,
        signal: AbortSignal | None = None,
        **send_kwargs: Any,
    ) -> requests.Response:
        """Run ``prepared`` through the plugins and send it."""
        pipeline = Pipeline(RequestsBinding(self._session, send_kwargs), self._plugins)
        response = await pipeline.handle(prepared, signal)
        if self._raise_for_status:
            response.raise_for_status()
        return response

    async def get(self, url: str, **kwargs: Any) -> requests.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> requests.Response:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs: Any) -> requests.Response:
        return await self.request("PUT", url, **kwargs)

    async def patch(self, url: str, **kwargs: Any) -> requests.Response:
        return await self.request("PATCH", url, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> requests.Response:
        return await self.request("DELETE", url, **kwargs)

    async def head(self, url: str, **kwargs: Any) -> requests.Response:
        kwargs.setdefault("allow_redirects", False)
        return await self.request("HEAD", url, **kwargs)

    async def close(self):
        """
        Async wrapper for closing the session.
        """
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.session.close)

    async def __aenter__(self) -> "RequestsPluginClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def create_requests_client(
    client: requests.Session | None = None,
    plugins: Sequence[Plugin] | None = None,
    raise_for_status: bool = False,
    timeout: float | None = None,
) -> RequestsPluginClient:
    """Wrap ``client`` (a ``requests.Session``) with the plugin pipeline."""
    return RequestsPluginClient(
        client if client is not None else requests.Session(),
        plugins or (),
        raise_for_status,
        timeout,
    )
