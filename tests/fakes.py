"""
Test utilities and fake clients for sprig.

This module provides an in-memory client binding and a fake requests adapter, so
the pipeline and the bindings can be tested without making real HTTP requests.
"""

import asyncio
import json
from http import HTTPStatus

import httpx
import requests
from requests.adapters import BaseAdapter
from requests.structures import CaseInsensitiveDict

from sprig.models import Request
from sprig.models import Response
from sprig.transport.base import ClientBinding


class FakeBinding(ClientBinding[dict, dict]):
    """
    Binding over plain dicts.

    Native requests are ``{"method", "url", "headers", "body"}`` dicts and native
    responses ``{"status", "headers", "body"}`` dicts. ``handler`` receives every sent
    native request and returns the native response.
    """

    def __init__(self, handler=None, delay: float = 0.0):
        self.handler = handler or (lambda native: {"status": 200, "headers": [], "body": b"ok"})
        self.delay = delay
        self.sent: list[dict] = []

    @property
    def send_count(self):
        return len(self.sent)

    async def to_canonical_request(self, native):
        return Request(
            url=native["url"],
            method=native["method"],
            headers=native.get("headers", []),
            body=native.get("body"),
        )

    async def apply_canonical_request(self, native, request):
        return {
            "method": request.method,
            "url": request.url,
            "headers": request.headers.items(),
            "body": await request.read() if request.body is not None else None,
        }

    async def to_canonical_response(self, native):
        return Response(
            status=native["status"],
            headers=native.get("headers", []),
            body=native.get("body"),
        )

    async def apply_canonical_response(self, native, response):
        return {
            "status": response.status,
            "headers": response.headers.items(),
            "body": await response.read(),
        }

    async def send(self, native):
        self.sent.append(native)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.handler(native)


def echo_handler(request: httpx.Request) -> httpx.Response:
    """httpx.MockTransport handler that describes the request it received."""
    return httpx.Response(
        200,
        json={
            "method": request.method,
            "url": str(request.url),
            "headers": dict(request.headers),
            "body": request.content.decode("utf-8", "replace"),
        },
    )


class FakeAdapter(BaseAdapter):
    """
    requests transport adapter answering from a handler.

    Mount it on a session for every scheme:
        session.mount("https://", FakeAdapter(handler))
    """

    def __init__(self, handler=None):
        super().__init__()
        self.handler = handler or (lambda prepared: (200, {}, b"ok"))
        self.requests: list[requests.PreparedRequest] = []
        self.send_kwargs: list[dict] = []

    @property
    def request_count(self):
        return len(self.requests)

    def send(self, request, **kwargs):
        self.requests.append(request)
        self.send_kwargs.append(kwargs)
        status, headers, body = self.handler(request)

        response = requests.Response()
        response.status_code = status
        response.reason = HTTPStatus(status).phrase
        response.headers = CaseInsensitiveDict(headers)
        response._content = body
        response.url = request.url
        response.request = request
        response.encoding = requests.utils.get_encoding_from_headers(response.headers)
        return response

    def close(self):
        pass


def requests_echo(prepared: requests.PreparedRequest):
    """FakeAdapter handler that describes the request it received."""
    body = prepared.body
    if isinstance(body, bytes):
        body = body.decode("utf-8", "replace")
    payload = {
        "method": prepared.method,
        "url": prepared.url,
        "headers": dict(prepared.headers),
        "body": body,
    }
    return 200, {"Content-Type": "application/json"}, json.dumps(payload).encode()
