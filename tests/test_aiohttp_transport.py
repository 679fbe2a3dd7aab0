"""
Tests for the aiohttp binding and AiohttpPluginClient.

Requests go to a local aiohttp TestServer that echoes what it received.
"""

import asyncio

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from sprig.conversion import parse_form_data
from sprig.exceptions import RequestAbortedError
from sprig.plugins import Plugin
from sprig.plugins import RetryPlugin
from sprig.plugins import TimeoutPlugin
from sprig.transport.aiohttp import AiohttpBinding
from sprig.transport.aiohttp import AiohttpCall
from sprig.transport.aiohttp import AiohttpPluginClient
from sprig.transport.aiohttp import create_aiohttp_client


async def echo(request: web.Request) -> web.Response:
    body = await request.read()
    return web.json_response(
        {
            "method": request.method,
            "url": str(request.url),
            "query": dict(request.query),
            "headers": {key.lower(): value for key, value in request.headers.items()},
            "body": body.decode("utf-8", "replace"),
        }
    )


async def flaky(request: web.Request) -> web.Response:
    statuses = request.app["statuses"]
    status = statuses.pop(0) if statuses else 200
    return web.Response(status=status, text=f"status {status}")


async def slow(request: web.Request) -> web.Response:
    await asyncio.sleep(1)
    return web.Response(text="late")


@pytest_asyncio.fixture
async def server():
    app = web.Application()
    app["statuses"] = []
    app.router.add_route("*", "/echo", echo)
    app.router.add_get("/flaky", flaky)
    app.router.add_get("/slow", slow)
    async with TestServer(app) as test_server:
        yield test_server


@pytest_asyncio.fixture
async def session():
    async with aiohttp.ClientSession() as client_session:
        yield client_session


class TestBinding:
    @pytest.mark.asyncio
    async def test_round_trip_without_hooks_preserves_call(self, session):
        binding = AiohttpBinding(session)
        native = AiohttpCall(
            "PUT",
            "https://api.test/items",
            {"params": {"q": "1"}, "headers": {"X-A": "1"}, "json": {"a": 1}, "timeout": 5},
        )

        canonical = await binding.to_canonical_request(native)
        rebuilt = await binding.apply_canonical_request(native, canonical.clone())

        assert canonical.url == "https://api.test/items?q=1"
        assert canonical.headers.get("content-type") == "application/json"
        assert rebuilt.method == "PUT"
        assert rebuilt.url == "https://api.test/items?q=1"
        assert "params" not in rebuilt.options
        assert rebuilt.options["json"] == {"a": 1}
        assert rebuilt.options["timeout"] == 5
        names = {name.lower() for name, _ in rebuilt.options["headers"]}
        assert names == {"x-a", "content-type"}

    @pytest.mark.asyncio
    async def test_string_and_mapping_data(self, session):
        binding = AiohttpBinding(session)

        text = await binding.to_canonical_request(
            AiohttpCall("POST", "https://api.test/", {"data": "héllo"})
        )
        assert await text.text() == "héllo"
        assert text.headers["content-type"] == "text/plain; charset=utf-8"

        form = await binding.to_canonical_request(
            AiohttpCall("POST", "https://api.test/", {"data": {"a": "1", "b": "2"}})
        )
        assert await form.text() == "a=1&b=2"
        assert form.headers["content-type"] == "application/x-www-form-urlencoded"


class TestAiohttpPluginClient:
    @pytest.mark.asyncio
    async def test_no_plugins_behaves_like_session(self, server, session):
        client = create_aiohttp_client(session)

        response = await client.get(server.make_url("/echo"), params={"q": "1"})
        payload = await response.json()

        assert response.status == 200
        assert payload["method"] == "GET"
        assert payload["query"] == {"q": "1"}

    @pytest.mark.asyncio
    async def test_json_body_round_trips(self, server, session):
        client = create_aiohttp_client(session, [Plugin("noop")])

        response = await client.post(server.make_url("/echo"), json={"a": [1, 2]})
        payload = await response.json()

        assert payload["headers"]["content-type"] == "application/json"
        assert payload["body"].replace(" ", "") == '{"a":[1,2]}'

    @pytest.mark.asyncio
    async def test_multipart_form_is_reencoded(self, server, session):
        client = create_aiohttp_client(session, [Plugin("noop")])
        form = aiohttp.FormData()
        form.add_field("title", "report")
        form.add_field("upload", b"file body", filename="a.txt", content_type="text/plain")

        response = await client.post(server.make_url("/echo"), data=form)
        payload = await response.json()

        parsed = parse_form_data(
            payload["headers"]["content-type"], payload["body"].encode("utf-8")
        )
        assert parsed.get("title") == "report"
        assert parsed.fields[1].filename == "a.txt"
        assert parsed.fields[1].value == b"file body"

    @pytest.mark.asyncio
    async def test_before_request_header_overrides(self, server, session):
        def hook(request):
            return request.replace(headers=request.headers.set("x-token", "plugin"))

        client = create_aiohttp_client(session, [Plugin("token", before_request=hook)])

        response = await client.get(server.make_url("/echo"), headers={"X-Token": "caller"})
        payload = await response.json()

        assert payload["headers"]["x-token"] == "plugin"

    @pytest.mark.asyncio
    async def test_after_response_hooks_chain(self, server, session):
        def rewrite(name, body):
            def hook(response, request, retry):
                return response.replace(
                    headers=response.headers.set(name, "1").set("Content-Type", "text/plain"),
                    body=body,
                )

            return hook

        plugins = [
            Plugin("first", after_response=rewrite("x-first", "first")),
            Plugin("second", after_response=rewrite("x-second", "second")),
        ]
        client = create_aiohttp_client(session, plugins)

        response = await client.get(server.make_url("/echo"))

        assert response.headers["x-first"] == "1"
        assert response.headers["x-second"] == "1"
        assert await response.text() == "second"

    @pytest.mark.asyncio
    async def test_after_response_headers_replace_server_headers(self, server, session):
        def rewrite(response, request, retry):
            return response.replace(
                headers=response.headers.set("x-plugin", "yes"), body="short"
            )

        client = create_aiohttp_client(session, [Plugin("rewrite", after_response=rewrite)])

        response = await client.get(server.make_url("/echo"))

        assert response.headers["x-plugin"] == "yes"
        assert "content-length" not in response.headers
        assert (b"x-plugin", b"yes") in response.raw_headers
        assert await response.text() == "short"

    @pytest.mark.asyncio
    async def test_json_null_body_is_sent(self, server, session):
        def null_body(request):
            return request.replace(
                headers=request.headers.set("Content-Type", "application/json"),
                body="null",
            )

        client = create_aiohttp_client(session, [Plugin("null", before_request=null_body)])

        response = await client.post(server.make_url("/echo"), json={"a": 1})
        payload = await response.json()

        assert payload["headers"]["content-type"] == "application/json"
        assert payload["body"] == "null"

    @pytest.mark.asyncio
    async def test_raise_for_status_runs_after_hooks(self, server):
        server.app["statuses"].extend([500, 500])

        def recover(response, request, retry):
            return response.replace(status=200, status_text="OK", body="recovered")

        async with aiohttp.ClientSession(raise_for_status=True) as strict:
            client = create_aiohttp_client(strict, [Plugin("recover", after_response=recover)])
            response = await client.get(server.make_url("/flaky"))
            assert response.status == 200
            assert await response.text() == "recovered"

            bare = create_aiohttp_client(strict, [Plugin("noop")])
            with pytest.raises(aiohttp.ClientResponseError) as info:
                await bare.get(server.make_url("/flaky"))
            assert info.value.status == 500

    @pytest.mark.asyncio
    async def test_retry_plugin(self, server, session):
        server.app["statuses"].extend([503, 429])
        client = create_aiohttp_client(session, [RetryPlugin(limit=2, backoff_limit=0)])

        response = await client.get(server.make_url("/flaky"))

        assert response.status == 200
        assert await response.text() == "status 200"
        assert server.app["statuses"] == []

    @pytest.mark.asyncio
    async def test_timeout_plugin_aborts(self, server, session):
        client = create_aiohttp_client(session, [TimeoutPlugin(0.05)])

        with pytest.raises(RequestAbortedError):
            await client.get(server.make_url("/slow"))

    @pytest.mark.asyncio
    async def test_extend_layers_plugins(self, server, session):
        order = []

        def plugin(name):
            def before(request):
                order.append(f"{name}:before")
                return request

            def after(response, request, retry):
                order.append(f"{name}:after")
                return response

            return Plugin(name, before_request=before, after_response=after)

        base = create_aiohttp_client(session, [plugin("inner")])
        layered = base.extend([plugin("outer")])

        response = await layered.get(server.make_url("/echo"))

        assert isinstance(layered, AiohttpPluginClient)
        assert response.status == 200
        assert order == ["outer:before", "inner:before", "inner:after", "outer:after"]
