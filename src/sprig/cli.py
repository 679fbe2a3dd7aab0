"""
Command-line interface for sprig.

Issues a single HTTP request through one of the supported clients with the
companion plugins attached, curl style. Handy for checking how a service reacts to
retries and timeouts without writing code.

Available commands:
- request: Send one request and print the response body
"""

import asyncio
import logging
from typing import NamedTuple

import click
import httpx

from .config import SprigSettings
from .exceptions import SprigError
from .plugins import LoggingPlugin
from .plugins import Plugin
from .plugins import RetryPlugin
from .plugins import TimeoutPlugin
from .transport import CLIENTS
from .transport.httpx import create_httpx_transport

logger = logging.getLogger("sprig.cli")


class Reply(NamedTuple):
    status: int
    reason: str
    headers: list[tuple[str, str]]
    body: bytes


def _parse_header(value: str) -> tuple[str, str]:
    name, sep, header_value = value.partition(":")
    if not sep or not name.strip():
        raise click.BadParameter(f"expected 'Name: value', got {value!r}")
    return name.strip(), header_value.strip()


def _httpx_transport() -> httpx.AsyncBaseTransport:
    return httpx.AsyncHTTPTransport()


async def _send_httpx(method, url, headers, data, plugins, timeout) -> Reply:
    transport = create_httpx_transport(_httpx_transport(), plugins)
    async with httpx.AsyncClient(transport=transport, timeout=timeout) as client:
        try:
            response = await client.request(method, url, headers=headers, content=data)
        except httpx.HTTPError as exc:
            raise click.ClickException(f"{type(exc).__name__}: {exc}") from exc
        return Reply(
            response.status_code,
            response.reason_phrase,
            response.headers.multi_items(),
            response.content,
        )


async def _send_aiohttp(method, url, headers, data, plugins, timeout) -> Reply:
    import aiohttp

    from .transport.aiohttp import create_aiohttp_client

    session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout))
    async with create_aiohttp_client(session, plugins) as client:
        try:
            response = await client.request(method, url, headers=headers, data=data)
        except aiohttp.ClientError as exc:
            raise click.ClickException(f"{type(exc).__name__}: {exc}") from exc
        return Reply(
            response.status,
            response.reason or "",
            list(response.headers.items()),
            await response.read(),
        )


async def _send_requests(method, url, headers, data, plugins, timeout) -> Reply:
    import requests

    from .transport.requests import create_requests_client

    async with create_requests_client(plugins=plugins, timeout=timeout) as client:
        try:
            response = await client.request(method, url, headers=dict(headers), data=data)
        except requests.RequestException as exc:
            raise click.ClickException(f"{type(exc).__name__}: {exc}") from exc
        return Reply(
            response.status_code,
            response.reason or "",
            list(response.headers.items()),
            response.content,
        )


SENDERS = {
    "httpx": _send_httpx,
    "aiohttp": _send_aiohttp,
    "requests": _send_requests,
}


def build_plugins(
    settings: SprigSettings, retry_limit: int | None, timeout: float | None
) -> list[Plugin]:
    """Companion plugins for one CLI call, flags taking precedence over settings."""
    plugins: list[Plugin] = [LoggingPlugin(level=logging.DEBUG, log_headers=True)]
    limit = settings.retry_limit if retry_limit is None else retry_limit
    if limit > 0:
        plugins.append(
            RetryPlugin(
                limit=limit,
                backoff_limit=settings.retry_backoff_limit,
                max_retry_after=settings.retry_max_retry_after,
            )
        )
    request_timeout = settings.request_timeout if timeout is None else timeout
    if request_timeout:
        plugins.append(TimeoutPlugin(request_timeout))
    return plugins


@click.group()
def cli():
    """sprig CLI"""
    pass


@cli.command()
@click.argument("url")
@click.option("-X", "--method", default=None, help="HTTP method (default GET, POST with -d)")
@click.option("-H", "--header", "headers", multiple=True, help="Header as 'Name: value'")
@click.option("-d", "--data", default=None, help="Request body")
@click.option("--client", type=click.Choice(CLIENTS), default=None, help="HTTP client to use")
@click.option("--retry", "retry_limit", type=click.IntRange(min=0), default=None, help="Retry limit")
@click.option("--timeout", type=click.FloatRange(min=0, min_open=True), default=None, help="Abort after this many seconds")
@click.option("-i", "--include", is_flag=True, help="Print status line and headers")
@click.option("-v", "--verbose", is_flag=True, help="Log plugin activity")
def request(url, method, headers, data, client, retry_limit, timeout, include, verbose):
    """Send one request through the plugin pipeline and print the response."""
    settings = SprigSettings()
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level.upper(),
        format="%(levelname)s: %(message)s",
    )

    client = client or settings.client
    if client not in SENDERS:
        raise click.BadParameter(f"unknown client {client!r}", param_hint="--client")
    method = (method or ("POST" if data is not None else "GET")).upper()
    header_list = [_parse_header(value) for value in headers]
    body = data.encode("utf-8") if data is not None else None
    plugins = build_plugins(settings, retry_limit, timeout)

    logger.debug(f"Sending {method} {url} via {client} with {plugins}")
    try:
        reply = asyncio.run(
            SENDERS[client](method, url, header_list, body, plugins, settings.timeout)
        )
    except SprigError as exc:
        raise click.ClickException(str(exc)) from exc

    if include:
        click.echo(f"HTTP {reply.status} {reply.reason}")
        for name, value in reply.headers:
            click.echo(f"{name}: {value}")
        click.echo()
    click.echo(reply.body, nl=False)
    if reply.body and not reply.body.endswith(b"\n"):
        click.echo()


if __name__ == "__main__":
    cli()
