"""
Plugin pipeline.

This module runs plugin hooks over canonical requests and responses and drives a
client binding through one logical HTTP call:

    native request -> canonical request -> before_request hooks -> native request
        -> send -> native response -> canonical response
        -> after_response hooks (each may retry) -> native response

The pipeline never inspects which client it is running against; everything
client-specific lives behind ``ClientBinding``.
"""

import asyncio
import inspect
import logging
from collections.abc import Sequence
from typing import Any
from typing import Generic

from .exceptions import RequestAbortedError
from .models import AbortSignal
from .models import Request
from .models import Response
from .plugins import Plugin
from .plugins import Retry
from .transport.base import ClientBinding
from .transport.base import NativeRequest
from .transport.base import NativeResponse

logger = logging.getLogger("sprig.pipeline")


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


async def run_before_request(request: Request, plugins: Sequence[Plugin]) -> Request:
    """
    Fold every ``before_request`` hook over ``request`` in list order.

    Each hook receives the request produced by the previous one. An exception from
    any hook propagates to the caller and nothing is sent.
    """
    current = request
    for plugin in plugins:
        hook = plugin.before_request
        if hook is None:
            continue
        logger.debug(f"before_request: {plugin.name} <- {current.method} {current.url}")
        result = await _resolve(hook(current))
        if not isinstance(result, Request):
            raise TypeError(
                f"Plugin {plugin.name!r} before_request must return a Request, "
                f"got {type(result).__name__}"
            )
        current = result
    return current


async def run_after_response(
    response: Response,
    request: Request,
    plugins: Sequence[Plugin],
    retry: Retry,
) -> Response:
    """
    Fold every ``after_response`` hook over ``response`` in list order.

    Each hook receives the current response, a clone of the current request and a
    ``retry`` function. A successful ``retry(new_request)`` makes ``new_request`` the
    current request for every later hook.
    """
    current_request = request
    current_response = response

    for plugin in plugins:
        hook = plugin.after_response
        if hook is None:
            continue

        async def bound_retry(new_request: Request, _name: str = plugin.name) -> Response:
            nonlocal current_request
            if not isinstance(new_request, Request):
                raise TypeError(
                    f"retry() expects a Request, got {type(new_request).__name__}"
                )
            logger.debug(f"retry: {_name} -> {new_request.method} {new_request.url}")
            new_response = await retry(new_request)
            current_request = new_request
            return new_response

        logger.debug(f"after_response: {plugin.name} <- {current_response.status}")
        result = await _resolve(
            hook(current_response, current_request.clone(), bound_retry)
        )
        if not isinstance(result, Response):
            raise TypeError(
                f"Plugin {plugin.name!r} after_response must return a Response, "
                f"got {type(result).__name__}"
            )
        current_response = result

    return current_response


class Pipeline(Generic[NativeRequest, NativeResponse]):
    """
    Drives one client binding through the plugin hooks.

    The pipeline is stateless across calls: every call to ``handle`` (or to the
    request/response middleware pair) works on its own canonical values.

    Args:
        binding: Conversion and send functions for one HTTP client
        plugins: Ordered plugins; order applies to both hook kinds
    """

    def __init__(
        self,
        binding: ClientBinding[NativeRequest, NativeResponse],
        plugins: Sequence[Plugin] = (),
    ):
        self.binding = binding
        self.plugins = tuple(plugins)

    async def send(
        self, native_request: NativeRequest, signal: AbortSignal | None = None
    ) -> NativeResponse:
        """
        Send through the binding, racing ``signal`` if there is one.

        Raises:
            RequestAbortedError: If the signal aborts before the send completes
        """
        if signal is None:
            return await self.binding.send(native_request)

        signal.raise_if_aborted()
        sending = asyncio.ensure_future(self.binding.send(native_request))
        aborting = asyncio.ensure_future(signal.wait())
        try:
            await asyncio.wait({sending, aborting}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            aborting.cancel()
            if not sending.done():
                sending.cancel()

        if sending.done():
            return sending.result()
        logger.debug(f"send cancelled by abort signal: {signal.reason!r}")
        raise RequestAbortedError(signal.reason)

    async def _request_path(
        self, native_request: NativeRequest, signal: AbortSignal | None
    ) -> tuple[NativeRequest, Request, AbortSignal | None]:
        request = await self.binding.to_canonical_request(native_request)
        if signal is not None:
            request = request.replace(signal=signal)
        incoming = request.signal
        request = await run_before_request(request, self.plugins)
        native_request = await self.binding.apply_canonical_request(
            native_request, request.clone()
        )
        return native_request, request, incoming

    async def request_middleware(
        self, native_request: NativeRequest, signal: AbortSignal | None = None
    ) -> tuple[NativeRequest, Request]:
        """
        Run the request path.

        Returns:
            The native request to send, and the canonical request it was built from.
            The canonical request's body is left unread.
        """
        native_request, request, _ = await self._request_path(native_request, signal)
        return native_request, request

    async def response_middleware(
        self,
        native_response: NativeResponse,
        native_request: NativeRequest,
        request: Request,
        retried_signals: list[AbortSignal | None] | None = None,
    ) -> NativeResponse:
        """
        Run the response path, retrying through the binding when hooks ask to.

        The signal of every retried request is appended to ``retried_signals``
        when a list is given.
        """
        response = await self.binding.to_canonical_response(native_response)

        async def retry(new_request: Request) -> Response:
            nonlocal native_request, native_response
            if retried_signals is not None:
                retried_signals.append(new_request.signal)
            native_request = await self.binding.apply_canonical_request(
                native_request, new_request.clone()
            )
            native_response = await self.send(native_request, new_request.signal)
            return await self.binding.to_canonical_response(native_response)

        response = await run_after_response(response, request, self.plugins, retry)
        return await self.binding.apply_canonical_response(native_response, response)

    async def handle(
        self, native_request: NativeRequest, signal: AbortSignal | None = None
    ) -> NativeResponse:
        """
        Run one full call.

        Args:
            native_request: Request in the client's own representation
            signal: Initial cancellation signal; hooks may replace or drop it

        Signals that hooks attached during the call are released when it settles.
        The initial signal belongs to the caller and is left as it is.
        """
        if not self.plugins:
            if signal is None:
                return await self.binding.send(native_request)
            return await self.send(native_request, signal)

        native_request, request, incoming = await self._request_path(
            native_request, signal
        )
        attached = [request.signal]
        try:
            native_response = await self.send(native_request, request.signal)
            return await self.response_middleware(
                native_response, native_request, request, attached
            )
        finally:
            for owned in attached:
                if owned is not None and owned is not incoming:
                    owned.release()
