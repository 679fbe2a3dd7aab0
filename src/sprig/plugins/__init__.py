"""
Plugin architecture for request/response processing.

A plugin is a named value with two optional hooks:

- ``before_request(request) -> Request``
- ``after_response(response, request, retry) -> Response``

Hooks may be plain functions or coroutine functions. Plugins can be written either
by subclassing ``Plugin`` and overriding the hooks, or by passing callables:

    def add_trace(request):
        return request.replace(headers=request.headers.set("X-Trace", "1"))

    plugins = [Plugin("trace", before_request=add_trace)]
"""

from collections.abc import Awaitable
from collections.abc import Callable
from typing import Union

from ..models import Request
from ..models import Response

Retry = Callable[[Request], Awaitable[Response]]
BeforeRequestHook = Callable[[Request], Union[Request, Awaitable[Request]]]
AfterResponseHook = Callable[
    [Response, Request, Retry], Union[Response, Awaitable[Response]]
]


class Plugin:
    """
    Base class for pipeline plugins.

    Subclasses override ``before_request`` and/or ``after_response``; a hook left as
    ``None`` is skipped by the pipeline.
    """

    name: str = "plugin"
    before_request: BeforeRequestHook | None = None
    after_response: AfterResponseHook | None = None

    def __init__(
        self,
        name: str | None = None,
        *,
        before_request: BeforeRequestHook | None = None,
        after_response: AfterResponseHook | None = None,
    ):
        if name is not None:
            self.name = name
        if before_request is not None:
            self.before_request = before_request
        if after_response is not None:
            self.after_response = after_response

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"


from .logging import LoggingPlugin  # noqa: E402
from .retry import RetryPlugin  # noqa: E402
from .timeout import TimeoutPlugin  # noqa: E402

__all__ = [
    "AfterResponseHook",
    "BeforeRequestHook",
    "LoggingPlugin",
    "Plugin",
    "Retry",
    "RetryPlugin",
    "TimeoutPlugin",
]
