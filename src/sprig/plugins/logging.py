"""
Logging plugin for sprig.

LoggingPlugin logs every request leaving the pipeline and every response coming
back, with the time elapsed in between. Useful for debugging plugin chains: put it
last to see what is actually sent, or first to see what the caller asked for.
"""

import logging
import time
from contextvars import ContextVar

from ..models import Request
from ..models import Response
from . import Plugin
from . import Retry

logger = logging.getLogger("sprig.plugins.logging")

_started: ContextVar[float | None] = ContextVar("sprig_request_started", default=None)


class LoggingPlugin(Plugin):
    """
    Plugin for logging HTTP requests and responses.
    Uses standard Python logging.

    Args:
        level: Log level for both messages
        log_headers: Include header lists in the messages
    """

    name = "plugin-logging"

    def __init__(self, level: int = logging.INFO, log_headers: bool = False):
        super().__init__()
        self.level = level
        self.log_headers = log_headers

    def before_request(self, request: Request) -> Request:
        _started.set(time.monotonic())
        message = f"Request: {request.method} {request.url}"
        if self.log_headers:
            message += f" | headers={request.headers.items()}"
        logger.log(self.level, message)
        return request

    def after_response(
        self, response: Response, request: Request, retry: Retry
    ) -> Response:
        started = _started.get()
        elapsed = (time.monotonic() - started) if started is not None else None
        message = f"Response: {response.status} {response.status_text} for {request.method} {request.url}"
        if elapsed is not None:
            message += f" | elapsed={elapsed:.3f}s"
        if self.log_headers:
            message += f" | headers={response.headers.items()}"
        logger.log(self.level, message)
        return response
