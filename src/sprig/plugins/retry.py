"""
Retry plugin.

Re-issues the request through the pipeline's ``retry`` while the response has a
retryable status, waiting between attempts with exponential backoff or the
server's ``Retry-After`` guidance, whichever is longer.

Example:
    plugins = [RetryPlugin(limit=3, backoff_limit=5.0)]
"""

import email.utils
import logging
from collections.abc import Iterable
from datetime import datetime
from datetime import timezone

from tenacity import AsyncRetrying
from tenacity import RetryCallState
from tenacity import before_sleep_log
from tenacity import retry_if_result
from tenacity import stop_after_attempt
from tenacity import wait_exponential
from tenacity.wait import wait_base

from ..models import Request
from ..models import Response
from . import Plugin
from . import Retry

logger = logging.getLogger("sprig.plugins.retry")

DEFAULT_METHODS = ("GET", "PUT", "HEAD", "OPTIONS", "DELETE")
DEFAULT_STATUS_CODES = (408, 413, 429, 500, 502, 503, 504)


def parse_retry_after(value: str | None) -> float | None:
    """Convert a Retry-After header (delta seconds or HTTP date) into seconds."""
    if not value:
        return None

    try:
        return max(0.0, float(int(value)))
    except ValueError:
        pass
    try:
        when = email.utils.parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


class _RetryAfterOrBackoff(wait_base):
    """Longer of exponential backoff and the last response's Retry-After."""

    def __init__(self, backoff: wait_base, max_retry_after: float | None):
        self._backoff = backoff
        self._max_retry_after = max_retry_after

    def __call__(self, retry_state: RetryCallState) -> float:
        backoff = float(self._backoff(retry_state))
        outcome = retry_state.outcome
        if outcome is None or outcome.failed:
            return backoff

        retry_after = parse_retry_after(outcome.result().headers.get("retry-after"))
        if retry_after is None:
            return backoff
        if self._max_retry_after is not None:
            retry_after = min(retry_after, self._max_retry_after)
        return max(backoff, retry_after)


class RetryPlugin(Plugin):
    """
    Retries idempotent requests that failed with a transient status.

    Args:
        limit: Retries after the first response (0 disables retrying)
        methods: Methods eligible for retry
        status_codes: Statuses eligible for retry
        backoff_limit: Upper bound for the exponential backoff, in seconds
        max_retry_after: Upper bound for a server's Retry-After, in seconds
    """

    name = "plugin-retry"

    def __init__(
        self,
        limit: int = 2,
        methods: Iterable[str] = DEFAULT_METHODS,
        status_codes: Iterable[int] = DEFAULT_STATUS_CODES,
        backoff_limit: float | None = None,
        max_retry_after: float | None = None,
    ):
        super().__init__()
        if limit < 0:
            raise ValueError("limit must be >= 0")
        self.limit = limit
        self.methods = frozenset(method.upper() for method in methods)
        self.status_codes = frozenset(status_codes)
        self.backoff_limit = backoff_limit
        self.max_retry_after = max_retry_after

    def is_retryable(self, response: Response, request: Request) -> bool:
        return response.status in self.status_codes and request.method in self.methods

    def _wait(self) -> wait_base:
        backoff_kwargs = {"multiplier": 0.3, "exp_base": 2}
        if self.backoff_limit is not None:
            backoff_kwargs["max"] = self.backoff_limit
        return _RetryAfterOrBackoff(
            wait_exponential(**backoff_kwargs), self.max_retry_after
        )

    async def after_response(
        self, response: Response, request: Request, retry: Retry
    ) -> Response:
        if self.limit == 0 or not self.is_retryable(response, request):
            return response

        first = True

        async def attempt() -> Response:
            nonlocal first
            if first:
                first = False
                return response
            return await retry(request)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.limit + 1),
            wait=self._wait(),
            retry=retry_if_result(lambda result: self.is_retryable(result, request)),
            retry_error_callback=lambda state: state.outcome.result(),
            before_sleep=before_sleep_log(logger, logging.INFO),
        )
        result = await retrying(attempt)
        logger.debug(f"{request.method} {request.url} settled with {result.status}")
        return result
