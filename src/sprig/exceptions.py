"""
Custom exceptions for sprig.
Provides meaningful error classes for pipeline consumers and plugin authors.
"""

from typing import Any, Optional


class SprigError(Exception):
    """
    Base exception for all pipeline-level failures.

    Args:
        message (str): Short explanation of the error.
        details (Any | None): Optional structured details (e.g., offending header).
    """

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.details = details


class BodyConsumedError(SprigError):
    """Raised when a single-read body is read (or cloned) a second time."""


class ConversionError(SprigError):
    """Raised when a body cannot be decoded for its declared content type."""


class RequestAbortedError(SprigError):
    """
    Raised when a send observes an aborted signal.

    Args:
        reason (Any | None): Whatever was passed to ``AbortSignal.abort``.
    """

    def __init__(self, reason: Optional[Any] = None):
        message = "Request was aborted"
        if reason is not None:
            message = f"{message}: {reason}"
        super().__init__(message, details=reason)
        self.reason = reason
