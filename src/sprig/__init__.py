"""
sprig - plugin middleware for Python HTTP clients.

This package provides:
- A canonical, client-independent Request/Response model
- Plugins with before_request / after_response hooks and a retry protocol
- Bindings for httpx, aiohttp and requests
- Companion plugins: logging, retry, timeout
"""

from .config import SprigSettings
from .exceptions import BodyConsumedError
from .exceptions import ConversionError
from .exceptions import RequestAbortedError
from .exceptions import SprigError
from .models import AbortSignal
from .models import Body
from .models import CacheMode
from .models import Credentials
from .models import Headers
from .models import Request
from .models import Response
from .pipeline import Pipeline
from .pipeline import run_after_response
from .pipeline import run_before_request
from .plugins import LoggingPlugin
from .plugins import Plugin
from .plugins import RetryPlugin
from .plugins import TimeoutPlugin
from .transport import create_adapter
from .transport.httpx import create_httpx_transport

__version__ = "1.0.0"

__all__ = [
    "AbortSignal",
    "Body",
    "BodyConsumedError",
    "CacheMode",
    "ConversionError",
    "Credentials",
    "Headers",
    "LoggingPlugin",
    "Pipeline",
    "Plugin",
    "Request",
    "RequestAbortedError",
    "Response",
    "RetryPlugin",
    "SprigError",
    "SprigSettings",
    "TimeoutPlugin",
    "create_adapter",
    "create_httpx_transport",
    "run_after_response",
    "run_before_request",
]
