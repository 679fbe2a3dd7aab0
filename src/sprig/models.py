"""
Canonical request/response model.

Plugins never see a client-specific object. Every hook receives and returns the
immutable values defined here, and each client binding converts its native objects
to and from them.

- Headers: ordered, multi-valued, case-insensitive, immutable
- Body: readable exactly once, duplicated with ``clone()``
- AbortSignal: cancellation carried end-to-end on the request
- Request / Response: frozen pydantic models with fetch-like body accessors
"""

import asyncio
import functools
import inspect
import json
from collections.abc import AsyncIterable
from collections.abc import Callable
from collections.abc import Iterable
from collections.abc import Mapping
from enum import Enum
from http import HTTPStatus
from typing import Any
from typing import Union
from urllib.parse import urlsplit

from multidict import CIMultiDict
from multidict import CIMultiDictProxy
from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator
from pydantic import model_validator

from .exceptions import BodyConsumedError
from .exceptions import RequestAbortedError

NULL_BODY_STATUSES = frozenset({101, 103, 204, 205, 304})

HeadersInit = Union["Headers", Mapping[str, str], Iterable[tuple[str, str]]]
BodyInit = Union[bytes, bytearray, memoryview, str, Iterable[bytes], AsyncIterable[bytes]]


class Credentials(str, Enum):
    INCLUDE = "include"
    OMIT = "omit"
    SAME_ORIGIN = "same-origin"


class CacheMode(str, Enum):
    DEFAULT = "default"
    NO_STORE = "no-store"
    RELOAD = "reload"
    NO_CACHE = "no-cache"
    FORCE_CACHE = "force-cache"
    ONLY_IF_CACHED = "only-if-cached"


class Headers:
    """
    Immutable, ordered header collection with case-insensitive names.

    Duplicate names are kept in insertion order. Every "write" method returns a new
    ``Headers`` and leaves the receiver untouched.

    Example:
        headers = Headers({"Accept": "text/html"})
        headers = headers.set("X-Trace", "abc").append("Accept", "text/plain")
        headers.get_all("accept")  # ['text/html', 'text/plain']
    """

    __slots__ = ("_store",)

    def __init__(self, init: HeadersInit | None = None):
        store: CIMultiDict[str] = CIMultiDict()
        if init is not None:
            pairs = init.items() if isinstance(init, (Mapping, Headers)) else init
            for key, value in pairs:
                store.add(str(key), str(value))
        self._store = CIMultiDictProxy(store)

    @classmethod
    def _wrap(cls, store: CIMultiDict) -> "Headers":
        headers = cls.__new__(cls)
        headers._store = CIMultiDictProxy(store)
        return headers

    def get(self, name: str, default: str | None = None) -> str | None:
        """Return the first value for ``name``."""
        return self._store.get(name, default)

    def get_all(self, name: str) -> list[str]:
        return self._store.getall(name, [])

    def items(self) -> list[tuple[str, str]]:
        return list(self._store.items())

    def keys(self) -> list[str]:
        seen: dict[str, str] = {}
        for key in self._store.keys():
            seen.setdefault(key.lower(), key)
        return list(seen.values())

    def set(self, name: str, value: str) -> "Headers":
        store = CIMultiDict(self._store)
        store[name] = str(value)
        return self._wrap(store)

    def append(self, name: str, value: str) -> "Headers":
        store = CIMultiDict(self._store)
        store.add(name, str(value))
        return self._wrap(store)

    def delete(self, name: str) -> "Headers":
        store = CIMultiDict(self._store)
        store.popall(name, None)
        return self._wrap(store)

    def update(self, other: HeadersInit) -> "Headers":
        """Replace every name present in ``other`` with its values from ``other``."""
        incoming = other if isinstance(other, Headers) else Headers(other)
        store = CIMultiDict(self._store)
        for key in incoming.keys():
            store.popall(key, None)
        for key, value in incoming.items():
            store.add(key, value)
        return self._wrap(store)

    def __getitem__(self, name: str) -> str:
        return self._store[name]

    def __contains__(self, name: object) -> bool:
        return name in self._store

    def __iter__(self):
        return iter(self.keys())

    def __len__(self) -> int:
        return len(self._store)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Headers):
            return NotImplemented
        return [(k.lower(), v) for k, v in self.items()] == [
            (k.lower(), v) for k, v in other.items()
        ]

    def __repr__(self) -> str:
        return f"Headers({self.items()!r})"


class _SharedStream:
    """Reads an underlying stream once and hands the same bytes to every reader."""

    def __init__(self, source: Any):
        self._source = source
        self._data: bytes | None = None
        self._lock = asyncio.Lock()

    async def read(self) -> bytes:
        async with self._lock:
            if self._data is None:
                self._data = await _drain(self._source)
            return self._data


def _to_bytes(chunk: Any) -> bytes:
    if isinstance(chunk, str):
        return chunk.encode("utf-8")
    return bytes(chunk)


async def _drain(source: Any) -> bytes:
    if isinstance(source, bytes):
        return source
    if isinstance(source, str):
        return source.encode("utf-8")
    if isinstance(source, _SharedStream):
        return await source.read()
    if hasattr(source, "read"):
        data = source.read()
        if inspect.isawaitable(data):
            data = await data
        return _to_bytes(data)
    chunks = []
    if hasattr(source, "__aiter__"):
        async for chunk in source:
            chunks.append(_to_bytes(chunk))
    else:
        for chunk in source:
            chunks.append(_to_bytes(chunk))
    return b"".join(chunks)


class Body:
    """
    Single-read request/response body.

    Reading marks the body as used; reading again raises ``BodyConsumedError``.
    Use ``clone()`` before the first read whenever two consumers need the content.
    """

    def __init__(self, source: BodyInit):
        if isinstance(source, Mapping):
            raise TypeError("Mappings must be serialized before being used as a body")
        if isinstance(source, (bytearray, memoryview)):
            source = bytes(source)
        self._source: Any = source
        self._used = False

    @property
    def used(self) -> bool:
        return self._used

    async def read(self) -> bytes:
        if self._used:
            raise BodyConsumedError("Body has already been consumed")
        self._used = True
        return await _drain(self._source)

    def clone(self) -> "Body":
        if self._used:
            raise BodyConsumedError("Cannot clone a body that has already been consumed")
        if not isinstance(self._source, (bytes, str, _SharedStream)):
            self._source = _SharedStream(self._source)
        return Body(self._source)

    def __repr__(self) -> str:
        state = "used" if self._used else "unused"
        return f"<Body {type(self._source).__name__} {state}>"


class AbortSignal:
    """
    Cancellation signal carried on a ``Request``.

    A send that observes an aborted signal raises ``RequestAbortedError``.

    Signals built by ``timeout()`` and ``any()`` hold a timer or listeners on other
    signals. ``release()`` lets go of them once the signal is no longer needed.

    Example:
        signal = AbortSignal.timeout(5.0)
        request = request.replace(signal=signal)
    """

    def __init__(self):
        self._event = asyncio.Event()
        self._reason: Any = None
        self._listeners: list[Callable[["AbortSignal"], None]] = []
        self._release_callbacks: list[Callable[[], None]] = []

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Any:
        return self._reason

    def abort(self, reason: Any = None) -> None:
        if self.aborted:
            return
        self._reason = reason
        self._event.set()
        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            listener(self)
        self.release()

    def add_listener(self, listener: Callable[["AbortSignal"], None]) -> None:
        if self.aborted:
            listener(self)
        else:
            self._listeners.append(listener)

    def remove_listener(self, listener: Callable[["AbortSignal"], None]) -> None:
        """Detach ``listener``; a listener that was never added is ignored."""
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def add_release_callback(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` when the signal is released or aborts."""
        self._release_callbacks.append(callback)

    def release(self) -> None:
        """
        Cancel this signal's timer and detach it from the signals it follows.

        A released signal that has not aborted yet never aborts on its own. It can
        still be aborted by calling ``abort()``.
        """
        callbacks, self._release_callbacks = self._release_callbacks, []
        for callback in callbacks:
            callback()

    def raise_if_aborted(self) -> None:
        if self.aborted:
            raise RequestAbortedError(self._reason)

    async def wait(self) -> None:
        await self._event.wait()

    @classmethod
    def timeout(cls, seconds: float) -> "AbortSignal":
        """Signal that aborts itself ``seconds`` from now. Needs a running loop."""
        signal = cls()
        handle = asyncio.get_running_loop().call_later(
            seconds, signal.abort, TimeoutError(f"Timed out after {seconds}s")
        )
        signal.add_release_callback(handle.cancel)
        return signal

    @classmethod
    def any(cls, signals: Iterable["AbortSignal | None"]) -> "AbortSignal":
        """
        Signal that aborts as soon as any of ``signals`` aborts.

        Releasing the combined signal detaches it from ``signals``; the inputs
        themselves are left alone.
        """
        combined = cls()

        def follow(source: "AbortSignal") -> None:
            combined.abort(source.reason)

        for signal in signals:
            if signal is None:
                continue
            combined.add_release_callback(functools.partial(signal.remove_listener, follow))
            signal.add_listener(follow)
            if combined.aborted:
                break
        return combined


def _reason_phrase(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return ""


class _Message(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    headers: Headers = Field(default_factory=Headers)
    body: Body | None = None

    @field_validator("headers", mode="before")
    @classmethod
    def _coerce_headers(cls, value: Any) -> Headers:
        if value is None:
            return Headers()
        return value if isinstance(value, Headers) else Headers(value)

    @field_validator("body", mode="before")
    @classmethod
    def _coerce_body(cls, value: Any) -> Body | None:
        if value is None or isinstance(value, Body):
            return value
        return Body(value)

    @property
    def body_used(self) -> bool:
        return self.body is not None and self.body.used

    def replace(self, **changes: Any):
        """Return a new, re-validated value with ``changes`` applied."""
        values = {name: getattr(self, name) for name in type(self).model_fields}
        values.update(changes)
        return type(self)(**values)

    def clone(self):
        """Return a copy whose body can be read independently of this one."""
        return self.replace(body=self.body.clone() if self.body is not None else None)

    async def read(self) -> bytes:
        if self.body is None:
            return b""
        return await self.body.read()

    async def text(self) -> str:
        from .conversion import decode_text
        from .conversion import parse_content_type

        _, params = parse_content_type(self.headers.get("content-type"))
        return decode_text(await self.read(), params.get("charset"))

    async def json(self) -> Any:
        return json.loads(await self.read())

    async def form_data(self):
        from .conversion import parse_form_data

        return parse_form_data(self.headers.get("content-type"), await self.read())


class Request(_Message):
    """
    Canonical HTTP request.

    Example:
        request = Request(url="https://api.test/items", method="post", body='{"a": 1}')
        request = request.replace(headers=request.headers.set("Content-Type", "application/json"))
    """

    url: str
    method: str = "GET"
    signal: AbortSignal | None = None
    credentials: Credentials = Credentials.SAME_ORIGIN
    cache: CacheMode = CacheMode.DEFAULT

    @field_validator("url", mode="before")
    @classmethod
    def _validate_url(cls, value: Any) -> str:
        url = str(value)
        parts = urlsplit(url)
        if not parts.scheme or not parts.netloc:
            raise ValueError(f"Request URL must be absolute, got {url!r}")
        return url

    @field_validator("method")
    @classmethod
    def _normalize_method(cls, value: str) -> str:
        method = value.strip().upper()
        if not method:
            raise ValueError("Request method cannot be empty")
        return method


class Response(_Message):
    """
    Canonical HTTP response.

    Responses are never mutated by the pipeline; plugins return new ones, typically
    via ``response.replace(...)``.
    """

    status: int = 200
    status_text: str = ""
    url: str = ""

    @model_validator(mode="before")
    @classmethod
    def _apply_status_rules(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        status = data.get("status", 200)
        if status in NULL_BODY_STATUSES:
            data["body"] = None
        if not data.get("status_text") and isinstance(status, int):
            data["status_text"] = _reason_phrase(status)
        return data

    @field_validator("status")
    @classmethod
    def _validate_status(cls, value: int) -> int:
        if not 100 <= value <= 599:
            raise ValueError(f"Response status must be in [100, 599], got {value}")
        return value

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300
