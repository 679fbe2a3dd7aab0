"""
Client-independent conversion helpers.

Every client binding uses these to absorb the same set of quirks:

- content-type aware body decoding (multipart, urlencoded/text, JSON, binary)
- header merging where canonical headers overwrite native ones
- cache-busting for clients without fetch-style cache semantics
"""

import json
import time
from dataclasses import dataclass
from dataclasses import field
from email import policy
from email.parser import BytesParser
from typing import Any
from typing import Iterable
from typing import NamedTuple
from urllib.parse import parse_qsl
from urllib.parse import urlsplit
from urllib.parse import urlunsplit

from .exceptions import ConversionError
from .models import CacheMode
from .models import Headers

CACHE_BUST_PARAM = "_"

# Recomputed by every client from the final URL and body.
SKIPPED_HEADERS = frozenset({"content-length", "transfer-encoding", "host"})

# Response bodies reach plugins already decoded, so these no longer describe them.
DECODED_RESPONSE_HEADERS = frozenset(
    {"content-encoding", "content-length", "transfer-encoding"}
)

FORM_URLENCODED = "application/x-www-form-urlencoded"
MULTIPART_FORM = "multipart/form-data"


@dataclass(frozen=True)
class FormField:
    name: str
    value: str | bytes
    filename: str | None = None
    content_type: str | None = None

    @property
    def is_file(self) -> bool:
        return self.filename is not None


@dataclass(frozen=True)
class FormData:
    """Decoded form body, fields in wire order."""

    fields: list[FormField] = field(default_factory=list)

    def get(self, name: str) -> str | bytes | None:
        for item in self.fields:
            if item.name == name:
                return item.value
        return None

    def get_all(self, name: str) -> list[str | bytes]:
        return [item.value for item in self.fields if item.name == name]

    def __iter__(self):
        return iter(self.fields)

    def __len__(self) -> int:
        return len(self.fields)


class DecodedBody(NamedTuple):
    """Result of ``decode_body``: kind is one of form, text, json, bytes."""

    kind: str
    value: Any


def parse_content_type(value: str | None) -> tuple[str, dict[str, str]]:
    """Split a Content-Type header into a lowercase mime type and its parameters."""
    if not value:
        return "", {}
    mime, *raw_params = value.split(";")
    params = {}
    for raw in raw_params:
        if "=" not in raw:
            continue
        key, _, param = raw.partition("=")
        params[key.strip().lower()] = param.strip().strip('"')
    return mime.strip().lower(), params


def is_json_type(mime: str) -> bool:
    return mime == "application/json" or mime.endswith("+json")


def decode_text(data: bytes, charset: str | None = None) -> str:
    try:
        return data.decode(charset or "utf-8")
    except (LookupError, UnicodeDecodeError) as err:
        raise ConversionError(
            f"Body cannot be decoded as {charset or 'utf-8'} text", details=str(err)
        ) from err


def parse_form_data(content_type: str | None, data: bytes) -> FormData:
    mime, params = parse_content_type(content_type)

    if mime == FORM_URLENCODED:
        pairs = parse_qsl(decode_text(data, params.get("charset")), keep_blank_values=True)
        return FormData([FormField(name, value) for name, value in pairs])

    if mime != MULTIPART_FORM:
        raise ConversionError(
            f"Cannot read a {mime or 'untyped'} body as form data", details=content_type
        )
    if "boundary" not in params:
        raise ConversionError("Multipart body has no boundary", details=content_type)

    raw = b"Content-Type: " + content_type.encode("latin-1") + b"\r\n\r\n" + data
    message = BytesParser(policy=policy.HTTP).parsebytes(raw)
    if not message.is_multipart():
        raise ConversionError("Malformed multipart body", details=content_type)

    fields = []
    for part in message.iter_parts():
        name = part.get_param("name", header="content-disposition")
        if not name:
            raise ConversionError("Multipart part without a field name")
        payload = part.get_payload(decode=True) or b""
        filename = part.get_filename()
        if filename is None:
            fields.append(FormField(name, decode_text(payload, part.get_content_charset())))
        else:
            fields.append(FormField(name, payload, filename, part.get_content_type()))
    return FormData(fields)


def decode_body(
    content_type: str | None, data: bytes, *, structured: bool = True
) -> DecodedBody:
    """
    Decode ``data`` the way a native client expects to receive it.

    Args:
        content_type: Content-Type header of the message, if any
        data: Raw body bytes
        structured: Whether the target client accepts parsed JSON objects

    Raises:
        ConversionError: If the body does not match its declared content type
    """
    if not data:
        return DecodedBody("bytes", b"")

    mime, params = parse_content_type(content_type)
    if mime == MULTIPART_FORM:
        return DecodedBody("form", parse_form_data(content_type, data))
    if mime in (FORM_URLENCODED, "text/plain"):
        return DecodedBody("text", decode_text(data, params.get("charset")))
    if is_json_type(mime):
        text = decode_text(data, params.get("charset"))
        if not structured:
            return DecodedBody("text", text)
        try:
            return DecodedBody("json", json.loads(text))
        except ValueError as err:
            raise ConversionError(
                f"Body is not valid JSON for content type {mime}", details=text[:200]
            ) from err
    return DecodedBody("bytes", data)


def merge_headers(
    native: Iterable[tuple[str, str]],
    canonical: Headers,
    drop: Iterable[str] = (),
) -> list[tuple[str, str]]:
    """
    Merge canonical headers onto native ones.

    Canonical names overwrite every native value of the same name. Native names the
    canonical side does not mention are kept. Names in ``drop`` and the headers each
    client recomputes itself are left out.
    """
    skipped = SKIPPED_HEADERS | {name.lower() for name in drop}
    overridden = {key.lower() for key in canonical.keys()}
    merged = [
        (key, value)
        for key, value in native
        if key.lower() not in overridden and key.lower() not in skipped
    ]
    merged.extend(
        (key, value) for key, value in canonical.items() if key.lower() not in skipped
    )
    return merged


def bust_cache(url: str, cache: CacheMode) -> str:
    """Append a timestamp query parameter for ``no-cache``/``no-store`` requests."""
    if cache not in (CacheMode.NO_CACHE, CacheMode.NO_STORE):
        return url
    parts = urlsplit(url)
    stamp = f"{CACHE_BUST_PARAM}={int(time.time() * 1000)}"
    query = f"{parts.query}&{stamp}" if parts.query else stamp
    return urlunsplit(parts._replace(query=query))
