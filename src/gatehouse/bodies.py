"""Request body decoding stages and their error traps."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Iterable
from urllib.parse import parse_qsl

import msgspec

from .events import EventEmitter, LifecycleEvent
from .exceptions import BodyDecodeError, HTTPError
from .http import Status
from .middleware import ErrorMiddlewareCallable, Handler
from .requests import Request
from .responses import EmptyResponse, Response
from .serialization import json_decode

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 102_400
MAX_FORM_PARAMETERS = 1000


class BodyKind(str, Enum):
    JSON = "json"
    RAW = "raw"
    TEXT = "text"
    URLENCODED = "urlencoded"

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.value


DEFAULT_MEDIA_TYPES: dict[BodyKind, tuple[str, ...]] = {
    BodyKind.JSON: ("application/json",),
    BodyKind.RAW: ("application/octet-stream",),
    BodyKind.TEXT: ("text/plain",),
    BodyKind.URLENCODED: ("application/x-www-form-urlencoded",),
}

_FORM_CHARSETS = frozenset({"utf-8", "iso-8859-1"})


def media_type_matches(media_type: str, patterns: Iterable[str]) -> bool:
    """Match ``media_type`` against exact, ``type/*`` and ``*/*+suffix`` patterns."""

    media_type = media_type.lower()
    major, _, minor = media_type.partition("/")
    for pattern in patterns:
        pattern = pattern.lower()
        if pattern in (media_type, "*/*"):
            return True
        p_major, _, p_minor = pattern.partition("/")
        if p_major not in ("*", major):
            continue
        if p_minor == "*":
            return True
        if p_minor.startswith("*+") and minor.endswith(p_minor[1:]):
            return True
    return False


def _unsupported_charset(charset: str) -> HTTPError:
    return HTTPError(Status.UNSUPPORTED_MEDIA_TYPE, {"detail": "unsupported_charset", "charset": charset})


def _decode_text(kind: BodyKind, raw: bytes, charset: str) -> str:
    try:
        return raw.decode(charset)
    except LookupError as exc:
        raise _unsupported_charset(charset) from exc
    except UnicodeDecodeError as exc:
        raise BodyDecodeError(kind.value, f"invalid {charset} byte at position {exc.start}") from exc


def decode_json(raw: bytes, charset: str | None) -> Any:
    charset = charset or "utf-8"
    if not charset.startswith("utf-"):
        raise _unsupported_charset(charset)
    if not raw:
        return {}
    text = _decode_text(BodyKind.JSON, raw, charset)
    stripped = text.lstrip(" \t\r\n")
    if not stripped:
        return {}
    if stripped[0] not in "{[":
        raise BodyDecodeError(BodyKind.JSON.value, f"Unexpected token {stripped[0]!r} in JSON at position 0")
    try:
        return json_decode(stripped)
    except msgspec.DecodeError as exc:
        raise BodyDecodeError(BodyKind.JSON.value, str(exc)) from exc


def decode_raw(raw: bytes, charset: str | None) -> bytes:
    return raw


def decode_text(raw: bytes, charset: str | None) -> str:
    return _decode_text(BodyKind.TEXT, raw, charset or "utf-8")


def decode_urlencoded(raw: bytes, charset: str | None) -> dict[str, str | list[str]]:
    charset = charset or "utf-8"
    if charset not in _FORM_CHARSETS:
        raise _unsupported_charset(charset)
    text = _decode_text(BodyKind.URLENCODED, raw, charset)
    if text.count("&") + 1 > MAX_FORM_PARAMETERS:
        raise HTTPError(Status.PAYLOAD_TOO_LARGE, {"detail": "too_many_parameters"})
    try:
        pairs = parse_qsl(text, keep_blank_values=True, encoding=charset, errors="strict")
    except UnicodeDecodeError as exc:
        raise BodyDecodeError(BodyKind.URLENCODED.value, f"invalid percent-encoding: {exc.reason}") from exc
    form: dict[str, str | list[str]] = {}
    for key, value in pairs:
        existing = form.get(key)
        if existing is None:
            form[key] = value
        elif isinstance(existing, list):
            existing.append(value)
        else:
            form[key] = [existing, value]
    return form


_DECODERS = {
    BodyKind.JSON: decode_json,
    BodyKind.RAW: decode_raw,
    BodyKind.TEXT: decode_text,
    BodyKind.URLENCODED: decode_urlencoded,
}


class BodyDecoder:
    """Decode bodies whose content type matches into ``request.parsed_body``.

    Requests with another content type, or whose body an earlier decoder
    already handled, pass through untouched.
    """

    def __init__(
        self,
        kind: BodyKind,
        *,
        media_types: Iterable[str] | None = None,
        limit: int = DEFAULT_LIMIT,
    ) -> None:
        self.kind = BodyKind(kind)
        self.media_types = tuple(media_types) if media_types is not None else DEFAULT_MEDIA_TYPES[self.kind]
        self.limit = limit
        self._decode = _DECODERS[self.kind]

    def matches(self, request: Request) -> bool:
        media_type = request.content_type
        return media_type is not None and media_type_matches(media_type, self.media_types)

    async def __call__(self, request: Request, handler: Handler) -> Response:
        if request.has_parsed_body or not self.matches(request):
            return await handler(request)
        raw = await self._read(request)
        request.set_parsed_body(self._decode(raw, request.charset))
        return await handler(request)

    async def _read(self, request: Request) -> bytes:
        declared = request.content_length
        if declared is not None and declared > self.limit:
            raise HTTPError(Status.PAYLOAD_TOO_LARGE, {"detail": "request_entity_too_large", "limit": self.limit})
        raw = await request.body()
        if len(raw) > self.limit:
            raise HTTPError(Status.PAYLOAD_TOO_LARGE, {"detail": "request_entity_too_large", "limit": self.limit})
        return raw


def decode_error_trap(events: EventEmitter) -> ErrorMiddlewareCallable:
    """Turn :class:`BodyDecodeError` into a 400 and an ``error`` event.

    Any other error is re-raised so the next trap (or the dispatcher) sees it.
    """

    async def trap(error: Exception, request: Request, handler: Handler) -> Response:
        if not isinstance(error, BodyDecodeError):
            raise error
        logger.warning("Rejected %s %s: %s", request.method, request.url, error)
        events.emit(LifecycleEvent.ERROR, error)
        return EmptyResponse(Status.BAD_REQUEST)

    return trap


__all__ = [
    "DEFAULT_LIMIT",
    "DEFAULT_MEDIA_TYPES",
    "BodyDecoder",
    "BodyKind",
    "decode_error_trap",
    "decode_json",
    "decode_raw",
    "decode_text",
    "decode_urlencoded",
    "media_type_matches",
]
