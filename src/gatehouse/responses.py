"""Response primitives."""

from __future__ import annotations

from typing import Any, Iterable

import msgspec

from .exceptions import HTTPError
from .http import Status
from .serialization import json_encode

Headers = tuple[tuple[str, str], ...]


class Response(msgspec.Struct, frozen=True):
    """Immutable response payload."""

    status: int = int(Status.OK)
    headers: Headers = ()
    body: bytes = b""

    def header(self, name: str, default: str | None = None) -> str | None:
        """Return the first value of ``name`` (case-insensitive)."""

        wanted = name.lower()
        for key, value in self.headers:
            if key.lower() == wanted:
                return value
        return default

    def with_headers(self, headers: Iterable[tuple[str, str]]) -> "Response":
        """Return a new response with ``headers`` appended."""

        return Response(status=self.status, headers=self.headers + tuple(headers), body=self.body)

    def with_default_headers(self, headers: Iterable[tuple[str, str]]) -> "Response":
        """Append each of ``headers`` unless the response already carries it."""

        existing = {name.lower() for name, _ in self.headers}
        additions = tuple((name, value) for name, value in headers if name.lower() not in existing)
        if not additions:
            return self
        return self.with_headers(additions)

    def without_headers(self, names: Iterable[str]) -> "Response":
        dropped = {name.lower() for name in names}
        kept = tuple((name, value) for name, value in self.headers if name.lower() not in dropped)
        return Response(status=self.status, headers=kept, body=self.body)

    def with_body(self, body: bytes, headers: Iterable[tuple[str, str]] = ()) -> "Response":
        """Return a copy carrying ``body`` and an updated ``content-length``."""

        trimmed = self.without_headers(("content-length",))
        extra = tuple(headers) + (("content-length", str(len(body))),)
        return Response(status=self.status, headers=trimmed.headers + extra, body=body)


def EmptyResponse(status: int = int(Status.OK)) -> Response:
    """Create a response with no body."""

    return Response(status=int(status), headers=(("content-length", "0"),), body=b"")


def PlainTextResponse(
    text: str,
    *,
    status: int = int(Status.OK),
    headers: Iterable[tuple[str, str]] | None = None,
) -> Response:
    """Create a plain text response."""

    default_headers = (("content-type", "text/plain; charset=utf-8"),)
    return Response(status=status, headers=default_headers + tuple(headers or ()), body=text.encode("utf-8"))


def JSONResponse(
    data: Any,
    *,
    status: int = int(Status.OK),
    headers: Iterable[tuple[str, str]] | None = None,
) -> Response:
    """Create a JSON response encoded via :mod:`msgspec`."""

    default_headers = (("content-type", "application/json"),)
    return Response(status=status, headers=default_headers + tuple(headers or ()), body=json_encode(data))


def exception_to_response(exc: HTTPError) -> Response:
    return Response(
        status=exc.status,
        headers=(("content-type", "application/json"),),
        body=exc.to_response_body(),
    )


def coerce_response(result: Any) -> Response:
    """Turn an endpoint return value into a :class:`Response`."""

    if isinstance(result, Response):
        return result
    if result is None:
        return Response(status=int(Status.NO_CONTENT), body=b"")
    if isinstance(result, str):
        return PlainTextResponse(result)
    if isinstance(result, (bytes, bytearray, memoryview)):
        return Response(headers=(("content-type", "application/octet-stream"),), body=bytes(result))
    return JSONResponse(result)


__all__ = [
    "EmptyResponse",
    "Headers",
    "JSONResponse",
    "PlainTextResponse",
    "Response",
    "coerce_response",
    "exception_to_response",
]
