"""Response compression stage.

Compression relies on the ``brotli`` and ``zstandard`` C extensions alongside
the standard library's gzip and zlib codecs.
"""

from __future__ import annotations

import gzip
import zlib
from typing import Callable

import brotli
import zstandard as zstd

from .http import Status
from .middleware import Handler
from .requests import Request
from .responses import Response

CompressFunc = Callable[[bytes], bytes]

_ZSTD_COMPRESSOR = zstd.ZstdCompressor(level=6)


def _brotli_compress(data: bytes) -> bytes:
    return brotli.compress(data, quality=5)


def _zstd_compress(data: bytes) -> bytes:
    return _ZSTD_COMPRESSOR.compress(data)


def _gzip_compress(data: bytes) -> bytes:
    return gzip.compress(data, compresslevel=6)


def _deflate_compress(data: bytes) -> bytes:
    return zlib.compress(data, 6)


# Server preference order; it breaks ties between equal q-values.
COMPRESSORS: tuple[tuple[str, CompressFunc], ...] = (
    ("br", _brotli_compress),
    ("zstd", _zstd_compress),
    ("gzip", _gzip_compress),
    ("deflate", _deflate_compress),
)

_COMPRESSIBLE_TYPES = frozenset(
    {
        "application/json",
        "application/javascript",
        "application/xml",
        "application/xhtml+xml",
        "application/rss+xml",
        "application/atom+xml",
        "application/x-javascript",
        "application/x-www-form-urlencoded",
        "application/yaml",
        "application/x-yaml",
        "image/svg+xml",
    }
)


def parse_accept_encoding(header: str) -> dict[str, float]:
    q_values: dict[str, float] = {}
    for raw_part in header.split(","):
        token = raw_part.strip()
        if not token:
            continue
        parts = [segment.strip() for segment in token.split(";") if segment.strip()]
        if not parts:
            continue
        encoding = parts[0].lower()
        quality = 1.0
        for param in parts[1:]:
            name, _, value = param.partition("=")
            if name.strip() != "q":
                continue
            try:
                quality = float(value)
            except ValueError:
                quality = 0.0
        existing = q_values.get(encoding)
        if existing is None or quality > existing:
            q_values[encoding] = quality
    return q_values


def negotiate_encoding(
    header: str | None,
    compressors: tuple[tuple[str, CompressFunc], ...] = COMPRESSORS,
) -> str | None:
    """Pick the best encoding offered by ``header``, or ``None`` for identity."""

    if not header:
        return None
    q_values = parse_accept_encoding(header)
    wildcard_q = q_values.get("*")
    best_encoding: str | None = None
    best_q = 0.0
    for name, _ in compressors:
        quality = q_values.get(name)
        if quality is None:
            if wildcard_q is None:
                continue
            quality = wildcard_q
        if quality <= 0:
            continue
        if quality > best_q:
            best_q = quality
            best_encoding = name
    return best_encoding


def is_compressible(content_type: str | None) -> bool:
    if not content_type:
        return False
    media_type = content_type.split(";", 1)[0].strip().lower()
    if media_type.startswith("text/"):
        return True
    if media_type.endswith("+json") or media_type.endswith("+xml"):
        return True
    return media_type in _COMPRESSIBLE_TYPES


def _append_vary(response: Response) -> Response:
    vary = response.header("vary")
    if vary is None:
        return response.with_headers((("vary", "accept-encoding"),))
    tokens = {token.strip().lower() for token in vary.split(",")}
    if "accept-encoding" in tokens or "*" in tokens:
        return response
    merged = response.without_headers(("vary",))
    return merged.with_headers((("vary", f"{vary}, accept-encoding"),))


class CompressionMiddleware:
    """Compress response bodies using the encoding negotiated with the client."""

    def __init__(
        self,
        *,
        threshold: int = 1024,
        compressors: tuple[tuple[str, CompressFunc], ...] = COMPRESSORS,
    ) -> None:
        self.threshold = threshold
        self._compressors = compressors
        self._compressor_map = dict(compressors)

    async def __call__(self, request: Request, handler: Handler) -> Response:
        response = await handler(request)
        return self.compress(request, response)

    def compress(self, request: Request, response: Response) -> Response:
        if response.status < 200 or response.status in (int(Status.NO_CONTENT), int(Status.NOT_MODIFIED)):
            return response
        if not is_compressible(response.header("content-type")):
            return response
        response = _append_vary(response)
        if request.method == "HEAD" or response.header("content-encoding") is not None:
            return response
        cache_control = (response.header("cache-control") or "").lower()
        if "no-transform" in cache_control:
            return response
        if len(response.body) < self.threshold:
            return response
        encoding = negotiate_encoding(request.header("accept-encoding"), self._compressors)
        if encoding is None:
            return response
        compressed = self._compressor_map[encoding](response.body)
        return response.with_body(compressed, (("content-encoding", encoding),))


__all__ = [
    "COMPRESSORS",
    "CompressionMiddleware",
    "is_compressible",
    "negotiate_encoding",
    "parse_accept_encoding",
]
