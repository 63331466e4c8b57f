"""Static file serving stage."""

from __future__ import annotations

import asyncio
import mimetypes
import os
import stat as stat_module
from dataclasses import dataclass
from email.utils import formatdate, parsedate_to_datetime
from pathlib import Path
from typing import Mapping
from urllib.parse import unquote

from .http import Status
from .middleware import Handler
from .requests import Request
from .responses import Response


def _stat_path_info(path: str) -> tuple[int, float, int]:
    metadata = os.stat(path)
    return metadata.st_size, metadata.st_mtime, metadata.st_mode


def _read_path_bytes(path: str) -> bytes:
    return Path(path).read_bytes()


@dataclass(slots=True, frozen=True)
class _FileMetadata:
    st_size: int
    st_mtime: float
    st_mode: int

    @property
    def is_dir(self) -> bool:
        return stat_module.S_ISDIR(self.st_mode)

    @property
    def is_file(self) -> bool:
        return stat_module.S_ISREG(self.st_mode)

    @property
    def etag(self) -> str:
        return f'W/"{self.st_size:x}-{int(self.st_mtime * 1000):x}"'


class StaticFiles:
    """Serve files rooted at ``directory``; anything it cannot serve goes to the next stage."""

    def __init__(
        self,
        directory: str | os.PathLike[str],
        *,
        index_file: str | None = "index.html",
        cache_control: str | None = None,
        content_types: Mapping[str, str] | None = None,
    ) -> None:
        root = Path(os.fspath(directory)).resolve()
        if not root.is_dir():
            raise ValueError(f"Static directory {root!s} does not exist or is not a directory")
        if index_file is not None and Path(index_file).is_absolute():
            raise ValueError("index_file must be a relative path")
        self.root = root
        self._index_file = index_file
        self._cache_control = cache_control
        self._content_types = {suffix.lower(): value for suffix, value in (content_types or {}).items()}

    async def __call__(self, request: Request, handler: Handler) -> Response:
        if request.method not in {"GET", "HEAD"}:
            return await handler(request)
        located = await self._locate(request.path)
        if located is None:
            return await handler(request)
        target, metadata = located
        header_pairs = [
            ("content-type", self._content_type_for(target)),
            ("last-modified", formatdate(metadata.st_mtime, usegmt=True)),
            ("etag", metadata.etag),
        ]
        if self._cache_control:
            header_pairs.append(("cache-control", self._cache_control))
        if self._not_modified(request, metadata):
            return Response(status=int(Status.NOT_MODIFIED), headers=tuple(header_pairs), body=b"")
        header_pairs.append(("content-length", str(metadata.st_size)))
        body = b""
        if request.method == "GET":
            body = await asyncio.to_thread(_read_path_bytes, os.fspath(target))
        return Response(status=int(Status.OK), headers=tuple(header_pairs), body=body)

    def _not_modified(self, request: Request, metadata: _FileMetadata) -> bool:
        if_none_match = request.header("if-none-match")
        if if_none_match is not None:
            tags = {tag.strip() for tag in if_none_match.split(",")}
            return "*" in tags or metadata.etag in tags or metadata.etag[2:] in tags
        if_modified_since = request.header("if-modified-since")
        if if_modified_since:
            try:
                since = parsedate_to_datetime(if_modified_since)
            except (TypeError, ValueError):
                return False
            return int(metadata.st_mtime) <= since.timestamp()
        return False

    async def _locate(self, path: str) -> tuple[Path, _FileMetadata] | None:
        try:
            decoded = unquote(path or "", errors="strict")
        except UnicodeDecodeError:
            return None
        if "\x00" in decoded:
            return None
        relative = self._sanitize(decoded)
        if relative is None:
            return None
        target = self._resolve(self.root / relative)
        if target is None or not target.is_relative_to(self.root):
            return None
        metadata = await self._stat(target)
        if metadata is None:
            return None
        if metadata.is_dir:
            if self._index_file is None:
                return None
            target = self._resolve(target / self._index_file)
            if target is None or not target.is_relative_to(self.root):
                return None
            metadata = await self._stat(target)
            if metadata is None:
                return None
        if not metadata.is_file:
            return None
        return target, metadata

    def _resolve(self, path: Path) -> Path | None:
        try:
            return path.resolve()
        except (OSError, RuntimeError, ValueError):
            return None

    def _sanitize(self, path: str) -> Path | None:
        raw = (path or "").lstrip("/")
        if not raw:
            return Path(".")
        candidate = Path(raw)
        if candidate.is_absolute() or any(part == ".." for part in candidate.parts):
            return None
        if any(part.startswith(".") for part in candidate.parts):
            return None
        return candidate

    def _content_type_for(self, path: Path) -> str:
        override = self._content_types.get(path.suffix.lower())
        if override:
            return override
        guessed, _ = mimetypes.guess_type(path.name)
        if guessed is None:
            return "application/octet-stream"
        if guessed.startswith("text/") and "charset=" not in guessed:
            return f"{guessed}; charset=utf-8"
        return guessed

    async def _stat(self, path: Path) -> _FileMetadata | None:
        try:
            size, mtime, mode = await asyncio.to_thread(_stat_path_info, os.fspath(path))
        except (OSError, ValueError):
            return None
        return _FileMetadata(st_size=size, st_mtime=mtime, st_mode=mode)


__all__ = ["StaticFiles"]
