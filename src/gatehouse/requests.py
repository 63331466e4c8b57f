"""Request primitives."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping

import msgspec

BodyLoader = Callable[[], Awaitable[bytes]]

_FORWARDED_FOR = "x-forwarded-for"
_CDN_CONNECTING_IP = "cf-connecting-ip"


class Request:
    """View of an incoming request shared by every pipeline stage.

    Only the body decoding stages write to it, through :meth:`set_parsed_body`.
    """

    __slots__ = (
        "_body",
        "_body_loader",
        "_parsed_body",
        "client",
        "headers",
        "method",
        "mount_path",
        "path",
        "query_string",
    )

    def __init__(
        self,
        *,
        method: str,
        path: str,
        headers: Mapping[str, str] | None = None,
        query_string: str | None = None,
        client: str | None = None,
        body: bytes | None = None,
        body_loader: BodyLoader | None = None,
        mount_path: str = "",
    ) -> None:
        self.method = method.upper()
        self.path = path or "/"
        self.headers = {k.lower(): v for k, v in (headers or {}).items()}
        self.query_string = query_string or ""
        self.client = client or ""
        self.mount_path = mount_path
        self._body = body
        self._body_loader = body_loader
        self._parsed_body: Any = msgspec.UNSET

    @property
    def url(self) -> str:
        """Original request target, including the mount prefix and query string."""

        target = self.mount_path + self.path if self.mount_path else self.path
        if self.query_string:
            return f"{target}?{self.query_string}"
        return target

    @property
    def remote_ip(self) -> str:
        """First non-empty of the forwarded-for header, the CDN header and the peer."""

        return self.headers.get(_FORWARDED_FOR) or self.headers.get(_CDN_CONNECTING_IP) or self.client

    @property
    def content_type(self) -> str | None:
        """Lower-cased media type without parameters, if the request declares one."""

        raw = self.headers.get("content-type")
        if not raw:
            return None
        media_type = raw.split(";", 1)[0].strip().lower()
        return media_type or None

    @property
    def charset(self) -> str | None:
        raw = self.headers.get("content-type") or ""
        for param in raw.split(";")[1:]:
            name, _, value = param.partition("=")
            if name.strip().lower() == "charset":
                return value.strip().strip('"').lower() or None
        return None

    @property
    def content_length(self) -> int | None:
        raw = self.headers.get("content-length")
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            return None

    @property
    def has_parsed_body(self) -> bool:
        return self._parsed_body is not msgspec.UNSET

    @property
    def parsed_body(self) -> Any:
        """Structured body attached by a decoding stage, or ``None``."""

        if self._parsed_body is msgspec.UNSET:
            return None
        return self._parsed_body

    def set_parsed_body(self, value: Any) -> None:
        self._parsed_body = value

    def header(self, name: str, default: str | None = None) -> str | None:
        return self.headers.get(name.lower(), default)

    async def body(self) -> bytes:
        if self._body is None:
            self._body = await self._body_loader() if self._body_loader is not None else b""
        return self._body

    def mounted(self, prefix: str) -> "Request":
        """Return a view of this request with ``prefix`` stripped from the path."""

        remainder = self.path[len(prefix) :] or "/"
        if not remainder.startswith("/"):
            remainder = "/" + remainder
        view = Request(
            method=self.method,
            path=remainder,
            query_string=self.query_string,
            client=self.client,
            body=self._body,
            body_loader=self._body_loader,
            mount_path=self.mount_path + prefix,
        )
        view.headers = self.headers
        view._parsed_body = self._parsed_body
        return view


__all__ = ["BodyLoader", "Request"]
