"""Testing helpers."""

from __future__ import annotations

from typing import Any, Mapping
from urllib.parse import urlencode, urlsplit

from .application import Gatehouse
from .requests import Request
from .responses import Response
from .serialization import json_encode


class TestClient:
    """Async test client that executes requests in-process through :meth:`Gatehouse.dispatch`."""

    __test__ = False

    def __init__(self, app: Gatehouse, *, client: str = "127.0.0.1") -> None:
        self.app = app
        self.client = client

    async def __aenter__(self) -> "TestClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        return None

    async def request(
        self,
        method: str,
        url: str,
        *,
        json: Any | None = None,
        data: Mapping[str, Any] | None = None,
        content: bytes | str | None = None,
        headers: Mapping[str, str] | None = None,
        client: str | None = None,
    ) -> Response:
        request_headers = {key.lower(): value for key, value in (headers or {}).items()}
        payload = b""
        if json is not None:
            payload = json_encode(json)
            request_headers.setdefault("content-type", "application/json")
        elif data is not None:
            payload = urlencode(data, doseq=True).encode()
            request_headers.setdefault("content-type", "application/x-www-form-urlencoded")
        elif content is not None:
            payload = content.encode("utf-8") if isinstance(content, str) else content
        if payload:
            request_headers.setdefault("content-length", str(len(payload)))
        target = urlsplit(url)
        request = Request(
            method=method,
            path=target.path or "/",
            headers=request_headers,
            query_string=target.query,
            client=client if client is not None else self.client,
            body=payload,
        )
        return await self.app.dispatch(request)

    async def get(self, url: str, *, headers: Mapping[str, str] | None = None) -> Response:
        return await self.request("GET", url, headers=headers)

    async def head(self, url: str, *, headers: Mapping[str, str] | None = None) -> Response:
        return await self.request("HEAD", url, headers=headers)

    async def options(self, url: str, *, headers: Mapping[str, str] | None = None) -> Response:
        return await self.request("OPTIONS", url, headers=headers)

    async def post(
        self,
        url: str,
        *,
        json: Any | None = None,
        data: Mapping[str, Any] | None = None,
        content: bytes | str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        return await self.request("POST", url, json=json, data=data, content=content, headers=headers)
