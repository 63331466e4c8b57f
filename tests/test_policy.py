from __future__ import annotations

import pytest

from gatehouse.policy import (
    HARDENING_HEADERS,
    SECURITY_HEADERS,
    apply_policy_headers,
    cors_middleware,
    header_policy_middleware,
)
from gatehouse.requests import Request
from gatehouse.responses import Response

EXPECTED = {
    "x-requested-with": "*",
    "access-control-allow-headers": "Origin, X-Requested-With, Content-Type, Accept, User-Agent",
    "access-control-allow-methods": "GET, HEAD, POST, PUT, DELETE, CONNECT, OPTIONS, TRACE, PATCH",
    "cache-control": "max-age=30, public",
    "referrer-policy": "no-referrer",
    "content-security-policy": "default-src 'none'",
    "feature-policy": (
        "geolocation none;midi none;notifications none;push none;sync-xhr none;microphone none;"
        "camera none;magnetometer none;gyroscope none;speaker self;vibrate none;fullscreen self;payment none;"
    ),
    "permissions-policy": (
        "geolocation=(), midi=(), notifications=(), push=(), sync-xhr=(), microphone=(), camera=(), "
        "magnetometer=(), gyroscope=(), speaker=(self), vibrate=(), fullscreen=(self), payment=()"
    ),
}


async def endpoint(request: Request) -> Response:
    return Response(status=200, body=b"ok")


def test_security_headers_are_literal() -> None:
    assert dict(SECURITY_HEADERS) == EXPECTED


@pytest.mark.asyncio
async def test_header_policy_sets_every_header() -> None:
    middleware = header_policy_middleware()
    response = await middleware(Request(method="GET", path="/"), endpoint)
    headers = dict(response.headers)
    for name, value in EXPECTED.items():
        assert headers[name] == value
    for name, value in HARDENING_HEADERS:
        assert headers[name] == value


@pytest.mark.asyncio
async def test_header_policy_disables_legacy_browser_filters() -> None:
    middleware = header_policy_middleware()
    response = await middleware(Request(method="GET", path="/"), endpoint)
    assert response.header("x-xss-protection") == "0"
    assert response.header("expect-ct") == "max-age=0"


@pytest.mark.asyncio
async def test_header_policy_without_hardening() -> None:
    middleware = header_policy_middleware(hardening=False)
    response = await middleware(Request(method="GET", path="/"), endpoint)
    assert dict(response.headers) == EXPECTED


@pytest.mark.asyncio
async def test_header_policy_never_overrides_downstream_values() -> None:
    async def cached(request: Request) -> Response:
        return Response(headers=(("cache-control", "no-store"),))

    response = await header_policy_middleware()(Request(method="GET", path="/"), cached)
    assert response.header("cache-control") == "no-store"


@pytest.mark.asyncio
@pytest.mark.parametrize(("origin", "expected"), [("https://app.example", "https://app.example"), (None, "*")])
async def test_cors_sets_allowed_origin(origin, expected) -> None:
    response = await cors_middleware(origin)(Request(method="GET", path="/"), endpoint)
    assert response.header("Access-Control-Allow-Origin") == expected


def test_apply_policy_headers_covers_error_responses() -> None:
    response = apply_policy_headers(Response(status=500), origin="https://app.example", hardening=False)
    headers = dict(response.headers)
    assert headers["access-control-allow-origin"] == "https://app.example"
    assert headers["content-security-policy"] == "default-src 'none'"
    assert "x-frame-options" not in headers
