"""Security header and cross-origin policy stages."""

from __future__ import annotations

from .middleware import Handler, MiddlewareCallable
from .requests import Request
from .responses import Headers, Response

SECURITY_HEADERS: Headers = (
    ("x-requested-with", "*"),
    (
        "access-control-allow-headers",
        "Origin, X-Requested-With, Content-Type, Accept, User-Agent",
    ),
    (
        "access-control-allow-methods",
        "GET, HEAD, POST, PUT, DELETE, CONNECT, OPTIONS, TRACE, PATCH",
    ),
    ("cache-control", "max-age=30, public"),
    ("referrer-policy", "no-referrer"),
    ("content-security-policy", "default-src 'none'"),
    (
        "feature-policy",
        "geolocation none;midi none;notifications none;push none;sync-xhr none;microphone none;"
        "camera none;magnetometer none;gyroscope none;speaker self;vibrate none;fullscreen self;"
        "payment none;",
    ),
    (
        "permissions-policy",
        "geolocation=(), midi=(), notifications=(), push=(), sync-xhr=(), microphone=(), camera=(), "
        "magnetometer=(), gyroscope=(), speaker=(self), vibrate=(), fullscreen=(self), payment=()",
    ),
)

HARDENING_HEADERS: Headers = (
    ("x-content-type-options", "nosniff"),
    ("x-frame-options", "SAMEORIGIN"),
    ("x-dns-prefetch-control", "off"),
    ("x-download-options", "noopen"),
    ("x-permitted-cross-domain-policies", "none"),
    ("strict-transport-security", "max-age=15552000; includeSubDomains"),
    ("x-xss-protection", "0"),
    ("expect-ct", "max-age=0"),
)

ALLOW_ORIGIN_HEADER = "access-control-allow-origin"


def policy_headers(*, hardening: bool = True) -> Headers:
    if hardening:
        return SECURITY_HEADERS + HARDENING_HEADERS
    return SECURITY_HEADERS


def cors_headers(origin: str | None) -> Headers:
    return ((ALLOW_ORIGIN_HEADER, origin or "*"),)


def apply_policy_headers(response: Response, *, origin: str | None = "*", hardening: bool = True) -> Response:
    """Add the policy and allowed-origin headers the response does not already carry."""

    return response.with_default_headers(policy_headers(hardening=hardening) + cors_headers(origin))


def header_policy_middleware(*, hardening: bool = True) -> MiddlewareCallable:
    headers = policy_headers(hardening=hardening)

    async def header_policy(request: Request, handler: Handler) -> Response:
        response = await handler(request)
        return response.with_default_headers(headers)

    return header_policy


def cors_middleware(origin: str | None = "*") -> MiddlewareCallable:
    headers = cors_headers(origin)

    async def cors(request: Request, handler: Handler) -> Response:
        response = await handler(request)
        return response.with_default_headers(headers)

    return cors


__all__ = [
    "ALLOW_ORIGIN_HEADER",
    "HARDENING_HEADERS",
    "SECURITY_HEADERS",
    "apply_policy_headers",
    "cors_headers",
    "cors_middleware",
    "header_policy_middleware",
    "policy_headers",
]
