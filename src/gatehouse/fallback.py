"""Route-agnostic handlers appended to the tail of the pipeline once ready."""

from __future__ import annotations

from .http import Status
from .middleware import Handler
from .requests import Request
from .responses import EmptyResponse, PlainTextResponse, Response


async def preflight_handler(request: Request, handler: Handler) -> Response:
    """Answer any ``OPTIONS`` request with an empty success response."""

    if request.method != "OPTIONS":
        return await handler(request)
    return EmptyResponse(Status.OK)


async def not_found_handler(request: Request, handler: Handler) -> Response:
    """Answer every request that reached the tail unhandled."""

    return EmptyResponse(Status.NOT_FOUND)


async def unhandled_endpoint(request: Request) -> Response:
    """Terminal handler used before the fallback stage is installed."""

    return PlainTextResponse(f"Cannot {request.method} {request.url.split('?', 1)[0]}", status=int(Status.NOT_FOUND))


__all__ = ["not_found_handler", "preflight_handler", "unhandled_endpoint"]
