"""Request observation stage."""

from __future__ import annotations

from .events import EventEmitter, LifecycleEvent
from .middleware import Handler, MiddlewareCallable
from .requests import Request
from .responses import Response


def request_observer(events: EventEmitter) -> MiddlewareCallable:
    """Publish ``request`` with ``(remote_ip, method, url)`` before delegating."""

    async def observe(request: Request, handler: Handler) -> Response:
        events.emit(LifecycleEvent.REQUEST, request.remote_ip, request.method, request.url)
        return await handler(request)

    return observe


__all__ = ["request_observer"]
