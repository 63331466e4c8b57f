"""Application core."""

from __future__ import annotations

import inspect
import logging
import os
from typing import Any, Awaitable, Callable, Iterable, Mapping

from .bodies import DEFAULT_LIMIT, BodyDecoder, BodyKind, decode_error_trap
from .compression import CompressionMiddleware
from .config import AppConfig, ServerConfig
from .events import EventEmitter, LifecycleEvent, Listener
from .exceptions import HTTPError
from .fallback import not_found_handler, preflight_handler, unhandled_endpoint
from .http import Status
from .lifecycle import LifecycleController, LifecycleState
from .middleware import Handler, MiddlewareCallable, Pipeline, Stage, StageKind, apply_middleware
from .observer import request_observer
from .policy import apply_policy_headers, cors_middleware, header_policy_middleware
from .requests import Request
from .responses import Response, coerce_response, exception_to_response
from .static import StaticFiles

logger = logging.getLogger(__name__)

Endpoint = Callable[[Request], Awaitable[Any] | Any]


class Gatehouse:
    """HTTP front end that runs every request through a fixed stage pipeline.

    Header policy, CORS, optional compression and request observation are
    installed at construction. Consumers add decoders and their own stages
    before :meth:`start`; the pre-flight and not-found fallback is appended
    when ``ready`` fires.
    """

    def __init__(
        self,
        port: int = 80,
        address: str = "0.0.0.0",
        backlog: int = 511,
        *,
        config: AppConfig | None = None,
    ) -> None:
        self.config = config or AppConfig.from_env()
        self.events = EventEmitter()
        self.pipeline = Pipeline()
        self.lifecycle = LifecycleController(ServerConfig(port=port, address=address, backlog=backlog), self.events)
        self._fallback_installed = False

        self.pipeline.append(
            Stage(StageKind.HEADERS, header_policy_middleware(hardening=self.config.hardening_headers), "header_policy")
        )
        self.pipeline.append(Stage(StageKind.CORS, cors_middleware(self.config.cors_domain), "cors"))
        if self.config.use_compression:
            self.pipeline.append(
                Stage(
                    StageKind.COMPRESSION,
                    CompressionMiddleware(threshold=self.config.compression_threshold),
                    "compression",
                )
            )
        self.pipeline.append(Stage(StageKind.OBSERVER, request_observer(self.events), "request_observer"))
        self.events.on(LifecycleEvent.READY, self._install_fallback)

    @classmethod
    async def create(
        cls,
        port: int = 80,
        address: str = "0.0.0.0",
        backlog: int = 511,
        *,
        config: AppConfig | None = None,
    ) -> "Gatehouse":
        return cls(port, address, backlog, config=config)

    # ------------------------------------------------------------------ events
    def on(self, event: LifecycleEvent | str, listener: Listener) -> "Gatehouse":
        self.events.on(event, listener)
        return self

    @property
    def state(self) -> LifecycleState:
        return self.lifecycle.state

    @property
    def server_config(self) -> ServerConfig:
        return self.lifecycle.config

    @property
    def bound_address(self) -> tuple[str, int] | None:
        return self.lifecycle.bound_address

    # ------------------------------------------------------------------ stages
    def use(self, middleware: MiddlewareCallable, *, path: str | None = None, name: str | None = None) -> None:
        """Append a consumer stage, optionally scoped to the ``path`` prefix."""

        label = name or getattr(middleware, "__name__", type(middleware).__name__)
        if path is None:
            self.pipeline.append(Stage(StageKind.CONSUMER, middleware, label))
            return
        prefix = "/" + path.strip("/")
        if prefix == "/":
            self.pipeline.append(Stage(StageKind.CONSUMER, middleware, label))
            return

        async def mounted(request: Request, handler: Handler) -> Response:
            if request.path != prefix and not request.path.startswith(prefix + "/"):
                return await handler(request)

            async def resume(_: Request) -> Response:
                return await handler(request)

            return await middleware(request.mounted(prefix), resume)

        self.pipeline.append(Stage(StageKind.CONSUMER, mounted, label))

    def route(self, path: str, *, methods: Iterable[str]) -> Callable[[Endpoint], Endpoint]:
        allowed = frozenset(method.upper() for method in methods)
        if "GET" in allowed:
            allowed = allowed | {"HEAD"}

        def decorator(endpoint: Endpoint) -> Endpoint:
            async def route_stage(request: Request, handler: Handler) -> Response:
                if request.path != path or request.method not in allowed:
                    return await handler(request)
                result = endpoint(request)
                if inspect.isawaitable(result):
                    result = await result
                return coerce_response(result)

            self.pipeline.append(Stage(StageKind.CONSUMER, route_stage, getattr(endpoint, "__name__", path)))
            return endpoint

        return decorator

    def get(self, path: str) -> Callable[[Endpoint], Endpoint]:
        return self.route(path, methods=("GET",))

    def post(self, path: str) -> Callable[[Endpoint], Endpoint]:
        return self.route(path, methods=("POST",))

    def static_content(self, local_path: str | os.PathLike[str]) -> StaticFiles:
        """Return a stage serving files rooted at the resolved ``local_path``."""

        return StaticFiles(os.path.abspath(os.fspath(local_path)))

    # ------------------------------------------------------------------ body decoding
    async def enable_json_body(self, *, media_types: Iterable[str] | None = None, limit: int | None = None) -> None:
        """Decode ``application/json`` bodies into ``request.parsed_body``."""

        self._enable_body(BodyKind.JSON, media_types, limit)

    async def enable_raw_body(self, *, media_types: Iterable[str] | None = None, limit: int | None = None) -> None:
        """Expose ``application/octet-stream`` bodies as bytes."""

        self._enable_body(BodyKind.RAW, media_types, limit)

    async def enable_text_body(self, *, media_types: Iterable[str] | None = None, limit: int | None = None) -> None:
        """Decode ``text/plain`` bodies into ``str``."""

        self._enable_body(BodyKind.TEXT, media_types, limit)

    async def enable_urlencoded_body(
        self, *, media_types: Iterable[str] | None = None, limit: int | None = None
    ) -> None:
        """Decode URL-encoded form bodies into a ``dict``."""

        self._enable_body(BodyKind.URLENCODED, media_types, limit)

    def _enable_body(self, kind: BodyKind, media_types: Iterable[str] | None, limit: int | None) -> None:
        resolved_limit = limit if limit is not None else self.config.max_body_bytes or DEFAULT_LIMIT
        decoder = BodyDecoder(kind, media_types=media_types, limit=resolved_limit)
        self.pipeline.append(Stage(StageKind.DECODE, decoder, f"{kind.value}_body"))
        self.pipeline.append(
            Stage(StageKind.DECODE_ERROR, decode_error_trap(self.events), f"{kind.value}_body_errors", traps_errors=True)
        )

    # ------------------------------------------------------------------ lifecycle
    def _install_fallback(self) -> None:
        if self._fallback_installed:
            return
        self._fallback_installed = True
        self.pipeline.append(Stage(StageKind.FALLBACK, preflight_handler, "preflight"))
        self.pipeline.append(Stage(StageKind.FALLBACK, not_found_handler, "not_found"))
        self.pipeline.freeze()

    async def start(self) -> None:
        """Bind the listener, then publish ``ready``; publish ``error`` and raise on failure."""

        await self.lifecycle.start(self)

    async def serve_forever(self) -> None:
        await self.lifecycle.serve_forever()

    async def close(self) -> None:
        await self.lifecycle.close()

    # ------------------------------------------------------------------ request handling
    async def dispatch(self, request: Request) -> Response:
        handler = apply_middleware(self.pipeline, unhandled_endpoint)
        try:
            return await handler(request)
        except HTTPError as exc:
            response = exception_to_response(exc)
        except Exception as exc:
            logger.exception("Unhandled error while processing %s %s", request.method, request.url)
            response = exception_to_response(HTTPError(Status.INTERNAL_SERVER_ERROR, type(exc).__name__))
        return apply_policy_headers(
            response,
            origin=self.config.cors_domain,
            hardening=self.config.hardening_headers,
        )

    # ------------------------------------------------------------------ interface adapters
    async def __call__(
        self,
        scope: Mapping[str, Any],
        receive: Callable[[], Awaitable[Mapping[str, Any]]],
        send: Callable[[Mapping[str, Any]], Awaitable[None]],
    ) -> None:
        scope_type = scope.get("type")
        if scope_type == "http":
            await self._handle_http(scope, receive, send)
            return
        if scope_type == "lifespan":
            await self._handle_lifespan(receive, send)
            return
        raise RuntimeError("Gatehouse only supports HTTP and lifespan scopes")

    async def _handle_http(
        self,
        scope: Mapping[str, Any],
        receive: Callable[[], Awaitable[Mapping[str, Any]]],
        send: Callable[[Mapping[str, Any]], Awaitable[None]],
    ) -> None:
        headers: dict[str, str] = {}
        for key, value in scope.get("headers", []):
            name = key.decode("latin-1").lower()
            decoded = value.decode("latin-1")
            headers[name] = f"{headers[name]}, {decoded}" if name in headers else decoded
        client = scope.get("client")
        body_state: dict[str, Any] = {"buffer": bytearray(), "cached": None}

        async def load_body() -> bytes:
            cached = body_state["cached"]
            if cached is not None:
                return cached
            while True:
                message = await receive()
                message_type = message.get("type")
                if message_type == "http.disconnect":
                    break
                if message_type != "http.request":
                    continue
                chunk = message.get("body", b"")
                if chunk:
                    body_state["buffer"].extend(chunk)
                if not message.get("more_body", False):
                    break
            body_bytes = bytes(body_state["buffer"])
            body_state["cached"] = body_bytes
            body_state["buffer"] = bytearray()
            return body_bytes

        raw_path = scope.get("raw_path")
        path = raw_path.decode("latin-1") if raw_path else scope.get("path", "/")
        request = Request(
            method=scope["method"],
            path=path,
            headers=headers,
            query_string=(scope.get("query_string") or b"").decode("latin-1"),
            client=client[0] if client else None,
            body_loader=load_body,
        )
        response = await self.dispatch(request)
        if response.status >= 200 and response.status not in (Status.NO_CONTENT, Status.NOT_MODIFIED):
            response = response.with_default_headers((("content-length", str(len(response.body))),))
        await send(
            {
                "type": "http.response.start",
                "status": response.status,
                "headers": [(k.encode("latin-1"), v.encode("latin-1")) for k, v in response.headers],
            }
        )
        body = b"" if request.method == "HEAD" else response.body
        await send({"type": "http.response.body", "body": body})

    async def _handle_lifespan(
        self,
        receive: Callable[[], Awaitable[Mapping[str, Any]]],
        send: Callable[[Mapping[str, Any]], Awaitable[None]],
    ) -> None:
        while True:
            message = await receive()
            message_type = message.get("type")
            if message_type == "lifespan.startup":
                await send({"type": "lifespan.startup.complete"})
            elif message_type == "lifespan.shutdown":
                await send({"type": "lifespan.shutdown.complete"})
                return


__all__ = ["Endpoint", "Gatehouse"]
