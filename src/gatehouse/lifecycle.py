"""Listener lifecycle: configuration, bind, then ready or failed."""

from __future__ import annotations

import asyncio
import logging
import socket
from enum import Enum
from typing import Any

import uvicorn

from .config import ServerConfig
from .events import EventEmitter, LifecycleEvent
from .exceptions import BindError
from .server import bind_socket, create_server

logger = logging.getLogger(__name__)


class LifecycleState(str, Enum):
    CONSTRUCTED = "constructed"
    LISTENING_PENDING = "listening_pending"
    READY = "ready"
    FAILED = "failed"

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.value


class LifecycleController:
    """Own the bind configuration and the listening socket for one application.

    ``start`` moves ``CONSTRUCTED`` to ``LISTENING_PENDING`` and then to
    ``READY`` (publishing ``ready``) or ``FAILED`` (publishing ``error`` and
    raising :class:`~gatehouse.exceptions.BindError`).
    A ``ready`` listener that raises stops the listener again and leaves the
    controller ``FAILED``.
    """

    def __init__(self, config: ServerConfig, events: EventEmitter) -> None:
        self.config = config
        self._events = events
        self._state = LifecycleState.CONSTRUCTED
        self._socket: socket.socket | None = None
        self._server: uvicorn.Server | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def bound_address(self) -> tuple[str, int] | None:
        if self._socket is None:
            return None
        host, port = self._socket.getsockname()[:2]
        return host, port

    async def start(self, app: Any) -> None:
        self._state = LifecycleState.LISTENING_PENDING
        try:
            sock = bind_socket(self.config)
        except OSError as exc:
            self._state = LifecycleState.FAILED
            error = BindError(self.config.address, self.config.port, exc)
            error.__cause__ = exc
            logger.error("%s", error)
            self._events.emit(LifecycleEvent.ERROR, error)
            raise error from exc
        self._socket = sock
        self._server = create_server(app, self.config)
        self._task = asyncio.create_task(self._server.serve(sockets=[sock]))
        self._state = LifecycleState.READY
        host, port = self.bound_address or (self.config.address, self.config.port)
        logger.info("Listening on %s:%s (backlog %s)", host, port, self.config.backlog)
        try:
            self._events.emit(LifecycleEvent.READY)
        except Exception:
            logger.exception("A ready listener failed; shutting the listener down")
            self._state = LifecycleState.FAILED
            await self.close()
            raise

    async def serve_forever(self) -> None:
        if self._task is None:
            raise RuntimeError("Listener has not been started")
        await self._task

    async def close(self) -> None:
        """Stop the serving runtime and release the socket."""

        if self._server is not None:
            self._server.should_exit = True
        if self._task is not None:
            await self._task
            self._task = None
        if self._socket is not None:
            self._socket.close()
            self._socket = None


__all__ = ["LifecycleController", "LifecycleState"]
