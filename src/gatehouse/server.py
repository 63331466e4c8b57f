"""Listener binding and uvicorn integration helpers."""

from __future__ import annotations

import socket
from typing import Any

import uvicorn

from .config import ServerConfig


def _family_for(address: str) -> socket.AddressFamily:
    return socket.AF_INET6 if ":" in address else socket.AF_INET


def bind_socket(config: ServerConfig) -> socket.socket:
    """Bind and listen on ``config``'s address, port and backlog.

    Raises :class:`OSError` when the address cannot be acquired.
    """

    sock = socket.socket(_family_for(config.address), socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((config.address, config.port))
        sock.listen(config.backlog)
        sock.setblocking(False)
    except OSError:
        sock.close()
        raise
    return sock


def create_server(app: Any, config: ServerConfig) -> uvicorn.Server:
    """Build a uvicorn server for ``app`` that serves an already bound socket."""

    uvicorn_config = uvicorn.Config(
        app,
        host=config.address,
        port=config.port,
        backlog=config.backlog,
        interface="asgi3",
        lifespan="off",
        log_config=None,
        access_log=False,
        proxy_headers=False,
        server_header=False,
    )
    return uvicorn.Server(uvicorn_config)


__all__ = ["bind_socket", "create_server"]
