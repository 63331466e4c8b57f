from __future__ import annotations

import socket

import pytest
import uvicorn

from gatehouse.application import Gatehouse
from gatehouse.config import AppConfig, ServerConfig
from gatehouse.server import bind_socket, create_server


def test_bind_socket_listens_without_blocking() -> None:
    sock = bind_socket(ServerConfig(port=0, address="127.0.0.1", backlog=8))
    try:
        host, port = sock.getsockname()
        assert host == "127.0.0.1"
        assert port > 0
        assert sock.getblocking() is False
        assert sock.getsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR)
    finally:
        sock.close()


def test_bind_socket_raises_when_port_is_taken() -> None:
    first = bind_socket(ServerConfig(port=0, address="127.0.0.1"))
    try:
        port = first.getsockname()[1]
        with pytest.raises(OSError):
            bind_socket(ServerConfig(port=port, address="127.0.0.1"))
    finally:
        first.close()


def test_create_server_keeps_logging_untouched() -> None:
    app = Gatehouse(config=AppConfig())
    server = create_server(app, ServerConfig(port=8080, address="127.0.0.1", backlog=32))

    assert isinstance(server, uvicorn.Server)
    assert server.config.app is app
    assert server.config.host == "127.0.0.1"
    assert server.config.port == 8080
    assert server.config.backlog == 32
    assert server.config.lifespan == "off"
    assert server.config.access_log is False
    assert server.config.log_config is None
    assert server.config.server_header is False
