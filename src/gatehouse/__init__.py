"""Gatehouse: a hardened HTTP front end built around an ordered stage pipeline."""

from .application import Gatehouse
from .bodies import BodyDecoder, BodyKind
from .compression import CompressionMiddleware
from .config import AppConfig, ServerConfig
from .events import EventEmitter, LifecycleEvent
from .exceptions import BindError, BodyDecodeError, GatehouseError, HTTPError
from .http import Status
from .lifecycle import LifecycleController, LifecycleState
from .middleware import Pipeline, Stage, StageKind
from .policy import HARDENING_HEADERS, SECURITY_HEADERS
from .requests import Request
from .responses import EmptyResponse, JSONResponse, PlainTextResponse, Response
from .static import StaticFiles
from .testing import TestClient

__all__ = [
    "HARDENING_HEADERS",
    "SECURITY_HEADERS",
    "AppConfig",
    "BindError",
    "BodyDecodeError",
    "BodyDecoder",
    "BodyKind",
    "CompressionMiddleware",
    "EmptyResponse",
    "EventEmitter",
    "Gatehouse",
    "GatehouseError",
    "HTTPError",
    "JSONResponse",
    "LifecycleController",
    "LifecycleEvent",
    "LifecycleState",
    "Pipeline",
    "PlainTextResponse",
    "Request",
    "Response",
    "ServerConfig",
    "Stage",
    "StageKind",
    "StaticFiles",
    "Status",
    "TestClient",
]
