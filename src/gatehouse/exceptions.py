"""Framework exception types."""

from __future__ import annotations

from typing import Any

from .http import ensure_status, reason_phrase
from .serialization import json_encode


class GatehouseError(Exception):
    """Base error type."""


class HTTPError(GatehouseError):
    """Error carrying the HTTP status the client should receive."""

    def __init__(self, status: int, detail: Any = None) -> None:
        super().__init__(status, detail)
        self.status = ensure_status(status)
        self.detail = detail

    def to_response_body(self) -> bytes:
        return json_encode(
            {
                "error": {
                    "status": self.status,
                    "reason": reason_phrase(self.status),
                    "detail": self.detail,
                }
            }
        )


class BodyDecodeError(GatehouseError, ValueError):
    """Raised when a request body is syntactically or structurally invalid."""

    def __init__(self, kind: str, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __str__(self) -> str:
        return f"{self.kind} body: {self.message}"


class BindError(GatehouseError):
    """Raised when the listener cannot acquire its address and port."""

    def __init__(self, address: str, port: int, cause: OSError) -> None:
        super().__init__(f"Unable to listen on {address}:{port}: {cause.strerror or cause}")
        self.address = address
        self.port = port
        self.errno = cause.errno


__all__ = ["BindError", "BodyDecodeError", "GatehouseError", "HTTPError"]
