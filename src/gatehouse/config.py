"""Application and listener configuration objects."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping

from dotenv import load_dotenv
from msgspec import Struct

_TRUTHY = frozenset({"true", "1"})


def env_flag(value: str | None) -> bool:
    """Return ``True`` for the accepted truthy spellings ``"true"`` and ``"1"``."""

    if value is None:
        return False
    return value.lower() in _TRUTHY


class AppConfig(Struct, frozen=True):
    """Typed configuration for a :class:`~gatehouse.application.Gatehouse` instance."""

    cors_domain: str = "*"
    use_compression: bool = False
    hardening_headers: bool = True
    max_body_bytes: int = 102_400
    compression_threshold: int = 1024

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        dotenv_path: str | os.PathLike[str] | None = None,
    ) -> "AppConfig":
        """Build a configuration from ``CORS_DOMAIN`` and ``USE_COMPRESSION``.

        When ``environ`` is omitted a ``.env`` file is loaded into the process
        environment first; variables that are already set take precedence.
        """

        if environ is None:
            load_dotenv(dotenv_path=Path(dotenv_path) if dotenv_path is not None else None)
            environ = os.environ
        return cls(
            cors_domain=environ.get("CORS_DOMAIN") or "*",
            use_compression=env_flag(environ.get("USE_COMPRESSION")),
        )


class ServerConfig(Struct, frozen=True):
    """Bind configuration owned by the lifecycle controller."""

    port: int = 80
    address: str = "0.0.0.0"
    backlog: int = 511

    def __post_init__(self) -> None:
        if not 0 <= self.port <= 65535:
            raise ValueError(f"port must be between 0 and 65535, got {self.port}")
        if self.backlog < 0:
            raise ValueError(f"backlog must be non-negative, got {self.backlog}")
        if not self.address:
            raise ValueError("bind address cannot be empty")


__all__ = ["AppConfig", "ServerConfig", "env_flag"]
