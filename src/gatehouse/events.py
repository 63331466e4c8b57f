"""Lifecycle event registry."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]


class LifecycleEvent(str, Enum):
    """Events published by a Gatehouse instance.

    ``READY`` carries no payload, ``REQUEST`` carries ``(remote_ip, method, url)``
    and ``ERROR`` carries the exception that was raised.
    """

    READY = "ready"
    REQUEST = "request"
    ERROR = "error"

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.value


def _coerce_event(event: LifecycleEvent | str) -> LifecycleEvent:
    try:
        return LifecycleEvent(event)
    except ValueError as exc:
        raise ValueError(f"Unknown event {event!r}") from exc


class EventEmitter:
    """Synchronous publish/subscribe registry keyed by :class:`LifecycleEvent`."""

    def __init__(self) -> None:
        self._listeners: dict[LifecycleEvent, list[Listener]] = {event: [] for event in LifecycleEvent}

    def on(self, event: LifecycleEvent | str, listener: Listener) -> "EventEmitter":
        if not callable(listener):
            raise TypeError("listener must be callable")
        self._listeners[_coerce_event(event)].append(listener)
        return self

    def listeners(self, event: LifecycleEvent | str) -> tuple[Listener, ...]:
        return tuple(self._listeners[_coerce_event(event)])

    def listener_count(self, event: LifecycleEvent | str) -> int:
        return len(self._listeners[_coerce_event(event)])

    def emit(self, event: LifecycleEvent | str, *args: Any) -> bool:
        """Call every listener for ``event`` in subscription order.

        Returns ``True`` when at least one listener was called. An ``error``
        event nobody listens to is logged rather than dropped.
        """

        name = _coerce_event(event)
        listeners = tuple(self._listeners[name])
        if not listeners:
            if name is LifecycleEvent.ERROR:
                error = args[0] if args else None
                logger.error("Unhandled error event: %s", error)
            return False
        for listener in listeners:
            listener(*args)
        return True


__all__ = ["EventEmitter", "LifecycleEvent", "Listener"]
