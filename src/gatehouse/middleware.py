"""Ordered stage pipeline with error-trapping stages."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Iterable, Iterator

from .requests import Request
from .responses import Response

Handler = Callable[[Request], Awaitable[Response]]
MiddlewareCallable = Callable[[Request, Handler], Awaitable[Response]]
ErrorMiddlewareCallable = Callable[[Exception, Request, Handler], Awaitable[Response]]


class StageKind(str, Enum):
    HEADERS = "headers"
    CORS = "cors"
    COMPRESSION = "compression"
    OBSERVER = "observer"
    DECODE = "decode"
    DECODE_ERROR = "decode_error"
    CONSUMER = "consumer"
    FALLBACK = "fallback"


@dataclass(slots=True, frozen=True)
class Stage:
    """One unit of per-request processing.

    Regular stages are called as ``handler(request, next)``. Stages with
    ``traps_errors`` are skipped on the normal path and called as
    ``handler(error, request, next)`` when an earlier stage raised.
    """

    kind: StageKind
    handler: MiddlewareCallable | ErrorMiddlewareCallable
    name: str
    traps_errors: bool = False


class Pipeline:
    """Append-only sequence of stages; insertion order is execution order."""

    __slots__ = ("_frozen", "_stages")

    def __init__(self, stages: Iterable[Stage] = ()) -> None:
        self._stages: list[Stage] = list(stages)
        self._frozen = False

    def append(self, stage: Stage) -> None:
        if self._frozen:
            raise RuntimeError(f"Pipeline is frozen; cannot add stage {stage.name!r}")
        self._stages.append(stage)

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def kinds(self) -> tuple[StageKind, ...]:
        return tuple(stage.kind for stage in self._stages)

    def snapshot(self) -> tuple[Stage, ...]:
        return tuple(self._stages)

    def __iter__(self) -> Iterator[Stage]:
        return iter(tuple(self._stages))

    def __len__(self) -> int:
        return len(self._stages)

    def __contains__(self, kind: object) -> bool:
        return any(stage.kind == kind for stage in self._stages)


def apply_middleware(stages: Pipeline | Iterable[Stage], endpoint: Handler) -> Handler:
    """Compose ``stages`` in front of ``endpoint`` into a single handler."""

    if isinstance(stages, Pipeline):
        normalized = stages.snapshot()
    else:
        normalized = tuple(stages)
    if not normalized:
        return endpoint
    return _BoundPipeline(normalized, endpoint)


class _BoundPipeline:
    __slots__ = ("_endpoint", "_stages")

    def __init__(self, stages: tuple[Stage, ...], endpoint: Handler) -> None:
        self._stages = stages
        self._endpoint = endpoint

    async def __call__(self, request: Request) -> Response:
        return await self._invoke(0, request)

    async def _invoke(self, index: int, request: Request) -> Response:
        stages = self._stages
        while index < len(stages) and stages[index].traps_errors:
            index += 1
        if index >= len(stages):
            return await self._endpoint(request)
        stage = stages[index]
        downstream = _NextHandler(self, index + 1)
        try:
            return await stage.handler(request, downstream)  # type: ignore[call-arg]
        except Exception as exc:
            if exc is downstream.failure:
                raise
            return await self._recover(index + 1, request, exc)

    async def _recover(self, index: int, request: Request, error: Exception) -> Response:
        stages = self._stages
        while index < len(stages):
            stage = stages[index]
            index += 1
            if not stage.traps_errors:
                continue
            downstream = _NextHandler(self, index)
            try:
                return await stage.handler(error, request, downstream)  # type: ignore[call-arg]
            except Exception as exc:
                if exc is downstream.failure:
                    raise
                error = exc
        raise error


class _NextHandler:
    __slots__ = ("_index", "_pipeline", "failure")

    def __init__(self, pipeline: _BoundPipeline, index: int) -> None:
        self._pipeline = pipeline
        self._index = index
        self.failure: Exception | None = None

    async def __call__(self, request: Request) -> Response:
        try:
            return await self._pipeline._invoke(self._index, request)
        except Exception as exc:
            self.failure = exc
            raise


__all__ = [
    "ErrorMiddlewareCallable",
    "Handler",
    "MiddlewareCallable",
    "Pipeline",
    "Stage",
    "StageKind",
    "apply_middleware",
]
