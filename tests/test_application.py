from __future__ import annotations

import gzip
import logging
from typing import Any

import pytest

from gatehouse.application import Gatehouse
from gatehouse.config import AppConfig
from gatehouse.events import LifecycleEvent
from gatehouse.exceptions import BodyDecodeError, HTTPError
from gatehouse.middleware import StageKind
from gatehouse.policy import HARDENING_HEADERS, SECURITY_HEADERS
from gatehouse.requests import Request
from gatehouse.responses import JSONResponse, Response
from gatehouse.serialization import json_decode
from gatehouse.testing import TestClient


class Recorder:
    def __init__(self, app: Gatehouse) -> None:
        self.requests: list[tuple[str, str, str]] = []
        self.errors: list[Exception] = []
        app.on("request", lambda *payload: self.requests.append(payload))
        app.on("error", self.errors.append)


def mark_ready(app: Gatehouse) -> None:
    app.events.emit(LifecycleEvent.READY)


def assert_policy_headers(response: Response, origin: str = "*") -> None:
    headers = dict(response.headers)
    for name, value in SECURITY_HEADERS + HARDENING_HEADERS:
        assert headers[name] == value
    assert headers["access-control-allow-origin"] == origin


def test_default_pipeline_order() -> None:
    app = Gatehouse(config=AppConfig())

    assert app.pipeline.kinds() == (StageKind.HEADERS, StageKind.CORS, StageKind.OBSERVER)
    assert app.state.value == "constructed"
    assert app.bound_address is None
    assert app.server_config.port == 80
    assert app.server_config.address == "0.0.0.0"
    assert app.server_config.backlog == 511


def test_constructor_records_bind_configuration() -> None:
    app = Gatehouse(8080, "127.0.0.1", 64, config=AppConfig())

    assert (app.server_config.port, app.server_config.address, app.server_config.backlog) == (8080, "127.0.0.1", 64)


def test_compression_stage_follows_configuration() -> None:
    app = Gatehouse(config=AppConfig(use_compression=True))

    assert app.pipeline.kinds() == (
        StageKind.HEADERS,
        StageKind.CORS,
        StageKind.COMPRESSION,
        StageKind.OBSERVER,
    )


@pytest.mark.parametrize(("value", "expected"), [("true", True), ("1", True), ("yes", False), ("", False)])
def test_compression_stage_from_environment(monkeypatch, value: str, expected: bool) -> None:
    monkeypatch.setenv("USE_COMPRESSION", value)
    monkeypatch.setenv("CORS_DOMAIN", "")
    app = Gatehouse()

    assert (StageKind.COMPRESSION in app.pipeline) is expected


@pytest.mark.asyncio
async def test_create_builds_an_unstarted_instance() -> None:
    app = await Gatehouse.create(9000, "127.0.0.1", config=AppConfig())

    assert app.server_config.port == 9000
    assert app.state.value == "constructed"


@pytest.mark.asyncio
async def test_body_decoders_follow_fixed_stages() -> None:
    app = Gatehouse(config=AppConfig())
    await app.enable_json_body()
    await app.enable_urlencoded_body()

    assert app.pipeline.kinds()[3:] == (
        StageKind.DECODE,
        StageKind.DECODE_ERROR,
        StageKind.DECODE,
        StageKind.DECODE_ERROR,
    )


@pytest.mark.asyncio
async def test_every_response_carries_policy_headers() -> None:
    app = Gatehouse(config=AppConfig(cors_domain="https://example.com"))

    @app.get("/items")
    async def items(request: Request) -> dict[str, Any]:
        return {"items": []}

    async with TestClient(app) as client:
        found = await client.get("/items")
        missing = await client.get("/missing")

    assert found.status == 200
    assert json_decode(found.body) == {"items": []}
    assert_policy_headers(found, origin="https://example.com")
    assert_policy_headers(missing, origin="https://example.com")


@pytest.mark.asyncio
async def test_consumer_headers_are_not_overridden() -> None:
    app = Gatehouse(config=AppConfig())

    @app.get("/cached")
    async def cached(request: Request) -> Response:
        return JSONResponse({"ok": True}, headers=[("cache-control", "no-store")])

    async with TestClient(app) as client:
        response = await client.get("/cached")

    assert [value for name, value in response.headers if name == "cache-control"] == ["no-store"]


@pytest.mark.asyncio
async def test_hardening_headers_can_be_disabled() -> None:
    app = Gatehouse(config=AppConfig(hardening_headers=False))

    async with TestClient(app) as client:
        response = await client.get("/")

    headers = dict(response.headers)
    assert "x-content-type-options" not in headers
    assert headers["referrer-policy"] == "no-referrer"


@pytest.mark.asyncio
async def test_unhandled_requests_before_ready() -> None:
    app = Gatehouse(config=AppConfig())

    async with TestClient(app) as client:
        response = await client.get("/nowhere?x=1")
        preflight = await client.options("/nowhere")

    assert response.status == 404
    assert response.body == b"Cannot GET /nowhere"
    assert preflight.status == 404


@pytest.mark.asyncio
async def test_fallback_installed_when_ready() -> None:
    app = Gatehouse(config=AppConfig())
    mark_ready(app)

    async with TestClient(app) as client:
        preflight = await client.options("/anything")
        missing = await client.get("/anything")
        posted = await client.post("/anything", content=b"payload")

    assert preflight.status == 200
    assert preflight.body == b""
    assert missing.status == 404
    assert missing.body == b""
    assert posted.status == 404
    assert_policy_headers(preflight)
    assert app.pipeline.kinds()[-2:] == (StageKind.FALLBACK, StageKind.FALLBACK)


def test_pipeline_frozen_before_consumer_ready_listeners() -> None:
    app = Gatehouse(config=AppConfig())
    attempts: list[Exception] = []

    def late_registration() -> None:
        try:
            app.use(lambda request, handler: handler(request))
        except RuntimeError as exc:
            attempts.append(exc)

    app.on("ready", late_registration)
    mark_ready(app)
    mark_ready(app)

    assert len(attempts) == 2
    assert app.pipeline.kinds().count(StageKind.FALLBACK) == 2


@pytest.mark.asyncio
async def test_request_event_fires_once_per_request() -> None:
    app = Gatehouse(config=AppConfig())
    recorder = Recorder(app)

    async with TestClient(app, client="10.0.0.5") as client:
        await client.get("/a?b=1")
        await client.get("/c", headers={"X-Forwarded-For": "203.0.113.9"})
        await client.get("/d", headers={"CF-Connecting-IP": "198.51.100.7"})

    assert recorder.requests == [
        ("10.0.0.5", "GET", "/a?b=1"),
        ("203.0.113.9", "GET", "/c"),
        ("198.51.100.7", "GET", "/d"),
    ]


@pytest.mark.asyncio
async def test_json_bodies_reach_routes() -> None:
    app = Gatehouse(config=AppConfig())
    await app.enable_json_body()

    @app.post("/items")
    async def create(request: Request) -> dict[str, Any]:
        return {"received": request.parsed_body}

    async with TestClient(app) as client:
        response = await client.post("/items", json={"name": "widget"})

    assert response.status == 200
    assert json_decode(response.body) == {"received": {"name": "widget"}}


@pytest.mark.asyncio
async def test_malformed_json_is_rejected_with_one_error_event() -> None:
    app = Gatehouse(config=AppConfig())
    recorder = Recorder(app)
    await app.enable_json_body()
    calls: list[Request] = []

    @app.post("/items")
    async def create(request: Request) -> None:
        calls.append(request)

    async with TestClient(app) as client:
        response = await client.post("/items", content=b'{"name": ', headers={"content-type": "application/json"})

    assert response.status == 400
    assert response.body == b""
    assert calls == []
    assert len(recorder.errors) == 1
    assert isinstance(recorder.errors[0], BodyDecodeError)
    assert_policy_headers(response)


@pytest.mark.asyncio
async def test_first_matching_decoder_wins() -> None:
    app = Gatehouse(config=AppConfig())
    await app.enable_text_body(media_types=("text/*",))
    await app.enable_raw_body(media_types=("*/*",))

    @app.post("/echo")
    async def echo(request: Request) -> dict[str, Any]:
        return {"type": type(request.parsed_body).__name__}

    async with TestClient(app) as client:
        text = await client.post("/echo", content="hi", headers={"content-type": "text/plain"})
        raw = await client.post("/echo", content=b"\x00", headers={"content-type": "image/png"})

    assert json_decode(text.body) == {"type": "str"}
    assert json_decode(raw.body) == {"type": "bytes"}


@pytest.mark.asyncio
async def test_oversized_bodies_are_rejected() -> None:
    app = Gatehouse(config=AppConfig())
    recorder = Recorder(app)
    await app.enable_text_body(limit=8)

    @app.post("/notes")
    async def notes(request: Request) -> str:
        return request.parsed_body

    async with TestClient(app) as client:
        response = await client.post("/notes", content="much too long", headers={"content-type": "text/plain"})

    assert response.status == 413
    assert json_decode(response.body)["error"]["status"] == 413
    assert recorder.errors == []
    assert_policy_headers(response)


@pytest.mark.asyncio
async def test_unexpected_errors_become_internal_server_errors(caplog) -> None:
    app = Gatehouse(config=AppConfig())

    @app.get("/boom")
    async def boom(request: Request) -> None:
        raise RuntimeError("kaboom")

    async with TestClient(app) as client:
        with caplog.at_level(logging.ERROR, logger="gatehouse.application"):
            response = await client.get("/boom")

    assert response.status == 500
    assert json_decode(response.body)["error"]["detail"] == "RuntimeError"
    assert_policy_headers(response)
    assert any("GET /boom" in record.getMessage() for record in caplog.records)


@pytest.mark.asyncio
async def test_http_errors_from_routes_keep_their_status() -> None:
    app = Gatehouse(config=AppConfig())

    @app.get("/teapot")
    async def teapot(request: Request) -> None:
        raise HTTPError(400, {"detail": "bad"})

    async with TestClient(app) as client:
        response = await client.get("/teapot")

    assert response.status == 400
    assert json_decode(response.body)["error"]["detail"] == {"detail": "bad"}


@pytest.mark.asyncio
async def test_route_results_are_coerced() -> None:
    app = Gatehouse(config=AppConfig())

    @app.get("/text")
    def text(request: Request) -> str:
        return "plain"

    @app.route("/nothing", methods=("delete",))
    async def nothing(request: Request) -> None:
        return None

    async with TestClient(app) as client:
        plain = await client.get("/text")
        head = await client.head("/text")
        deleted = await client.request("DELETE", "/nothing")
        wrong_method = await client.post("/text")

    assert plain.body == b"plain"
    assert plain.header("content-type") == "text/plain; charset=utf-8"
    assert head.status == 200
    assert deleted.status == 204
    assert wrong_method.status == 404


@pytest.mark.asyncio
async def test_use_with_path_scopes_the_stage() -> None:
    app = Gatehouse(config=AppConfig())
    seen: list[tuple[str, str, str]] = []

    async def api(request: Request, handler) -> Response:
        seen.append((request.path, request.mount_path, request.url))
        if request.path == "/ping":
            return JSONResponse({"pong": True})
        return await handler(request)

    app.use(api, path="/api")

    async with TestClient(app) as client:
        ping = await client.get("/api/ping?v=1")
        passthrough = await client.get("/api/other")
        outside = await client.get("/apiary")

    assert ping.status == 200
    assert passthrough.body == b"Cannot GET /api/other"
    assert outside.status == 404
    assert seen == [("/ping", "/api", "/api/ping?v=1"), ("/other", "/api", "/api/other")]


@pytest.mark.asyncio
async def test_compressed_responses_when_enabled() -> None:
    app = Gatehouse(config=AppConfig(use_compression=True))
    payload = "gatehouse " * 400

    @app.get("/large")
    async def large(request: Request) -> str:
        return payload

    async with TestClient(app) as client:
        response = await client.get("/large", headers={"accept-encoding": "gzip"})
        identity = await client.get("/large")

    assert response.header("content-encoding") == "gzip"
    assert gzip.decompress(response.body) == payload.encode()
    assert response.header("vary") == "accept-encoding"
    assert identity.header("content-encoding") is None
    assert identity.body == payload.encode()
