"""Command line entry point serving static content behind the Gatehouse pipeline."""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Sequence

from .application import Gatehouse
from .exceptions import BindError

logger = logging.getLogger(__name__)


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        asyncio.run(_serve(args))
    except BindError:
        return 1
    except KeyboardInterrupt:
        return 0
    return 0


def build_app(args: argparse.Namespace) -> Gatehouse:
    app = Gatehouse(args.port, args.address, args.backlog)
    app.on("request", lambda remote_ip, method, url: logger.info("%s %s %s", remote_ip, method, url))
    app.on("error", lambda error: logger.error("%s", error))
    for mount in args.static:
        prefix, sep, directory = mount.partition("=")
        if not sep:
            prefix, directory = "/", mount
        app.use(app.static_content(directory), path=prefix)
    return app


async def _serve(args: argparse.Namespace) -> None:
    app = build_app(args)
    if args.json:
        await app.enable_json_body()
    if args.raw:
        await app.enable_raw_body()
    if args.text:
        await app.enable_text_body()
    if args.urlencoded:
        await app.enable_urlencoded_body()
    await app.start()
    try:
        await app.serve_forever()
    finally:
        await app.close()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gatehouse", description="Serve content behind the Gatehouse pipeline")
    parser.add_argument("--port", type=int, default=80)
    parser.add_argument("--address", default="0.0.0.0")
    parser.add_argument("--backlog", type=int, default=511)
    parser.add_argument(
        "--static",
        action="append",
        default=[],
        metavar="[PREFIX=]DIR",
        help="Serve files from DIR, optionally under PREFIX (repeatable)",
    )
    parser.add_argument("--json", action="store_true", help="Decode JSON request bodies")
    parser.add_argument("--raw", action="store_true", help="Expose octet-stream request bodies")
    parser.add_argument("--text", action="store_true", help="Decode text/plain request bodies")
    parser.add_argument("--urlencoded", action="store_true", help="Decode URL-encoded form bodies")
    parser.add_argument(
        "--log-level",
        default="info",
        choices=["debug", "info", "warning", "error", "critical"],
    )
    return parser


__all__ = ["build_app", "main"]
