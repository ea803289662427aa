"""Command line entry point: ``trackside`` / ``python -m trackside``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import Any

from trackside.config import LinkConfig, TracksideConfig
from trackside.exceptions import TracksideConfigError
from trackside.server import TelemetryServer

_LOG = logging.getLogger("trackside")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="trackside",
        description="Ingest battery/GPS sensor links and broadcast telemetry to websocket viewers.",
    )
    parser.add_argument("--host", help="Bind address (env TRACKSIDE_HOST)")
    parser.add_argument("--port", type=int, help="Listen port (env TRACKSIDE_PORT)")
    parser.add_argument(
        "--link",
        action="append",
        default=[],
        metavar="ID=KIND:RATE:PATH",
        help="Sensor link, repeatable, e.g. COM7=gps:9600:COM7 or gps=gps:9600:socket://localhost:7001",
    )
    parser.add_argument("--interval", type=float, help="Seconds between viewer pushes")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def _build_config(args: argparse.Namespace) -> TracksideConfig:
    overrides: dict[str, Any] = {}
    if args.host is not None:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if args.link:
        overrides["links"] = tuple(LinkConfig.parse(spec) for spec in args.link)
    if args.interval is not None:
        overrides["broadcast_interval"] = args.interval
    return TracksideConfig.from_env(**overrides)


async def _serve(config: TracksideConfig) -> None:
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()

    def stop_handler(_signum: int, _frame: Any) -> None:
        loop.call_soon_threadsafe(stop.set)

    signal.signal(signal.SIGINT, stop_handler)
    signal.signal(signal.SIGTERM, stop_handler)

    async with TelemetryServer(config):
        await stop.wait()


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    try:
        config = _build_config(args)
    except TracksideConfigError as exc:
        print(f"trackside: {exc}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=logging.DEBUG if args.verbose or config.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    for link in config.links:
        _LOG.info("Configured link %s: %s @ %d baud (%s)", link.link_id, link.transport_path, link.rate, link.kind)

    try:
        asyncio.run(_serve(config))
    except OSError as exc:
        _LOG.error("Server failed: %s", exc)
        return 1
    return 0
