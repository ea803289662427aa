#!/usr/bin/env python3
"""Serve simulated battery and GPS link lines over TCP.

Each port speaks the same newline-delimited ASCII format as the physical
links, so the server can ingest them through pyserial's ``socket://`` URLs::

    python scripts/link_simulator.py --battery-port 7001 --gps-port 7002
    trackside --link bat=battery:9600:socket://localhost:7001 \\
              --link gps=gps:9600:socket://localhost:7002

The GPS track is a circle whose southernmost point sits inside the default
finish line, so every revolution counts one lap.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import math
import random
import sys
import time
from collections.abc import Callable
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from trackside.geo import haversine_km  # noqa: E402
from trackside.models import FinishLineGeofence  # noqa: E402

_LOG = logging.getLogger("link_simulator")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Simulated trackside sensor links over TCP")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--battery-port", type=int, default=7001)
    parser.add_argument("--gps-port", type=int, default=7002)
    parser.add_argument("--rate-hz", type=float, default=5.0, help="Lines per second per link")
    parser.add_argument("--lap-seconds", type=float, default=60.0, help="Duration of one simulated lap")
    parser.add_argument("--radius-deg", type=float, default=0.0015, help="Track radius in degrees of latitude")
    parser.add_argument("--garbage-pct", type=float, default=0.0, help="Percentage of malformed lines to emit")
    parser.add_argument("--random-seed", type=int, default=42)
    parser.add_argument("--verbose", "-v", action="store_true")
    return parser.parse_args()


class _Track:
    def __init__(self, finish: FinishLineGeofence, radius_deg: float, lap_seconds: float) -> None:
        entry_lat = (finish.min_lat + finish.max_lat) / 2.0
        self.center_lat = entry_lat + radius_deg
        self.center_lng = (finish.min_lng + finish.max_lng) / 2.0
        self.radius_deg = radius_deg
        self.lap_seconds = lap_seconds
        self.started_at = time.monotonic()

    def position(self) -> tuple[float, float]:
        phase = ((time.monotonic() - self.started_at) / self.lap_seconds) * 2.0 * math.pi
        # phase 0 is the southernmost point, inside the finish line.
        lat = self.center_lat - self.radius_deg * math.cos(phase)
        lng_scale = math.cos(math.radians(self.center_lat))
        lng = self.center_lng + (self.radius_deg / lng_scale) * math.sin(phase)
        return lat, lng


def _battery_line(rng: random.Random) -> str:
    voltage = 12.6 + rng.uniform(-0.3, 0.1)
    current = 5.0 + rng.uniform(-2.0, 2.0)
    return f"{voltage:.2f},{current:.2f},{voltage * current:.1f}"


async def _serve_link(
    host: str,
    port: int,
    make_line: Callable[[], str],
    period: float,
    rng: random.Random,
    garbage_frac: float,
) -> asyncio.AbstractServer:
    async def handle(_reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        peer = writer.get_extra_info("peername")
        _LOG.info("Client connected to :%d from %s", port, peer)
        try:
            while True:
                line = "12.6,oops" if rng.random() < garbage_frac else make_line()
                writer.write(f"{line}\r\n".encode("ascii"))
                await writer.drain()
                await asyncio.sleep(period)
        except (ConnectionError, OSError):
            _LOG.info("Client on :%d went away", port)
        finally:
            writer.close()

    server = await asyncio.start_server(handle, host, port)
    _LOG.info("Serving on %s:%d", host, port)
    return server


async def _run(args: argparse.Namespace) -> None:
    rng = random.Random(args.random_seed)
    track = _Track(FinishLineGeofence(), args.radius_deg, args.lap_seconds)
    radius_km = haversine_km(track.center_lat, track.center_lng, track.center_lat + args.radius_deg, track.center_lng)
    lap_km = 2.0 * math.pi * radius_km
    _LOG.info("Track length %.3f km, expected speed %.1f km/h", lap_km, lap_km / (args.lap_seconds / 3600.0))

    def gps_line() -> str:
        lat, lng = track.position()
        return f"{lat:.7f},{lng:.7f}"

    period = 1.0 / args.rate_hz
    garbage = args.garbage_pct / 100.0
    servers = [
        await _serve_link(args.host, args.battery_port, lambda: _battery_line(rng), period, rng, garbage),
        await _serve_link(args.host, args.gps_port, gps_line, period, rng, garbage),
    ]
    try:
        await asyncio.gather(*(server.serve_forever() for server in servers))
    finally:
        for server in servers:
            server.close()


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    if args.rate_hz <= 0 or args.lap_seconds <= 0 or args.radius_deg <= 0:
        print("rate-hz, lap-seconds and radius-deg must be > 0", file=sys.stderr)
        return 1
    try:
        asyncio.run(_run(args))
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
