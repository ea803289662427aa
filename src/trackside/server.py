"""Telemetry server: wires links, state store, geo metrics and viewers."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from aiohttp import WSMsgType, web

from trackside.config import TracksideConfig
from trackside.geo import GeoMetricsEngine
from trackside.ingestion.link import LinkIngestor, LinkOpener, open_serial_link
from trackside.models._base import utcnow
from trackside.models.readings import LinkKind
from trackside.state.store import StateStore
from trackside.viewers import ConnectionManager

_logger = logging.getLogger(__name__)


class TelemetryServer:
    """Runs one ingestor task per link and a websocket endpoint for viewers.

    Usage::

        async with TelemetryServer(TracksideConfig.from_env()) as server:
            await stop_event.wait()
    """

    def __init__(
        self,
        config: TracksideConfig,
        *,
        opener: LinkOpener = open_serial_link,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._config = config
        self._store = StateStore(config.link_ids)
        self._engine = GeoMetricsEngine(config.finish_line)
        self._ingestors = [
            LinkIngestor(
                link,
                self._store,
                engine=self._engine if link.kind == LinkKind.GPS else None,
                opener=opener,
                clock=clock,
                read_error_backoff=config.read_error_backoff,
            )
            for link in config.links
        ]
        self._viewers = ConnectionManager(self._store, interval=config.broadcast_interval)
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None
        self._running = False

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> TelemetryServer:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    @property
    def config(self) -> TracksideConfig:
        return self._config

    @property
    def store(self) -> StateStore:
        return self._store

    @property
    def engine(self) -> GeoMetricsEngine:
        return self._engine

    @property
    def viewers(self) -> ConnectionManager:
        return self._viewers

    @property
    def ingestors(self) -> tuple[LinkIngestor, ...]:
        return tuple(self._ingestors)

    @property
    def is_running(self) -> bool:
        return self._running

    def ingestor(self, link_id: str) -> LinkIngestor:
        for ingestor in self._ingestors:
            if ingestor.link.link_id == link_id:
                return ingestor
        raise KeyError(link_id)

    # ------------------------------------------------------------------
    # HTTP / websocket surface
    # ------------------------------------------------------------------

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get(self._config.ws_path, self._handle_viewer)
        if self._config.ws_path != "/health":
            app.router.add_get("/health", self._handle_health)
        app.on_shutdown.append(self._on_shutdown)
        return app

    async def _handle_viewer(self, request: web.Request) -> web.StreamResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        viewer = self._viewers.register(ws, remote=request.remote)
        try:
            # Viewers only receive; inbound frames are drained and ignored.
            async for msg in ws:
                if msg.type == WSMsgType.ERROR:
                    _logger.warning("Viewer %s connection error: %s", viewer.viewer_id, ws.exception())
        finally:
            viewer.close()
        return ws

    async def _handle_health(self, _request: web.Request) -> web.Response:
        return web.json_response(
            {
                "status": "ok",
                "viewers": len(self._viewers),
                "links": self._store.link_status(),
                "laps": self._engine.lap_count,
            }
        )

    async def _on_shutdown(self, _app: web.Application) -> None:
        await self._viewers.close_all()

    # ------------------------------------------------------------------
    # Start / stop
    # ------------------------------------------------------------------

    def start_ingestors(self) -> list[asyncio.Task[None]]:
        return [ingestor.start() for ingestor in self._ingestors]

    async def start(self) -> None:
        """Start link ingestion and the viewer server (non-blocking)."""
        if self._running:
            _logger.warning("Telemetry server already running")
            return

        self.start_ingestors()

        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._config.host, self._config.port)
        await self._site.start()

        self._running = True
        _logger.info(
            "Server running on %s:%d (viewers at %s)",
            self._config.host,
            self._config.port,
            self._config.ws_path,
        )

    async def stop(self) -> None:
        """Close every link and viewer connection without draining them."""
        _logger.info("Stopping telemetry server...")
        await asyncio.gather(*(ingestor.close() for ingestor in self._ingestors))
        await self._viewers.close_all()

        if self._site is not None:
            await self._site.stop()
            self._site = None
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

        self._running = False
        _logger.info("Telemetry server stopped")
