"""Per-link ingestion.

A :class:`LinkIngestor` owns one physical link: it opens the transport,
reads newline-delimited ASCII lines forever, parses them and merges the
resulting readings into the :class:`~trackside.state.store.StateStore`.

Failures never leave the ingestor's own task:

* open failure -> :class:`LinkUnavailableError`, logged, link stays closed
* read failure -> :class:`LinkIOError`, logged, reading continues
* malformed line -> :class:`ParseError`, logged, line dropped
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

import serial
import serial_asyncio

from trackside._constants import DEFAULT_READ_ERROR_BACKOFF_S
from trackside.config import LinkConfig
from trackside.exceptions import LinkIOError, LinkUnavailableError, ParseError
from trackside.geo import GeoMetricsEngine
from trackside.ingestion.parse import is_blank_line, parse_line
from trackside.models._base import utcnow
from trackside.models.readings import BatteryReading, GpsFix
from trackside.state.events import SnapshotUpdate
from trackside.state.store import StateStore

_logger = logging.getLogger(__name__)

LinkStreams = tuple[asyncio.StreamReader, asyncio.StreamWriter | None]
LinkOpener = Callable[[LinkConfig], Awaitable[LinkStreams]]


async def open_serial_link(link: LinkConfig) -> LinkStreams:
    """Open *link* with pyserial-asyncio.

    ``transport_path`` may be a device name or any pyserial URL.
    """
    return await serial_asyncio.open_serial_connection(url=link.transport_path, baudrate=link.rate)


class LinkIngestor:
    """Reads one link and feeds parsed readings into the state store."""

    def __init__(
        self,
        link: LinkConfig,
        store: StateStore,
        *,
        engine: GeoMetricsEngine | None = None,
        opener: LinkOpener = open_serial_link,
        clock: Callable[[], datetime] = utcnow,
        read_error_backoff: float = DEFAULT_READ_ERROR_BACKOFF_S,
    ) -> None:
        self._link = link
        self._store = store
        self._engine = engine
        self._opener = opener
        self._clock = clock
        self._read_error_backoff = read_error_backoff
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._task: asyncio.Task[None] | None = None
        self._lines_received = 0
        self._lines_rejected = 0

    @property
    def link(self) -> LinkConfig:
        return self._link

    @property
    def is_open(self) -> bool:
        return self._reader is not None

    @property
    def lines_received(self) -> int:
        return self._lines_received

    @property
    def lines_rejected(self) -> int:
        return self._lines_rejected

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Open the underlying transport.

        Raises
        ------
        LinkUnavailableError
            The transport could not be opened.
        """
        if self._reader is not None:
            return
        link = self._link
        _logger.debug(
            "Opening link %s path=%s rate=%d kind=%s",
            link.link_id,
            link.transport_path,
            link.rate,
            link.kind,
        )
        try:
            self._reader, self._writer = await self._opener(link)
        except (serial.SerialException, OSError, ValueError) as exc:
            raise LinkUnavailableError(
                f"Cannot open {link.transport_path}: {exc}",
                link_id=link.link_id,
            ) from exc
        _logger.info("Successfully opened %s (%s)", link.transport_path, link.link_id)

    def start(self) -> asyncio.Task[None]:
        """Run the ingestor as a background task."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name=f"trackside-link-{self._link.link_id}")
        return self._task

    async def run(self) -> None:
        """Open the link and read it until end of stream or cancellation."""
        try:
            await self.open()
        except LinkUnavailableError as exc:
            _logger.error("Link %s unavailable: %s", self._link.link_id, exc)
            return
        try:
            await self._read_loop()
        finally:
            self._close_transport()

    async def close(self) -> None:
        """Stop reading and close the transport without draining it."""
        task = self._task
        self._task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._close_transport()

    def _close_transport(self) -> None:
        writer = self._writer
        was_open = self._reader is not None
        self._reader = None
        self._writer = None
        if writer is not None:
            writer.close()
        if was_open:
            _logger.info("Closed link %s", self._link.link_id)

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    async def _read_loop(self) -> None:
        reader = self._reader
        if reader is None:
            return
        failures = 0
        while True:
            try:
                line = await self._read_line(reader)
            except LinkIOError as exc:
                failures += 1
                # Repeats within one outage go to debug.
                level = logging.WARNING if failures == 1 else logging.DEBUG
                _logger.log(level, "Read error on link %s (%d in a row): %s", self._link.link_id, failures, exc)
                await asyncio.sleep(self._read_error_backoff)
                continue
            if line is None:
                _logger.warning("Link %s reached end of stream; leaving it closed", self._link.link_id)
                return
            if failures:
                _logger.info("Link %s recovered after %d failed read(s)", self._link.link_id, failures)
                failures = 0
            self.handle_line(line)

    async def _read_line(self, reader: asyncio.StreamReader) -> str | None:
        try:
            raw = await reader.readline()
        except (serial.SerialException, OSError, ValueError) as exc:
            raise LinkIOError(
                f"Read from {self._link.transport_path} failed: {exc}",
                link_id=self._link.link_id,
            ) from exc
        if not raw:
            return None
        return raw.decode("ascii", errors="replace")

    def handle_line(self, line: str) -> bool:
        """Parse one line and merge it into the store.

        Returns ``True`` when the line produced a reading.
        """
        if is_blank_line(line):
            return False
        self._lines_received += 1
        link = self._link
        try:
            reading = parse_line(line, link.kind, link_id=link.link_id, observed_at=self._clock())
        except ParseError as exc:
            self._lines_rejected += 1
            _logger.warning("Dropping line from %s: %s", link.link_id, exc)
            return False

        _logger.debug("RX %s: %s", link.link_id, line.strip())
        self._store.merge(self._build_update(reading))
        return True

    def _build_update(self, reading: BatteryReading | GpsFix) -> SnapshotUpdate:
        if isinstance(reading, BatteryReading):
            return SnapshotUpdate(link_id=self._link.link_id, battery=reading)
        if self._engine is None:
            return SnapshotUpdate(link_id=self._link.link_id, gps=reading)
        # Speed and lap ride in the same merge as the fix they were derived from.
        geo = self._engine.observe(reading)
        return SnapshotUpdate(
            link_id=self._link.link_id,
            gps=reading,
            speed_kmh=geo.speed_kmh,
            lap=geo.lap,
        )
