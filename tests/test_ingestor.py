from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
import serial

from trackside.config import LinkConfig
from trackside.exceptions import LinkUnavailableError
from trackside.geo import GeoMetricsEngine
from trackside.ingestion.link import LinkIngestor
from trackside.models import LinkKind
from trackside.state.store import StateStore

_BATTERY = LinkConfig(link_id="COM4", transport_path="COM4", kind=LinkKind.BATTERY)
_GPS = LinkConfig(link_id="COM7", transport_path="COM7", kind=LinkKind.GPS)


class _FakeWriter:
    def __init__(self) -> None:
        self.closed = False

    def close(self) -> None:
        self.closed = True


class _ScriptedReader:
    """Returns queued lines (or raises queued exceptions), then EOF."""

    def __init__(self, items: list[bytes | Exception]) -> None:
        self._items = list(items)
        self.reads = 0

    async def readline(self) -> bytes:
        self.reads += 1
        if not self._items:
            return b""
        item = self._items.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def _opener(reader: Any, writer: _FakeWriter | None = None) -> Any:
    async def open_link(_link: LinkConfig) -> tuple[Any, Any]:
        return reader, writer

    return open_link


def _ticking_clock() -> Any:
    ticks: Iterator[int] = iter(range(10_000))
    start = datetime(2026, 1, 1, tzinfo=UTC)
    return lambda: start + timedelta(seconds=next(ticks))


def test_battery_line_end_to_end() -> None:
    store = StateStore(["COM4"])
    ingestor = LinkIngestor(_BATTERY, store)

    assert ingestor.handle_line("12.6,5.0,63.0\r\n")

    snapshot = store.read()
    assert snapshot.battery is not None
    assert snapshot.battery.to_wire() == {"voltage": 12.6, "current": 5.0, "power": 63.0}
    assert snapshot.link_status == {"COM4": True}


def test_malformed_line_leaves_previous_value() -> None:
    store = StateStore(["COM4"])
    ingestor = LinkIngestor(_BATTERY, store)
    ingestor.handle_line("12.6,5.0,63.0")

    assert not ingestor.handle_line("12.6,garbage,63.0")
    assert not ingestor.handle_line("12.6,5.0")

    snapshot = store.read()
    assert snapshot.battery is not None
    assert snapshot.battery.current == 5.0
    assert ingestor.lines_received == 3
    assert ingestor.lines_rejected == 2


def test_malformed_first_line_keeps_link_down() -> None:
    store = StateStore(["COM4"])
    ingestor = LinkIngestor(_BATTERY, store)

    ingestor.handle_line("not,a,number")

    assert store.read().link_status == {"COM4": False}
    assert store.read().battery is None


def test_blank_lines_are_skipped_silently() -> None:
    ingestor = LinkIngestor(_BATTERY, StateStore())

    assert not ingestor.handle_line("\r\n")
    assert ingestor.lines_received == 0
    assert ingestor.lines_rejected == 0


def test_first_gps_fix_inside_geofence_is_not_a_lap() -> None:
    store = StateStore(["COM7"])
    ingestor = LinkIngestor(_GPS, store, engine=GeoMetricsEngine(), clock=_ticking_clock())

    ingestor.handle_line("40.7127,-74.0060")

    snapshot = store.read()
    assert snapshot.gps is not None
    assert (snapshot.gps.lat, snapshot.gps.lng) == (40.7127, -74.0060)
    assert snapshot.speed_kmh == 0.0
    assert snapshot.laps == ()
    assert snapshot.link_status == {"COM7": True}


def test_gps_entry_records_lap_and_speed_in_snapshot() -> None:
    store = StateStore(["COM7"])
    ingestor = LinkIngestor(_GPS, store, engine=GeoMetricsEngine(), clock=_ticking_clock())

    for line in ("40.7200,-74.0060", "40.7127,-74.0060", "40.7128,-74.0060"):
        ingestor.handle_line(line)

    snapshot = store.read()
    assert snapshot.lap_count == 1
    assert snapshot.laps[0].completed_at == datetime(2026, 1, 1, 0, 0, 1, tzinfo=UTC)
    assert snapshot.speed_kmh > 0


@pytest.mark.asyncio
async def test_run_reads_until_end_of_stream() -> None:
    store = StateStore(["COM4"])
    reader = asyncio.StreamReader()
    reader.feed_data(b"12.6,5.0,63.0\r\n12.7,4.0,50.8\r\n")
    reader.feed_eof()
    writer = _FakeWriter()
    ingestor = LinkIngestor(_BATTERY, store, opener=_opener(reader, writer))

    await ingestor.run()

    snapshot = store.read()
    assert snapshot.battery is not None
    assert snapshot.battery.voltage == 12.7
    assert writer.closed
    assert not ingestor.is_open


@pytest.mark.asyncio
async def test_open_failure_is_link_unavailable() -> None:
    async def failing_opener(_link: LinkConfig) -> Any:
        raise OSError("could not open port 'COM4'")

    store = StateStore(["COM4"])
    ingestor = LinkIngestor(_BATTERY, store, opener=failing_opener)

    with pytest.raises(LinkUnavailableError) as excinfo:
        await ingestor.open()
    assert excinfo.value.link_id == "COM4"

    # run() reports and returns instead of raising or retrying.
    await ingestor.run()
    assert not ingestor.is_open
    assert store.read().link_status == {"COM4": False}


@pytest.mark.asyncio
async def test_read_error_is_logged_and_reading_continues() -> None:
    store = StateStore(["COM4"])
    reader = _ScriptedReader([OSError("device reports readiness to read but returned no data"), b"12.6,5.0,63.0\n"])
    ingestor = LinkIngestor(_BATTERY, store, opener=_opener(reader), read_error_backoff=0)

    await ingestor.run()

    assert reader.reads == 3
    snapshot = store.read()
    assert snapshot.battery is not None
    assert snapshot.battery.voltage == 12.6


@pytest.mark.asyncio
async def test_repeated_read_errors_warn_once_per_outage(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG, logger="trackside.ingestion.link")
    failures: list[bytes | Exception] = [serial.SerialException("device disconnected") for _ in range(5)]
    reader = _ScriptedReader([*failures, b"12.6,5.0,63.0\n", OSError("again")])
    ingestor = LinkIngestor(_BATTERY, StateStore(["COM4"]), opener=_opener(reader), read_error_backoff=0)

    await ingestor.run()

    read_errors = [r for r in caplog.records if r.getMessage().startswith("Read error")]
    assert len(read_errors) == 6
    # One warning for the first outage, one for the second after recovery.
    assert [r.levelno for r in read_errors].count(logging.WARNING) == 2
    assert any("recovered after 5 failed" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_serial_exception_on_open_is_link_unavailable() -> None:
    async def failing_opener(_link: LinkConfig) -> Any:
        raise serial.SerialException("could not open port 'COM4': FileNotFoundError")

    ingestor = LinkIngestor(_BATTERY, StateStore(["COM4"]), opener=failing_opener)

    with pytest.raises(LinkUnavailableError) as excinfo:
        await ingestor.open()
    assert isinstance(excinfo.value.__cause__, serial.SerialException)


@pytest.mark.asyncio
async def test_close_cancels_blocked_read_without_draining() -> None:
    reader = asyncio.StreamReader()
    writer = _FakeWriter()
    ingestor = LinkIngestor(_BATTERY, StateStore(), opener=_opener(reader, writer))

    task = ingestor.start()
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    assert ingestor.is_open

    await ingestor.close()

    assert task.done()
    assert writer.closed
    assert not ingestor.is_open


@pytest.mark.asyncio
async def test_slow_link_does_not_block_other_ingestors() -> None:
    store = StateStore(["COM4", "COM7"])
    stalled = asyncio.StreamReader()
    gps_reader = asyncio.StreamReader()
    gps_reader.feed_data(b"40.7200,-74.0060\n")
    gps_reader.feed_eof()

    battery = LinkIngestor(_BATTERY, store, opener=_opener(stalled))
    gps = LinkIngestor(_GPS, store, engine=GeoMetricsEngine(), opener=_opener(gps_reader))

    battery.start()
    await asyncio.wait_for(gps.start(), timeout=1.0)

    assert store.read().link_status == {"COM4": False, "COM7": True}
    await battery.close()
