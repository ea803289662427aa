from __future__ import annotations

import pytest

from trackside.config import DEFAULT_LINKS, LinkConfig, TracksideConfig, parse_finish_line, parse_links
from trackside.exceptions import TracksideConfigError
from trackside.models import FinishLineGeofence, LinkKind

_ENV_KEYS = (
    "TRACKSIDE_LINKS",
    "TRACKSIDE_HOST",
    "TRACKSIDE_PORT",
    "TRACKSIDE_WS_PATH",
    "TRACKSIDE_BROADCAST_INTERVAL",
    "TRACKSIDE_READ_ERROR_BACKOFF",
    "TRACKSIDE_FINISH_LINE",
    "TRACKSIDE_DEBUG",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults_match_original_deployment() -> None:
    config = TracksideConfig.from_env()

    assert config.link_ids == ("COM4", "COM10", "COM7")
    assert [link.kind for link in config.links] == [LinkKind.BATTERY, LinkKind.BATTERY, LinkKind.GPS]
    assert all(link.rate == 9600 for link in DEFAULT_LINKS)
    assert config.port == 3001
    assert config.broadcast_interval == 1.0
    assert config.finish_line == FinishLineGeofence()
    assert config.debug is False


def test_link_spec_keeps_colons_in_path() -> None:
    link = LinkConfig.parse("gps=GPS:115200:socket://localhost:7002")

    assert link.link_id == "gps"
    assert link.kind == LinkKind.GPS
    assert link.rate == 115200
    assert link.transport_path == "socket://localhost:7002"


@pytest.mark.parametrize(
    "spec",
    ["COM4", "COM4=battery:9600", "COM4=battery:fast:COM4", "COM4=compass:9600:COM4", "=battery:9600:COM4"],
)
def test_bad_link_specs_raise_config_error(spec: str) -> None:
    with pytest.raises(TracksideConfigError):
        LinkConfig.parse(spec)


def test_duplicate_link_ids_rejected_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TRACKSIDE_LINKS", "a=battery:9600:COM4,a=gps:9600:COM7")

    with pytest.raises(TracksideConfigError, match="Duplicate link_id"):
        TracksideConfig.from_env()


def test_duplicate_link_ids_rejected_when_passed_directly() -> None:
    links = (LinkConfig.parse("a=battery:9600:COM4"), LinkConfig.parse("a=gps:9600:COM7"))

    with pytest.raises(TracksideConfigError, match="Duplicate link_id"):
        TracksideConfig(links=links)


def test_parse_links_skips_empty_items() -> None:
    assert [link.link_id for link in parse_links("a=battery:9600:COM4,, b=gps:9600:COM7")] == ["a", "b"]


def test_env_values_and_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TRACKSIDE_LINKS", "bat=battery:9600:/dev/ttyUSB0, gps=gps:4800:/dev/ttyUSB1")
    monkeypatch.setenv("TRACKSIDE_PORT", "8080")
    monkeypatch.setenv("TRACKSIDE_BROADCAST_INTERVAL", "0.5")
    monkeypatch.setenv("TRACKSIDE_FINISH_LINE", "1.0,2.0,3.0,4.0")
    monkeypatch.setenv("TRACKSIDE_DEBUG", "yes")

    config = TracksideConfig.from_env(port=9000)

    assert config.link_ids == ("bat", "gps")
    assert config.links[1].rate == 4800
    assert config.port == 9000
    assert config.broadcast_interval == 0.5
    assert config.finish_line.contains(1.5, 3.5)
    assert config.debug is True


def test_non_numeric_env_raises_config_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TRACKSIDE_PORT", "http")

    with pytest.raises(TracksideConfigError):
        TracksideConfig.from_env()


@pytest.mark.parametrize("value", ["1,2,3", "2,1,3,4", "a,b,c,d"])
def test_bad_finish_line(value: str) -> None:
    with pytest.raises(TracksideConfigError):
        parse_finish_line(value)


def test_non_positive_interval_rejected() -> None:
    with pytest.raises(TracksideConfigError):
        TracksideConfig(broadcast_interval=0)
