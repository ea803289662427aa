"""Server configuration for trackside."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pydantic import ValidationError

from trackside._constants import (
    DEFAULT_BAUD_RATE,
    DEFAULT_BROADCAST_INTERVAL_S,
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_READ_ERROR_BACKOFF_S,
    DEFAULT_WS_PATH,
)
from trackside.exceptions import TracksideConfigError
from trackside.models.geofence import FinishLineGeofence
from trackside.models.readings import LinkKind


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _to_number(name: str, value: str, cast: type[int] | type[float]) -> Any:
    try:
        return cast(value)
    except ValueError as exc:
        raise TracksideConfigError(f"{name} must be a number, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class LinkConfig:
    """One physical sensor link.

    Parameters
    ----------
    link_id : str
        Identifier reported in the viewers' ``status`` map.
    transport_path : str
        Serial device (``/dev/ttyUSB0``, ``COM4``) or any pyserial URL
        such as ``socket://localhost:7001``.
    kind : LinkKind
        Line format carried by the link.
    rate : int
        Baud rate.
    """

    link_id: str
    transport_path: str
    kind: LinkKind
    rate: int = DEFAULT_BAUD_RATE

    def __post_init__(self) -> None:
        if not self.link_id.strip():
            raise TracksideConfigError("link_id must be non-empty")
        if not self.transport_path.strip():
            raise TracksideConfigError(f"Link {self.link_id}: transport_path must be non-empty")
        if self.rate <= 0:
            raise TracksideConfigError(f"Link {self.link_id}: rate must be positive, got {self.rate}")
        try:
            object.__setattr__(self, "kind", LinkKind(self.kind))
        except ValueError as exc:
            raise TracksideConfigError(f"Link {self.link_id}: unknown kind {self.kind!r}") from exc

    @classmethod
    def parse(cls, spec: str) -> LinkConfig:
        """Parse ``<link_id>=<kind>:<rate>:<transport_path>``.

        The transport path is taken verbatim after the second colon, so
        URLs like ``socket://host:7001`` are accepted.
        """
        link_id, sep, rest = spec.strip().partition("=")
        if not sep:
            raise TracksideConfigError(f"Link spec {spec!r} is missing '<link_id>='")
        parts = rest.split(":", 2)
        if len(parts) != 3:
            raise TracksideConfigError(f"Link spec {spec!r} must look like <link_id>=<kind>:<rate>:<path>")
        kind, rate, path = parts
        return cls(
            link_id=link_id.strip(),
            transport_path=path.strip(),
            kind=kind.strip().lower(),  # type: ignore[arg-type]
            rate=_to_number("rate", rate.strip(), int),
        )


DEFAULT_LINKS: tuple[LinkConfig, ...] = (
    LinkConfig(link_id="COM4", transport_path="COM4", kind=LinkKind.BATTERY),
    LinkConfig(link_id="COM10", transport_path="COM10", kind=LinkKind.BATTERY),
    LinkConfig(link_id="COM7", transport_path="COM7", kind=LinkKind.GPS),
)


def parse_links(value: str) -> tuple[LinkConfig, ...]:
    return tuple(LinkConfig.parse(item) for item in value.split(",") if item.strip())


def parse_finish_line(value: str) -> FinishLineGeofence:
    """Parse ``min_lat,max_lat,min_lng,max_lng``."""
    parts = [part.strip() for part in value.split(",")]
    if len(parts) != 4:
        raise TracksideConfigError(f"Finish line must be min_lat,max_lat,min_lng,max_lng, got {value!r}")
    min_lat, max_lat, min_lng, max_lng = (_to_number("finish line bound", part, float) for part in parts)
    try:
        return FinishLineGeofence(min_lat=min_lat, max_lat=max_lat, min_lng=min_lng, max_lng=max_lng)
    except ValidationError as exc:
        raise TracksideConfigError(f"Invalid finish line {value!r}: {exc}") from exc


@dataclasses.dataclass(frozen=True)
class TracksideConfig:
    """Server configuration.

    Parameters
    ----------
    links : tuple of LinkConfig
        Sensor links to ingest. One ingestor task runs per link.
    host : str
        Interface the viewer websocket server binds to.
    port : int
        TCP port of the viewer websocket server.
    ws_path : str
        HTTP path viewers connect to.
    broadcast_interval : float
        Seconds between two pushes to the same viewer.
    read_error_backoff : float
        Seconds to wait after a failed link read before reading again.
    finish_line : FinishLineGeofence
        Lap trigger zone.
    debug : bool
        Enable debug logging in the CLI.
    """

    links: tuple[LinkConfig, ...] = DEFAULT_LINKS
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    ws_path: str = DEFAULT_WS_PATH
    broadcast_interval: float = DEFAULT_BROADCAST_INTERVAL_S
    read_error_backoff: float = DEFAULT_READ_ERROR_BACKOFF_S
    finish_line: FinishLineGeofence = dataclasses.field(default_factory=FinishLineGeofence)
    debug: bool = False

    def __post_init__(self) -> None:
        if self.broadcast_interval <= 0:
            raise TracksideConfigError(f"broadcast_interval must be positive, got {self.broadcast_interval}")
        if self.read_error_backoff < 0:
            raise TracksideConfigError(f"read_error_backoff must be >= 0, got {self.read_error_backoff}")
        if not self.ws_path.startswith("/"):
            raise TracksideConfigError(f"ws_path must start with '/', got {self.ws_path!r}")
        object.__setattr__(self, "links", tuple(self.links))
        seen: set[str] = set()
        for link in self.links:
            if link.link_id in seen:
                raise TracksideConfigError(f"Duplicate link_id {link.link_id!r}")
            seen.add(link.link_id)

    @property
    def link_ids(self) -> tuple[str, ...]:
        return tuple(link.link_id for link in self.links)

    @classmethod
    def from_env(cls, **overrides: Any) -> TracksideConfig:
        """Create configuration from ``TRACKSIDE_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        links_env = env.get("TRACKSIDE_LINKS")
        if links_env is not None and "links" not in overrides:
            config_kwargs["links"] = parse_links(links_env)

        host_env = env.get("TRACKSIDE_HOST")
        if host_env is not None:
            config_kwargs["host"] = host_env

        path_env = env.get("TRACKSIDE_WS_PATH")
        if path_env is not None:
            config_kwargs["ws_path"] = path_env

        port_env = env.get("TRACKSIDE_PORT")
        if port_env is not None and "port" not in overrides:
            config_kwargs["port"] = _to_number("TRACKSIDE_PORT", port_env, int)

        interval_env = env.get("TRACKSIDE_BROADCAST_INTERVAL")
        if interval_env is not None and "broadcast_interval" not in overrides:
            config_kwargs["broadcast_interval"] = _to_number("TRACKSIDE_BROADCAST_INTERVAL", interval_env, float)

        backoff_env = env.get("TRACKSIDE_READ_ERROR_BACKOFF")
        if backoff_env is not None and "read_error_backoff" not in overrides:
            config_kwargs["read_error_backoff"] = _to_number("TRACKSIDE_READ_ERROR_BACKOFF", backoff_env, float)

        finish_env = env.get("TRACKSIDE_FINISH_LINE")
        if finish_env is not None and "finish_line" not in overrides:
            config_kwargs["finish_line"] = parse_finish_line(finish_env)

        if "debug" not in overrides:
            config_kwargs["debug"] = _env_bool(env.get("TRACKSIDE_DEBUG"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
