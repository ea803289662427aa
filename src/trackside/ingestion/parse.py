"""Link line parser.

Decodes one line of raw sensor text into a typed reading. Parsing is pure:
it never touches the state store, and a malformed line raises
:class:`~trackside.exceptions.ParseError` instead of producing a partial
reading.

Wire format (positional, comma separated, no checksum)::

    battery: <voltage>,<current>,<power>
    gps:     <lat>,<lng>
"""

from __future__ import annotations

import math
from datetime import datetime

from trackside._constants import BATTERY_FIELD_COUNT, GPS_FIELD_COUNT
from trackside.exceptions import ParseError
from trackside.models._base import utcnow
from trackside.models.readings import BatteryReading, GpsFix, LinkKind

_FIELD_COUNTS: dict[LinkKind, int] = {
    LinkKind.BATTERY: BATTERY_FIELD_COUNT,
    LinkKind.GPS: GPS_FIELD_COUNT,
}


def is_blank_line(line: str) -> bool:
    return not line.strip()


def _split_fields(line: str, kind: LinkKind, link_id: str) -> list[float]:
    text = line.strip()
    parts = text.split(",")
    expected = _FIELD_COUNTS[kind]
    if len(parts) != expected:
        raise ParseError(
            f"Expected {expected} fields for {kind} line, got {len(parts)}: {text!r}",
            link_id=link_id,
            line=line,
        )

    values: list[float] = []
    for index, part in enumerate(parts):
        try:
            value = float(part)
        except ValueError as exc:
            raise ParseError(
                f"Field {index} of {kind} line is not numeric: {part!r}",
                link_id=link_id,
                line=line,
            ) from exc
        if not math.isfinite(value):
            raise ParseError(
                f"Field {index} of {kind} line is not finite: {part!r}",
                link_id=link_id,
                line=line,
            )
        values.append(value)
    return values


def parse_battery_line(line: str, *, link_id: str = "") -> BatteryReading:
    voltage, current, power = _split_fields(line, LinkKind.BATTERY, link_id)
    return BatteryReading(voltage=voltage, current=current, power=power, source_link=link_id)


def parse_gps_line(line: str, *, link_id: str = "", observed_at: datetime | None = None) -> GpsFix:
    lat, lng = _split_fields(line, LinkKind.GPS, link_id)
    return GpsFix(lat=lat, lng=lng, observed_at=observed_at or utcnow())


def parse_line(
    line: str,
    kind: LinkKind | str,
    *,
    link_id: str = "",
    observed_at: datetime | None = None,
) -> BatteryReading | GpsFix:
    """Parse *line* according to the link *kind*.

    Raises
    ------
    ParseError
        Wrong field count, or a field that is not a finite number.
    """
    link_kind = LinkKind(kind)
    if link_kind == LinkKind.BATTERY:
        return parse_battery_line(line, link_id=link_id)
    return parse_gps_line(line, link_id=link_id, observed_at=observed_at)
