"""Base model for trackside data types.

Every model inherits from :class:`TracksideBaseModel` which provides:

* ``frozen=True`` so readings cannot be mutated after parsing.
* ``alias_generator=to_camel`` so ``model_dump(by_alias=True)`` yields
  the camelCase keys viewers expect, while Python code keeps snake_case.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict
from pydantic.alias_generators import to_camel


def ensure_utc(value: Any) -> Any:
    """Attach UTC to naive datetimes; leave everything else to pydantic."""
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


UtcDatetime = Annotated[datetime, BeforeValidator(ensure_utc)]
"""Annotated type that treats naive datetimes as UTC."""


def utcnow() -> datetime:
    return datetime.now(UTC)


class TracksideBaseModel(BaseModel):
    """Base for trackside models."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
    )
