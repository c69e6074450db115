"""Base model and timestamp helpers shared by hazardscout models.

Every persisted model inherits from :class:`HazardBaseModel` which
provides:

* ``alias_generator=to_camel`` so the serialized layout uses camelCase
  keys (``lastConfirmedAt``) while Python code uses snake_case fields.
* ``populate_by_name=True`` so models can be built from either form.

Timestamps are always timezone-aware UTC datetimes; see :data:`UtcDatetime`.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict
from pydantic.alias_generators import to_camel

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 1_000_000_000_000


def utcnow() -> datetime:
    return datetime.now(UTC)


def parse_timestamp(value: Any) -> Any:
    """Coerce epoch numbers (seconds **or** milliseconds) to aware UTC datetimes.

    Strings are left to pydantic's ISO-8601 parser.
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        ts = float(value)
        if ts >= _MS_THRESHOLD:
            ts /= 1000.0
        return datetime.fromtimestamp(ts, tz=UTC)
    return value


def ensure_utc(value: datetime) -> datetime:
    """Return *value* as an aware UTC datetime (naive values are assumed UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


UtcDatetime = Annotated[datetime, BeforeValidator(parse_timestamp), AfterValidator(ensure_utc)]
"""Annotated type that accepts epoch ints (seconds or ms), ISO strings and datetimes."""


class HazardBaseModel(BaseModel):
    """Base for persisted hazardscout models."""

    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
        validate_assignment=True,
    )

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible dict using the camelCase wire layout."""
        return self.model_dump(mode="json", by_alias=True)
