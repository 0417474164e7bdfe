"""
Shared pydantic base and helpers for request/response models.

Wire format is camelCase; Python attributes stay snake_case.
"""
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


HOSTAWAY_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Union[str, datetime]) -> datetime:
    """
    Parse a channel timestamp into an aware UTC datetime.

    Accepts "YYYY-MM-DD HH:MM:SS" (the channel's native format) and ISO-8601,
    with or without a trailing "Z". Naive values are taken to be UTC.

    Raises:
        ValueError: If the value matches neither format
    """
    if isinstance(value, datetime):
        return ensure_utc(value)

    text = value.strip()
    try:
        parsed = datetime.strptime(text, HOSTAWAY_TIMESTAMP_FORMAT)
    except ValueError:
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    return ensure_utc(parsed)


def parse_date_bound(value: Optional[Union[str, date, datetime]], end: bool = False) -> Optional[datetime]:
    """
    Turn a startDate/endDate query value into an inclusive datetime bound.

    A bare date ("2024-12-31") as an end bound covers the whole day.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        day = value
    elif len(value.strip()) == 10:
        day = date.fromisoformat(value.strip())
    else:
        return parse_timestamp(value)

    bound = datetime.combine(day, time.min, tzinfo=timezone.utc)
    if end:
        bound = bound + timedelta(days=1) - timedelta(microseconds=1)
    return bound
