"""
Timestamp normalization for display.

Values reach the views in several shapes: native datetimes from the ORM,
server timestamp handles, serialized ``{seconds, nanoseconds}`` pairs embedded
in JSON columns, pre-formatted strings, or nothing at all. Everything here
degrades to a placeholder string instead of raising.
"""
import logging
from datetime import date, datetime, timezone
from typing import Any, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .config import settings

logger = logging.getLogger(__name__)

EMPTY_TIME = ""
EMPTY_DATE = "N/A"
INVALID_LABEL = "Invalid time"

TIME_FORMAT = "%I:%M %p"           # 09:05 AM
DATE_FORMAT = "%B %d, %Y"          # April 15, 2024
DATETIME_FORMAT = "%B %d, %Y at %I:%M %p"

_HANDLE_METHODS = ("to_datetime", "ToDatetime", "toDate")


class _Unparseable(Exception):
    pass


def _display_zone():
    try:
        return ZoneInfo(settings.DISPLAY_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown DISPLAY_TIMEZONE %r, using UTC", settings.DISPLAY_TIMEZONE)
        return timezone.utc


def to_timestamp_pair(value: datetime) -> dict:
    """Serialize a datetime into the ``{seconds, nanoseconds}`` shape."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    seconds = int(value.timestamp())
    return {"seconds": seconds, "nanoseconds": value.microsecond * 1000}


def _from_millis(millis: float) -> datetime:
    return datetime.fromtimestamp(millis / 1000.0, tz=timezone.utc)


def _pair_parts(value: Mapping):
    for seconds_key, nanos_key in (("seconds", "nanoseconds"), ("_seconds", "_nanoseconds")):
        if seconds_key in value:
            return value[seconds_key], value.get(nanos_key, 0) or 0
    return None


def to_datetime(value: Any) -> Optional[datetime]:
    """
    Convert any recognized shape to an aware datetime.

    Returns None for absent values and for strings, which are treated as
    already formatted. Raises ``_Unparseable`` for anything else that cannot
    be interpreted; the public formatters turn that into the fallback label.
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    for method in _HANDLE_METHODS:
        converter = getattr(value, method, None)
        if callable(converter):
            try:
                return to_datetime(converter())
            except Exception as exc:
                raise _Unparseable(str(exc)) from exc
    if isinstance(value, Mapping):
        parts = _pair_parts(value)
        if parts is None:
            raise _Unparseable(f"mapping without seconds: {sorted(value)}")
        seconds, nanoseconds = parts
        try:
            return _from_millis(float(seconds) * 1000 + float(nanoseconds) / 1e6)
        except (TypeError, ValueError, OverflowError, OSError) as exc:
            raise _Unparseable(str(exc)) from exc
    if isinstance(value, bool):
        raise _Unparseable("boolean")
    if isinstance(value, (int, float)):
        try:
            return _from_millis(float(value))
        except (ValueError, OverflowError, OSError) as exc:
            raise _Unparseable(str(exc)) from exc
    raise _Unparseable(type(value).__name__)


def _format(value: Any, fmt: str, empty: str) -> str:
    if isinstance(value, str) and value:
        return value
    try:
        moment = to_datetime(value)
    except _Unparseable as exc:
        logger.debug("Unable to format timestamp %r: %s", value, exc)
        return INVALID_LABEL
    if moment is None:
        return empty
    try:
        return moment.astimezone(_display_zone()).strftime(fmt)
    except (ValueError, OverflowError, OSError) as exc:
        logger.debug("Unable to format timestamp %r: %s", value, exc)
        return INVALID_LABEL


def format_time(value: Any) -> str:
    """Time of day, e.g. ``"09:05 AM"``; empty string when absent."""
    return _format(value, TIME_FORMAT, EMPTY_TIME)


def format_date(value: Any) -> str:
    """Calendar date, e.g. ``"April 15, 2024"``; ``"N/A"`` when absent."""
    if isinstance(value, date) and not isinstance(value, datetime):
        # Plain dates carry no zone; never shift them
        return value.strftime(DATE_FORMAT)
    return _format(value, DATE_FORMAT, EMPTY_DATE)


def format_datetime(value: Any) -> str:
    return _format(value, DATETIME_FORMAT, EMPTY_DATE)
