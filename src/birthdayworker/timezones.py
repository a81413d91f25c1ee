"""Conversion of UTC instants into member-local calendar time."""

from datetime import datetime, timezone as dt_timezone
from zoneinfo import ZoneInfo

from birthdayworker.errors import InvalidTimezoneError
from birthdayworker.models import LocalTime


def to_utc(instant: datetime) -> datetime:
    """Return ``instant`` as an aware UTC datetime.

    Naive datetimes are taken to already be in UTC.
    """
    if instant.tzinfo is None:
        return instant.replace(tzinfo=dt_timezone.utc)
    return instant.astimezone(dt_timezone.utc)


def resolve_timezone(timezone: str) -> ZoneInfo:
    """Load the tz database entry for an IANA identifier.

    Args:
        timezone: IANA timezone name (e.g., "America/New_York").

    Returns:
        The matching ZoneInfo.

    Raises:
        InvalidTimezoneError: If the identifier cannot be resolved.
    """
    if not isinstance(timezone, str) or not timezone:
        raise InvalidTimezoneError(f"Invalid timezone: {timezone!r}")
    try:
        return ZoneInfo(timezone)
    except Exception as e:
        raise InvalidTimezoneError(f"Invalid timezone: {timezone}") from e


def validate_timezone(timezone: str) -> None:
    """Validate that a timezone string is valid.

    Raises:
        InvalidTimezoneError: If timezone is invalid.
    """
    resolve_timezone(timezone)


def localize(instant: datetime, timezone: str) -> LocalTime:
    """Localize a UTC instant to the calendar date and hour of a timezone.

    Args:
        instant: Reference instant (naive values are treated as UTC).
        timezone: IANA timezone name.

    Returns:
        LocalTime with the local year, month, day and hour.

    Raises:
        InvalidTimezoneError: If the timezone cannot be resolved.
    """
    local = to_utc(instant).astimezone(resolve_timezone(timezone))
    return LocalTime(local.year, local.month, local.day, local.hour)
