"""Data models for the birthday worker."""

from dataclasses import dataclass
from datetime import date, datetime
from typing import NamedTuple, Optional

from birthdayworker.errors import ValidationError


class MonthDay(NamedTuple):
    """A year-independent calendar day."""

    month: int
    day: int

    def as_key(self) -> str:
        """Return the day as an ``MM-DD`` string."""
        return f"{self.month:02d}-{self.day:02d}"


class LocalTime(NamedTuple):
    """Calendar date and hour observed in a particular timezone."""

    year: int
    month: int
    day: int
    hour: int

    @property
    def month_day(self) -> MonthDay:
        return MonthDay(self.month, self.day)


@dataclass(frozen=True)
class Member:
    """A person whose birthday is tracked.

    Only the month and day of ``anniversary`` are meaningful for matching;
    the year is kept because storage records the full birth date.
    ``contact`` is interpreted by the delivery channel (an email address,
    a Telegram chat id or a webhook recipient).
    """

    name: str
    contact: str
    anniversary: date
    timezone: str = "UTC"
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def month_day(self) -> MonthDay:
        return MonthDay(self.anniversary.month, self.anniversary.day)

    def validate(self) -> None:
        """Validate the member data.

        Raises:
            ValidationError: If validation fails.
        """
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValidationError("name must be a non-empty string")
        if not isinstance(self.contact, str) or not self.contact.strip():
            raise ValidationError("contact must be a non-empty string")
        if not isinstance(self.anniversary, date) or isinstance(
            self.anniversary, datetime
        ):
            raise ValidationError("anniversary must be a date")
        if not isinstance(self.timezone, str) or not self.timezone:
            raise ValidationError("timezone must be a non-empty string")

    def __post_init__(self) -> None:
        """Validate after initialization."""
        self.validate()

    def describe(self) -> str:
        """Short human readable identification used in log lines."""
        return f"{self.name} <{self.contact}> (id={self.id})"
