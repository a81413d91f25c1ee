"""Birthday matching: coarse UTC window plus exact per-member localization."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Iterator, Optional

from birthdayworker.errors import InvalidTimezoneError
from birthdayworker.models import LocalTime, Member, MonthDay
from birthdayworker.timezones import localize, to_utc


ONE_DAY = timedelta(hours=24)


@dataclass(frozen=True)
class CandidateWindow:
    """The UTC yesterday/today/tomorrow days around a reference instant.

    UTC offsets span at most -12h to +14h, so every local "today" on Earth
    falls on one of these three days.
    """

    yesterday: MonthDay
    today: MonthDay
    tomorrow: MonthDay

    def __iter__(self) -> Iterator[MonthDay]:
        return iter((self.yesterday, self.today, self.tomorrow))

    def __contains__(self, item: object) -> bool:
        return item in (self.yesterday, self.today, self.tomorrow)

    def as_keys(self) -> list[str]:
        """Return the window days as ``MM-DD`` strings."""
        return [day.as_key() for day in self]


def candidate_window(instant: datetime) -> CandidateWindow:
    """Build the candidate window for a reference instant."""
    utc = to_utc(instant)
    return CandidateWindow(
        yesterday=_month_day(utc - ONE_DAY),
        today=_month_day(utc),
        tomorrow=_month_day(utc + ONE_DAY),
    )


def _month_day(value: datetime) -> MonthDay:
    return MonthDay(value.month, value.day)


@dataclass
class MemberError:
    """A per-member problem that excluded the member from a cycle."""

    member: Member
    kind: str
    message: str


@dataclass
class MatchResult:
    """Members whose birthday is today in their own timezone."""

    instant: datetime
    members: list[Member] = field(default_factory=list)
    local_times: dict[Member, LocalTime] = field(default_factory=dict)
    errors: list[MemberError] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.members)

    def local_time(self, member: Member) -> LocalTime:
        return self.local_times[member]

    def due_at_hour(self, hour: Optional[int]) -> list[Member]:
        """Matched members whose local hour equals ``hour``.

        ``None`` disables the gate and returns every matched member.
        """
        if hour is None:
            return list(self.members)
        return [m for m in self.members if self.local_time(m).hour == hour]


class BirthdayMatcher:
    """Selects the candidates whose anniversary is today where they live."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        """Initialize the matcher.

        Args:
            logger: Logger to report per-member errors to.
        """
        self.logger = logger or logging.getLogger(__name__)

    def match(self, instant: datetime, candidates: Iterable[Member]) -> MatchResult:
        """Return the exact match set for ``instant``.

        The candidates' own anniversaries are compared with their localized
        date; the window days are never used here. A member appearing more
        than once among the candidates is matched at most once.

        Args:
            instant: Reference instant.
            candidates: Members pre-filtered to the candidate window.

        Returns:
            MatchResult with the matched members and per-member errors.
        """
        result = MatchResult(instant=to_utc(instant))
        seen: set[object] = set()

        for member in candidates:
            key = member.id if member.id is not None else ("contact", member.contact)
            if key in seen:
                continue
            seen.add(key)

            try:
                local = localize(result.instant, member.timezone)
            except InvalidTimezoneError as e:
                self.logger.warning(
                    f"Skipping member {member.describe()}: {e}"
                )
                result.errors.append(
                    MemberError(member=member, kind="invalid_timezone", message=str(e))
                )
                continue

            if local.month_day == member.month_day:
                result.members.append(member)
                result.local_times[member] = local

        return result


def match(instant: datetime, candidates: Iterable[Member]) -> MatchResult:
    """Match ``candidates`` against ``instant`` with the default logger."""
    return BirthdayMatcher().match(instant, candidates)
