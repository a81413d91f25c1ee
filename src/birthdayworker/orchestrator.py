"""Fan-out of birthday greetings over a cycle's matched members."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

from birthdayworker.matcher import MemberError
from birthdayworker.models import Member
from birthdayworker.sender import PermanentFailure, RetryingSender, SendOutcome, Success


@dataclass
class FailureDetail:
    """Structured record of a member whose delivery permanently failed."""

    member_id: Optional[int]
    name: str
    contact: str
    attempts: int
    error_kind: str
    error: str

    @classmethod
    def from_outcome(cls, outcome: PermanentFailure) -> "FailureDetail":
        return cls(
            member_id=outcome.member.id,
            name=outcome.member.name,
            contact=outcome.member.contact,
            attempts=outcome.attempts,
            error_kind=outcome.error_kind.value,
            error=outcome.error_message,
        )


@dataclass
class CycleSummary:
    """Counts for one trigger firing, for logs only."""

    matched: int = 0
    succeeded: int = 0
    failed: int = 0
    retried: int = 0
    skipped: int = 0
    invalid_timezones: int = 0
    failures: list[FailureDetail] = field(default_factory=list)
    member_errors: list[MemberError] = field(default_factory=list)
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def ok(self) -> bool:
        """True when the cycle got past the population lookup."""
        return self.error is None

    def record(self, outcome: SendOutcome) -> None:
        """Fold one terminal outcome into the counters."""
        if isinstance(outcome, Success):
            self.succeeded += 1
            if outcome.retried:
                self.retried += 1
        else:
            self.failed += 1
            self.failures.append(FailureDetail.from_outcome(outcome))

    def format_for_log(self) -> str:
        if self.error is not None:
            return f"Cycle failed: {self.error}"
        return (
            f"matched={self.matched} succeeded={self.succeeded} "
            f"failed={self.failed} retried={self.retried} "
            f"skipped={self.skipped} invalid_timezones={self.invalid_timezones}"
        )


class BatchDeliveryOrchestrator:
    """Runs one independent retrying delivery per matched member."""

    def __init__(
        self,
        sender: RetryingSender,
        max_concurrency: Optional[int] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            sender: Retrying sender used for every member.
            max_concurrency: Cap on in-flight member deliveries. None fans out
                to every member at once.
            logger: Logger for failure reporting.
        """
        if max_concurrency is not None and max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.sender = sender
        self.max_concurrency = max_concurrency
        self.logger = logger or logging.getLogger(__name__)

    async def _send_isolated(
        self,
        member: Member,
        semaphore: Optional[asyncio.Semaphore],
    ) -> SendOutcome:
        try:
            if semaphore is None:
                return await self.sender.send(member)
            async with semaphore:
                return await self.sender.send(member)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.error(
                f"Unexpected error delivering to {member.describe()}: {e}",
                exc_info=True,
            )
            return PermanentFailure(member=member, attempts=1, last_error=e)

    async def run(self, matched: Iterable[Member]) -> CycleSummary:
        """Deliver to every matched member and wait for all of them.

        Args:
            matched: Members to greet.

        Returns:
            CycleSummary with success and failure counts.
        """
        members = list(matched)
        summary = CycleSummary(
            matched=len(members),
            started_at=datetime.now(timezone.utc),
        )

        if members:
            semaphore = (
                asyncio.Semaphore(self.max_concurrency)
                if self.max_concurrency is not None
                else None
            )
            outcomes = await asyncio.gather(
                *(self._send_isolated(member, semaphore) for member in members)
            )
            for outcome in outcomes:
                summary.record(outcome)
                if isinstance(outcome, PermanentFailure):
                    self.logger.warning(
                        f"Giving up on {outcome.member.describe()} after "
                        f"{outcome.attempts} attempts "
                        f"({outcome.error_kind.value}): {outcome.error_message}"
                    )

        summary.finished_at = datetime.now(timezone.utc)
        return summary
