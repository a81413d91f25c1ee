"""Periodic trigger running birthday cycles."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from birthdayworker.config import HOURLY_INTERVAL_SECONDS
from birthdayworker.errors import CycleFatalError
from birthdayworker.matcher import BirthdayMatcher, CandidateWindow, candidate_window
from birthdayworker.models import Member
from birthdayworker.orchestrator import BatchDeliveryOrchestrator, CycleSummary
from birthdayworker.timezones import to_utc


class PopulationLookup(Protocol):
    """Storage collaborator returning members whose birthday is in a window.

    Over-fetching is allowed; omitting a true candidate is not.
    """

    def fetch_candidates(self, window: CandidateWindow) -> list[Member]: ...


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BirthdayRunner:
    """Fires a match-and-deliver cycle on a fixed period."""

    DEFAULT_INTERVAL_SECONDS = HOURLY_INTERVAL_SECONDS
    DEFAULT_DELIVERY_HOUR = 9

    def __init__(
        self,
        lookup: PopulationLookup,
        orchestrator: BatchDeliveryOrchestrator,
        matcher: Optional[BirthdayMatcher] = None,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        delivery_hour: Optional[int] = DEFAULT_DELIVERY_HOUR,
        skip_overlapping: bool = False,
        clock: Callable[[], datetime] = utc_now,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        """Initialize the runner.

        Args:
            lookup: Population lookup used to fetch window candidates.
            orchestrator: Batch delivery orchestrator.
            matcher: Birthday matcher; a default one is created if omitted.
            interval_seconds: Period between firings. Must be hourly while
                ``delivery_hour`` is set.
            delivery_hour: Local hour at which matched members are greeted,
                or None to greet on every firing of the day.
            skip_overlapping: Skip a firing while a previous cycle still runs.
            clock: Returns the current instant.
            logger: Logger for cycle reporting.
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        if delivery_hour is not None and not 0 <= delivery_hour <= 23:
            raise ValueError("delivery_hour must be between 0 and 23")
        if delivery_hour is not None and interval_seconds != HOURLY_INTERVAL_SECONDS:
            raise ValueError(
                f"delivery_hour requires an interval of {HOURLY_INTERVAL_SECONDS}s "
                "so that exactly one firing lands in each local hour"
            )

        self.logger = logger or logging.getLogger(__name__)
        self.lookup = lookup
        self.orchestrator = orchestrator
        self.matcher = matcher or BirthdayMatcher(logger=self.logger)
        self.interval = interval_seconds
        self.delivery_hour = delivery_hour
        self.skip_overlapping = skip_overlapping
        self._clock = clock

        self._running = False
        self._task: Optional[asyncio.Task[None]] = None
        self._cycles: set[asyncio.Task[CycleSummary]] = set()

    async def start(self) -> None:
        """Start firing cycles in the background."""
        if self._running:
            self.logger.warning("Birthday runner already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        self.logger.info(f"Started birthday runner (interval: {self.interval}s)")

    async def stop(self) -> None:
        """Stop firing and wait for in-flight cycles to finish."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._cycles:
            self.logger.info(f"Waiting for {len(self._cycles)} in-flight cycle(s)")
            await asyncio.gather(*self._cycles, return_exceptions=True)
        self.logger.info("Stopped birthday runner")

    def is_running(self) -> bool:
        """Check if the runner is active."""
        return self._running

    def cycle_in_progress(self) -> bool:
        return bool(self._cycles)

    async def _run_loop(self) -> None:
        while self._running:
            if self.skip_overlapping and self._cycles:
                self.logger.warning(
                    "Previous birthday cycle still running, skipping this firing"
                )
            else:
                task = asyncio.create_task(self.run_cycle())
                self._cycles.add(task)
                task.add_done_callback(self._cycles.discard)

            await asyncio.sleep(self.interval)

    def _fetch_candidates(self, window: CandidateWindow) -> list[Member]:
        try:
            return list(self.lookup.fetch_candidates(window))
        except Exception as e:
            raise CycleFatalError(f"Population lookup failed: {e}") from e

    async def run_cycle(self, now: Optional[datetime] = None) -> CycleSummary:
        """Run one match-and-deliver cycle. Never raises.

        Args:
            now: Reference instant; defaults to the runner's clock.

        Returns:
            CycleSummary for the cycle. ``error`` is set if the cycle could
            not reach the delivery step.
        """
        started_at = utc_now()
        instant: Optional[datetime] = None

        try:
            instant = to_utc(now if now is not None else self._clock())
            window = candidate_window(instant)
            candidates = self._fetch_candidates(window)
            matched = self.matcher.match(instant, candidates)
        except Exception as e:
            at = instant.isoformat() if instant is not None else "unknown instant"
            self.logger.error(
                f"Birthday cycle at {at} failed: {e}",
                exc_info=True,
            )
            return CycleSummary(error=str(e), started_at=started_at, finished_at=utc_now())

        due = matched.due_at_hour(self.delivery_hour)
        self.logger.info(
            f"Birthday cycle at {instant.isoformat()}: {len(candidates)} candidates, "
            f"{len(matched)} matched, {len(due)} due"
        )

        summary = await self.orchestrator.run(due)
        summary.matched = len(matched)
        summary.skipped = len(matched) - len(due)
        summary.invalid_timezones = len(matched.errors)
        summary.member_errors = list(matched.errors)
        summary.started_at = started_at

        if summary.failed:
            self.logger.warning(f"Birthday cycle finished with failures: {summary.format_for_log()}")
        else:
            self.logger.info(f"Birthday cycle finished: {summary.format_for_log()}")
        return summary
