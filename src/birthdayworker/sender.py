"""Delivery of a single greeting with bounded retries and jittered backoff."""

import asyncio
import logging
import math
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Union

from birthdayworker.delivery import DeliveryCall
from birthdayworker.errors import ErrorKind, classify
from birthdayworker.models import Member


SleepFunc = Callable[[float], Awaitable[None]]


@dataclass
class DeliveryAttempt:
    """Mutable retry state for one member during one cycle."""

    member: Member
    attempts: int = 0
    last_error: Optional[BaseException] = None
    next_delay: Optional[float] = None


@dataclass(frozen=True)
class Success:
    """The greeting was delivered."""

    member: Member
    attempts: int

    @property
    def retried(self) -> bool:
        return self.attempts > 1


@dataclass(frozen=True)
class PermanentFailure:
    """Delivery gave up after the last attempt."""

    member: Member
    attempts: int
    last_error: BaseException

    @property
    def error_kind(self) -> ErrorKind:
        return classify(self.last_error)

    @property
    def error_message(self) -> str:
        return str(self.last_error) or type(self.last_error).__name__


SendOutcome = Union[Success, PermanentFailure]


def backoff_delay(
    attempt: int,
    base_delay: float,
    jitter: float,
    max_delay: Optional[float] = None,
) -> float:
    """Delay to wait after failed attempt number ``attempt``.

    Args:
        attempt: 1-based number of the attempt that just failed.
        base_delay: Delay after the first failure before jitter, in seconds.
        jitter: Factor drawn from [0.5, 1.0).
        max_delay: Optional ceiling applied after jitter.

    Returns:
        Delay in seconds.
    """
    delay = base_delay * (2 ** (attempt - 1)) * jitter
    if max_delay is not None:
        delay = min(delay, max_delay)
    return delay


class RetryingSender:
    """Wraps a delivery call with exponential backoff retries."""

    MAX_RETRIES = 5
    BASE_DELAY_SECONDS = 1.0
    JITTER_MIN = 0.5
    JITTER_MAX = 1.0

    def __init__(
        self,
        delivery: DeliveryCall,
        max_retries: int = MAX_RETRIES,
        base_delay: float = BASE_DELAY_SECONDS,
        max_delay: Optional[float] = None,
        sleep: SleepFunc = asyncio.sleep,
        rng: Optional[random.Random] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        """Initialize the sender.

        Args:
            delivery: Channel performing a single delivery attempt.
            max_retries: Retries after the first attempt (attempts = max_retries + 1).
            base_delay: Backoff before the second attempt, in seconds, before jitter.
            max_delay: Optional ceiling on a single backoff delay.
            sleep: Coroutine used to wait between attempts.
            rng: Random source for jitter.
            logger: Logger for attempt and failure reporting.
        """
        if not isinstance(max_retries, int) or max_retries < 0:
            raise ValueError("max_retries must be a non-negative integer")
        if base_delay <= 0:
            raise ValueError("base_delay must be positive")

        self.delivery = delivery
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep
        self._rng = rng or random.Random()
        self.logger = logger or logging.getLogger(__name__)

    def _jitter(self) -> float:
        jitter = self.JITTER_MIN + (self.JITTER_MAX - self.JITTER_MIN) * self._rng.random()
        # rounding can land on JITTER_MAX; keep the interval half-open
        return min(jitter, math.nextafter(self.JITTER_MAX, self.JITTER_MIN))

    async def send(self, member: Member) -> SendOutcome:
        """Deliver to ``member``, retrying transient failures.

        Args:
            member: The member to greet.

        Returns:
            Success, or PermanentFailure carrying the last error.
        """
        state = DeliveryAttempt(member=member)
        total_attempts = self.max_retries + 1

        while True:
            state.attempts += 1
            try:
                await self.delivery.deliver(member)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                state.last_error = e
            else:
                if state.attempts > 1:
                    self.logger.info(
                        f"Delivered to {member.describe()} on attempt "
                        f"{state.attempts}/{total_attempts}"
                    )
                else:
                    self.logger.debug(f"Delivered to {member.describe()}")
                return Success(member=member, attempts=state.attempts)

            if classify(state.last_error) is ErrorKind.PERMANENT:
                self.logger.warning(
                    f"Permanent delivery error for {member.describe()} "
                    f"on attempt {state.attempts}: {state.last_error}"
                )
                break

            if state.attempts > self.max_retries:
                break

            state.next_delay = backoff_delay(
                state.attempts, self.base_delay, self._jitter(), self.max_delay
            )
            self.logger.warning(
                f"Attempt {state.attempts}/{total_attempts} failed for "
                f"{member.describe()}: {state.last_error}. "
                f"Retrying in {state.next_delay:.2f}s"
            )
            await self._sleep(state.next_delay)

        assert state.last_error is not None
        return PermanentFailure(
            member=member,
            attempts=state.attempts,
            last_error=state.last_error,
        )
