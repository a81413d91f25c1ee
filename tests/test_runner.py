"""Tests for the periodic birthday runner."""

import asyncio
import logging
import random
from datetime import date, datetime, timezone

import pytest

from birthdayworker.matcher import candidate_window
from birthdayworker.orchestrator import BatchDeliveryOrchestrator
from birthdayworker.runner import BirthdayRunner
from birthdayworker.sender import RetryingSender

from tests.fakes import (
    AlwaysSucceed,
    BrokenLookup,
    FailFor,
    StaticLookup,
    make_member,
)


# 09:00 in New York, 14:00 in London
NINE_AM_NEW_YORK = datetime(2023, 1, 15, 14, 0, tzinfo=timezone.utc)


def make_runner(lookup, delivery=None, sleep=None, **kwargs) -> BirthdayRunner:
    sender_kwargs = {"max_retries": 2, "rng": random.Random(0)}
    if sleep is not None:
        sender_kwargs["sleep"] = sleep
    sender = RetryingSender(delivery or AlwaysSucceed(), **sender_kwargs)
    return BirthdayRunner(
        lookup=lookup,
        orchestrator=BatchDeliveryOrchestrator(sender),
        **kwargs,
    )


def population():
    return [
        make_member(name="Ny Member", timezone="America/New_York", member_id=1),
        make_member(name="London Member", timezone="Europe/London", member_id=2),
        make_member(
            name="Later Member", anniversary=date(1990, 3, 1),
            timezone="America/New_York", member_id=3,
        ),
    ]


class TestRunCycle:
    async def test_greets_members_at_delivery_hour(self):
        delivery = AlwaysSucceed()
        runner = make_runner(StaticLookup(population()), delivery)

        summary = await runner.run_cycle(NINE_AM_NEW_YORK)

        assert summary.ok
        assert summary.matched == 2
        assert summary.succeeded == 1
        assert summary.skipped == 1
        assert [m.name for m in delivery.calls] == ["Ny Member"]

    async def test_delivery_hour_disabled_greets_every_match(self):
        delivery = AlwaysSucceed()
        runner = make_runner(StaticLookup(population()), delivery, delivery_hour=None)

        summary = await runner.run_cycle(NINE_AM_NEW_YORK)

        assert summary.succeeded == 2
        assert summary.skipped == 0

    async def test_lookup_receives_candidate_window(self):
        lookup = StaticLookup(population())
        await make_runner(lookup).run_cycle(NINE_AM_NEW_YORK)
        assert lookup.windows == [candidate_window(NINE_AM_NEW_YORK)]

    async def test_uses_clock_when_no_instant_given(self):
        delivery = AlwaysSucceed()
        runner = make_runner(
            StaticLookup(population()), delivery, clock=lambda: NINE_AM_NEW_YORK
        )

        summary = await runner.run_cycle()

        assert summary.succeeded == 1

    async def test_lookup_failure_is_logged_not_raised(self, caplog):
        runner = make_runner(BrokenLookup())

        with caplog.at_level(logging.ERROR):
            summary = await runner.run_cycle(NINE_AM_NEW_YORK)

        assert not summary.ok
        assert "database unavailable" in summary.error
        assert summary.matched == 0
        assert "database unavailable" in caplog.text

    async def test_cycle_after_failed_cycle_is_unaffected(self):
        lookup = BrokenLookup()
        runner = make_runner(lookup)
        failed = await runner.run_cycle(NINE_AM_NEW_YORK)

        runner.lookup = StaticLookup(population())
        summary = await runner.run_cycle(NINE_AM_NEW_YORK)

        assert not failed.ok
        assert summary.ok
        assert summary.succeeded == 1

    async def test_invalid_timezone_recorded_per_member(self):
        members = population() + [
            make_member(name="Lost Member", timezone="Not/AZone", member_id=4)
        ]
        runner = make_runner(StaticLookup(members), delivery_hour=None)

        summary = await runner.run_cycle(NINE_AM_NEW_YORK)

        assert summary.ok
        assert summary.invalid_timezones == 1
        assert summary.member_errors[0].member.name == "Lost Member"
        assert summary.succeeded == 2

    async def test_permanent_failure_counted(self, recording_sleep):
        members = population()
        runner = make_runner(
            StaticLookup(members),
            FailFor(members[1].contact),
            sleep=recording_sleep,
            delivery_hour=None,
        )

        summary = await runner.run_cycle(NINE_AM_NEW_YORK)

        assert (summary.matched, summary.succeeded, summary.failed) == (2, 1, 1)

    async def test_empty_population(self):
        summary = await make_runner(StaticLookup([])).run_cycle(NINE_AM_NEW_YORK)

        assert summary.ok
        assert (summary.matched, summary.succeeded, summary.failed) == (0, 0, 0)

    async def test_repeated_cycles_are_independent(self):
        delivery = AlwaysSucceed()
        runner = make_runner(StaticLookup(population()), delivery)

        first = await runner.run_cycle(NINE_AM_NEW_YORK)
        second = await runner.run_cycle(NINE_AM_NEW_YORK)

        assert first.succeeded == second.succeeded == 1
        assert len(delivery.calls) == 2


@pytest.mark.parametrize(
    "kwargs",
    [
        {"interval_seconds": 0},
        {"delivery_hour": 24},
        {"delivery_hour": -1},
        {"interval_seconds": 1800},
        {"interval_seconds": 7200, "delivery_hour": 9},
    ],
)
def test_rejects_invalid_settings(kwargs):
    with pytest.raises(ValueError):
        make_runner(StaticLookup([]), **kwargs)


class SlowDelivery:
    async def deliver(self, member) -> None:
        await asyncio.sleep(0.3)


class CountingLookup(StaticLookup):
    def __init__(self, members) -> None:
        super().__init__(members)
        self.calls = 0

    def fetch_candidates(self, window):
        self.calls += 1
        return super().fetch_candidates(window)


class TestPeriodicLoop:
    async def test_fires_repeatedly_until_stopped(self):
        lookup = CountingLookup(population())
        runner = make_runner(lookup, interval_seconds=0.01, delivery_hour=None)

        await runner.start()
        assert runner.is_running()
        await asyncio.sleep(0.08)
        await runner.stop()

        assert not runner.is_running()
        assert lookup.calls >= 2
        calls_after_stop = lookup.calls
        await asyncio.sleep(0.03)
        assert lookup.calls == calls_after_stop

    async def test_keeps_firing_after_lookup_failures(self):
        lookup = BrokenLookup()
        runner = make_runner(lookup, interval_seconds=0.01, delivery_hour=None)

        await runner.start()
        await asyncio.sleep(0.06)
        await runner.stop()

        assert lookup.calls >= 2

    async def test_start_twice_is_noop(self, caplog):
        runner = make_runner(StaticLookup([]), interval_seconds=10, delivery_hour=None)
        await runner.start()
        with caplog.at_level(logging.WARNING):
            await runner.start()
        await runner.stop()
        assert "already running" in caplog.text

    async def test_overlapping_cycles_allowed_by_default(self):
        lookup = CountingLookup(population())
        runner = make_runner(
            lookup, SlowDelivery(), interval_seconds=0.02, delivery_hour=None,
            clock=lambda: NINE_AM_NEW_YORK,
        )

        await runner.start()
        await asyncio.sleep(0.15)
        await runner.stop()

        assert lookup.calls >= 3

    async def test_skip_overlapping_guard(self):
        lookup = CountingLookup(population())
        runner = make_runner(
            lookup, SlowDelivery(), interval_seconds=0.02, delivery_hour=None,
            skip_overlapping=True, clock=lambda: NINE_AM_NEW_YORK,
        )

        await runner.start()
        await asyncio.sleep(0.15)
        assert runner.cycle_in_progress()
        await runner.stop()

        assert lookup.calls == 1
        assert not runner.cycle_in_progress()


async def test_hourly_firings_greet_once_per_day():
    delivery = AlwaysSucceed()
    runner = make_runner(StaticLookup(population()[:1]), delivery)

    for hour in range(24):
        await runner.run_cycle(datetime(2023, 1, 15, hour, 5, tzinfo=timezone.utc))
    await runner.run_cycle(datetime(2023, 1, 16, 0, 5, tzinfo=timezone.utc))
    await runner.run_cycle(datetime(2023, 1, 16, 1, 5, tzinfo=timezone.utc))

    # only the 14:05Z firing falls in 09:xx New York time
    assert [m.name for m in delivery.calls] == ["Ny Member"]


def test_half_hour_period_rejected_with_delivery_hour():
    with pytest.raises(ValueError, match="delivery_hour requires"):
        make_runner(StaticLookup([]), interval_seconds=1800, delivery_hour=9)


async def test_failing_clock_is_contained(caplog):
    def broken_clock():
        raise RuntimeError("clock unavailable")

    runner = make_runner(StaticLookup(population()), clock=broken_clock)

    with caplog.at_level(logging.ERROR):
        summary = await runner.run_cycle()

    assert not summary.ok
    assert "clock unavailable" in summary.error
    assert "unknown instant" in caplog.text
