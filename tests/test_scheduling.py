"""Tests for recurrence parsing and cron triggers."""

import asyncio
from datetime import UTC, datetime

import pytest

from cadence.errors import InvalidSpecError
from cadence.scheduling.recurrence import parse_recurrence
from cadence.scheduling.trigger import CronTrigger, ScheduledJob
from tests.conftest import EVERY_SECOND, make_http_spec


class TestParseRecurrence:
    def test_five_field_expression(self):
        recurrence = parse_recurrence("*/5 * * * *")
        assert recurrence.has_seconds is False
        after = datetime(2024, 1, 1, 12, 1, tzinfo=UTC)
        assert recurrence.next_after(after) == datetime(2024, 1, 1, 12, 5, tzinfo=UTC)

    def test_six_field_expression_has_seconds_first(self):
        recurrence = parse_recurrence("*/2 * * * * *")
        assert recurrence.has_seconds is True
        after = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)
        assert recurrence.next_after(after) == datetime(
            2024, 1, 1, 12, 0, 2, tzinfo=UTC
        )

    def test_evaluated_in_timezone(self):
        recurrence = parse_recurrence("0 8 * * *", "America/Sao_Paulo")
        after = datetime(2024, 1, 1, 0, 0, tzinfo=UTC)
        # 08:00 in Sao Paulo (UTC-3) is 11:00 UTC
        assert recurrence.next_after(after) == datetime(2024, 1, 1, 11, 0, tzinfo=UTC)

    def test_upcoming(self):
        recurrence = parse_recurrence("0 * * * *")
        after = datetime(2024, 1, 1, 0, 30, tzinfo=UTC)
        assert [t.hour for t in recurrence.upcoming(after, 3)] == [1, 2, 3]

    def test_nickname(self):
        recurrence = parse_recurrence("@daily")
        after = datetime(2024, 1, 1, 5, 0, tzinfo=UTC)
        assert recurrence.next_after(after) == datetime(2024, 1, 2, 0, 0, tzinfo=UTC)

    def test_normalizes_whitespace(self):
        assert parse_recurrence("  0   8 * * *  ").expression == "0 8 * * *"

    @pytest.mark.parametrize("expression", ["* * *", "", "* * * * * * *"])
    def test_wrong_field_count(self, expression):
        with pytest.raises(InvalidSpecError) as exc_info:
            parse_recurrence(expression)
        assert exc_info.value.field == "time"

    def test_out_of_range_field(self):
        with pytest.raises(InvalidSpecError) as exc_info:
            parse_recurrence("61 * * * *")
        assert exc_info.value.field == "time"

    def test_unknown_timezone(self):
        with pytest.raises(InvalidSpecError) as exc_info:
            parse_recurrence("* * * * *", "Not/AZone")
        assert exc_info.value.field == "timezone"


def _job() -> ScheduledJob:
    return ScheduledJob(tenant="acme", job_id="j1", spec=make_http_spec(EVERY_SECOND))


class TestCronTrigger:
    @pytest.mark.asyncio
    async def test_fires_on_each_occurrence(self):
        fired: list[ScheduledJob] = []

        async def callback(job: ScheduledJob) -> None:
            fired.append(job)

        trigger = CronTrigger(_job(), parse_recurrence(EVERY_SECOND), callback)
        trigger.start()
        try:
            await asyncio.sleep(2.3)
        finally:
            trigger.stop()

        assert len(fired) >= 2
        assert fired[0].tenant == "acme"
        assert fired[0].job_id == "j1"

    @pytest.mark.asyncio
    async def test_stop_prevents_further_firings(self):
        fired: list[ScheduledJob] = []

        async def callback(job: ScheduledJob) -> None:
            fired.append(job)

        trigger = CronTrigger(_job(), parse_recurrence(EVERY_SECOND), callback)
        trigger.start()
        assert trigger.running

        task = trigger.stop()
        assert task is not None
        with pytest.raises(asyncio.CancelledError):
            await task
        await asyncio.sleep(1.2)

        assert fired == []
        assert not trigger.running

    @pytest.mark.asyncio
    async def test_callback_errors_do_not_stop_trigger(self):
        calls = 0

        async def callback(job: ScheduledJob) -> None:
            nonlocal calls
            calls += 1
            raise RuntimeError("boom")

        trigger = CronTrigger(_job(), parse_recurrence(EVERY_SECOND), callback)
        trigger.start()
        try:
            await asyncio.sleep(2.3)
        finally:
            trigger.stop()

        assert calls >= 2

    @pytest.mark.asyncio
    async def test_skip_policy_drops_overlapping_firings(self):
        started = 0
        release = asyncio.Event()

        async def slow(job: ScheduledJob) -> None:
            nonlocal started
            started += 1
            await release.wait()

        trigger = CronTrigger(
            _job(), parse_recurrence(EVERY_SECOND), slow, overlap_policy="skip"
        )
        trigger.start()
        try:
            await asyncio.sleep(2.3)
        finally:
            trigger.stop()
            release.set()
            await asyncio.sleep(0.05)

        assert started == 1
        assert trigger.fire_count == 1

    @pytest.mark.asyncio
    async def test_allow_policy_overlaps_firings(self):
        started = 0
        release = asyncio.Event()

        async def slow(job: ScheduledJob) -> None:
            nonlocal started
            started += 1
            await release.wait()

        trigger = CronTrigger(_job(), parse_recurrence(EVERY_SECOND), slow)
        trigger.start()
        try:
            await asyncio.sleep(2.3)
        finally:
            trigger.stop()
            release.set()
            await asyncio.sleep(0.05)

        assert started >= 2
