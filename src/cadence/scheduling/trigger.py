"""Per-job cron trigger.

Each armed job owns one CronTrigger: a background task that sleeps until the
next occurrence and then launches the fire callback as its own task, so a
slow action never delays the following occurrence.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Literal

from cadence.jobs.types import Job, JobSpec
from cadence.scheduling.recurrence import Recurrence

logger = logging.getLogger(__name__)

OverlapPolicy = Literal["allow", "skip"]


@dataclass(frozen=True)
class ScheduledJob:
    """Immutable descriptor handed to the fire callback."""

    tenant: str
    job_id: str
    spec: JobSpec

    @property
    def job(self) -> Job:
        return Job(job_id=self.job_id, spec=self.spec)


FireCallback = Callable[[ScheduledJob], Awaitable[Any]]


class CronTrigger:
    """Fires a callback on every occurrence of a recurrence.

    With ``overlap_policy="skip"`` an occurrence is dropped while the
    previous firing of the same job is still running.
    """

    def __init__(
        self,
        job: ScheduledJob,
        recurrence: Recurrence,
        callback: FireCallback,
        overlap_policy: OverlapPolicy = "allow",
    ):
        self._job = job
        self._recurrence = recurrence
        self._callback = callback
        self._overlap_policy = overlap_policy
        self._task: asyncio.Task | None = None
        self._inflight: set[asyncio.Task] = set()
        self._next_fire: datetime | None = None
        self._fire_count = 0

    @property
    def job(self) -> ScheduledJob:
        return self._job

    @property
    def recurrence(self) -> Recurrence:
        return self._recurrence

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def next_fire_time(self) -> datetime | None:
        return self._next_fire

    @property
    def fire_count(self) -> int:
        return self._fire_count

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(
            self._run(), name=f"trigger:{self._job.tenant}:{self._job.job_id}"
        )

    def stop(self) -> asyncio.Task | None:
        """Stop future firings. In-flight firings are left to finish.

        Returns the cancelled loop task so callers may await it.
        """
        task, self._task = self._task, None
        self._next_fire = None
        if task is not None:
            task.cancel()
        return task

    async def _run(self) -> None:
        last_fire: datetime | None = None
        while True:
            now = datetime.now(UTC)
            # Never compute from before the last occurrence, the loop clock
            # may wake a little early.
            base = max(now, last_fire) if last_fire else now
            fire_at = self._recurrence.next_after(base)
            self._next_fire = fire_at

            delay = (fire_at - datetime.now(UTC)).total_seconds()
            if delay > 0:
                await asyncio.sleep(delay)

            last_fire = fire_at
            self._fire()

    def _fire(self) -> None:
        if self._overlap_policy == "skip" and self._inflight:
            logger.warning(
                "job_firing_skipped",
                extra={
                    "tenant": self._job.tenant,
                    "job.id": self._job.job_id,
                    "job.inflight": len(self._inflight),
                },
            )
            return

        self._fire_count += 1
        task = asyncio.create_task(self._invoke())
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _invoke(self) -> None:
        try:
            await self._callback(self._job)
        except Exception as e:
            logger.error(
                "job_firing_error",
                extra={
                    "tenant": self._job.tenant,
                    "job.id": self._job.job_id,
                    "error.type": type(e).__name__,
                    "error.message": str(e),
                },
            )
