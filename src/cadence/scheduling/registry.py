"""In-memory registry of armed jobs, keyed by (tenant, job id).

The registry is the source of truth for which jobs are live. Mutations that
touch both the registry and the store (create, update, delete) are
serialized per (tenant, job id) and hold their tenant's gate shared; tenant
load and unload hold the gate exclusive, so they never interleave with a
job mutation of the same tenant. Locks are taken tenant first, then job.
Operations on different jobs run concurrently.

Ordering guarantees:
- create: the recurrence is parsed before anything is persisted, and the
  trigger is armed only after the record is stored.
- delete: the trigger is stopped before the record is removed, so no firing
  starts for a job whose deletion has been reported.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import uuid4
from weakref import WeakValueDictionary

from cadence.actions.base import ActionDispatcher
from cadence.errors import (
    BulkDeleteError,
    CadenceError,
    ExecutionFailure,
    InternalError,
    InvalidSpecError,
    JobExistsError,
    JobNotFoundError,
    NotFoundError,
    StoreError,
)
from cadence.jobs.types import Job, JobSpec
from cadence.scheduling.recurrence import Recurrence, parse_recurrence
from cadence.scheduling.trigger import CronTrigger, OverlapPolicy, ScheduledJob
from cadence.store.protocols import JobStore

logger = logging.getLogger(__name__)

JobKey = tuple[str, str]


class _TenantGate:
    """Shared/exclusive gate for one tenant.

    Job mutations hold it shared; tenant load and unload hold it exclusive.
    Waiting exclusive holders block new shared holders.
    """

    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._shared = 0
        self._exclusive = False
        self._waiting = 0

    @asynccontextmanager
    async def shared(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(
                lambda: not self._exclusive and not self._waiting
            )
            self._shared += 1
        try:
            yield
        finally:
            async with self._cond:
                self._shared -= 1
                self._cond.notify_all()

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[None]:
        async with self._cond:
            self._waiting += 1
            try:
                await self._cond.wait_for(
                    lambda: not self._exclusive and self._shared == 0
                )
            finally:
                self._waiting -= 1
                self._cond.notify_all()
            self._exclusive = True
        try:
            yield
        finally:
            async with self._cond:
                self._exclusive = False
                self._cond.notify_all()


class Registry:
    """Owns every armed trigger and keeps it consistent with the store.

    Example:
        registry = Registry(store, dispatcher)
        await registry.load_tenant("acme")
        job = await registry.create_job("acme", spec)
        await registry.delete_job("acme", job.job_id)
    """

    def __init__(
        self,
        store: JobStore,
        dispatcher: ActionDispatcher,
        overlap_policy: OverlapPolicy = "allow",
    ):
        self._store = store
        self._dispatcher = dispatcher
        self._overlap_policy = overlap_policy
        self._triggers: dict[JobKey, CronTrigger] = {}
        self._job_locks: WeakValueDictionary[JobKey, asyncio.Lock] = (
            WeakValueDictionary()
        )
        self._tenant_gates: WeakValueDictionary[str, _TenantGate] = (
            WeakValueDictionary()
        )

    @property
    def store(self) -> JobStore:
        return self._store

    def __len__(self) -> int:
        return len(self._triggers)

    def _job_lock(self, key: JobKey) -> asyncio.Lock:
        lock = self._job_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._job_locks[key] = lock
        return lock

    def _tenant_gate(self, tenant: str) -> _TenantGate:
        gate = self._tenant_gates.get(tenant)
        if gate is None:
            gate = _TenantGate()
            self._tenant_gates[tenant] = gate
        return gate

    @asynccontextmanager
    async def _job_guard(self, tenant: str, job_id: str) -> AsyncIterator[None]:
        async with self._tenant_gate(tenant).shared():
            async with self._job_lock((tenant, job_id)):
                yield

    # -- Trigger bookkeeping (no persistence) --

    def schedule(self, tenant: str, job_id: str, spec: JobSpec) -> CronTrigger:
        """Arm a trigger for the job, replacing any existing one.

        Raises:
            InvalidSpecError: If the recurrence or timezone cannot be parsed.
        """
        recurrence = parse_recurrence(spec.time, spec.timezone)
        return self._arm(tenant, job_id, spec, recurrence)

    def _arm(
        self, tenant: str, job_id: str, spec: JobSpec, recurrence: Recurrence
    ) -> CronTrigger:
        job = ScheduledJob(tenant=tenant, job_id=job_id, spec=spec)
        trigger = CronTrigger(
            job, recurrence, self._fire, overlap_policy=self._overlap_policy
        )
        previous = self._triggers.get((tenant, job_id))
        if previous is not None:
            previous.stop()
        self._triggers[(tenant, job_id)] = trigger
        trigger.start()
        logger.info(
            "job_scheduled",
            extra={
                "tenant": tenant,
                "job.id": job_id,
                "job.time": recurrence.expression,
                "job.timezone": spec.timezone,
            },
        )
        return trigger

    def unschedule(self, tenant: str, job_id: str) -> JobSpec:
        """Stop and forget the job's trigger, returning its spec.

        Raises:
            JobNotFoundError: If the job is not armed.
        """
        trigger = self._triggers.pop((tenant, job_id), None)
        if trigger is None:
            raise JobNotFoundError(tenant, job_id)
        trigger.stop()
        logger.info("job_unscheduled", extra={"tenant": tenant, "job.id": job_id})
        return trigger.job.spec

    def get_job(self, tenant: str, job_id: str) -> Job:
        trigger = self._triggers.get((tenant, job_id))
        if trigger is None:
            raise JobNotFoundError(tenant, job_id)
        return trigger.job.job

    def list_jobs(self, tenant: str) -> list[Job]:
        return [
            trigger.job.job
            for (owner, _), trigger in self._triggers.items()
            if owner == tenant
        ]

    def get_trigger(self, tenant: str, job_id: str) -> CronTrigger | None:
        return self._triggers.get((tenant, job_id))

    def tenants(self) -> set[str]:
        return {tenant for tenant, _ in self._triggers}

    async def _fire(self, job: ScheduledJob) -> None:
        logger.debug("job_fired", extra={"tenant": job.tenant, "job.id": job.job_id})
        try:
            await self._dispatcher.execute(job.tenant, job.spec)
        except ExecutionFailure as e:
            logger.warning(
                "job_execution_failed",
                extra={
                    "tenant": job.tenant,
                    "job.id": job.job_id,
                    "error.message": str(e),
                },
            )
        except Exception as e:
            logger.error(
                "job_execution_error",
                extra={
                    "tenant": job.tenant,
                    "job.id": job.job_id,
                    "error.type": type(e).__name__,
                    "error.message": str(e),
                },
            )

    # -- Persisted job lifecycle --

    async def create_job(
        self, tenant: str, spec: JobSpec, job_id: str | None = None
    ) -> Job:
        """Persist a new job and arm its trigger.

        Raises:
            InvalidSpecError: Bad recurrence or timezone; nothing is persisted.
            JobExistsError: The job id is already in use.
            StoreError: The record could not be persisted; nothing is armed.
        """
        job_id = job_id or str(uuid4())
        recurrence = parse_recurrence(spec.time, spec.timezone)
        job = Job(job_id=job_id, spec=spec)

        async with self._job_guard(tenant, job_id):
            if (tenant, job_id) in self._triggers:
                raise JobExistsError(tenant, job_id)
            await self._store.create(tenant, job)
            try:
                self._arm(tenant, job_id, spec, recurrence)
            except Exception as e:
                await self._compensate_create(tenant, job_id)
                raise InternalError(
                    f"Failed to arm job {job_id} for tenant {tenant}: {e}"
                ) from e

        logger.info("job_created", extra={"tenant": tenant, "job.id": job_id})
        return job

    async def _compensate_create(self, tenant: str, job_id: str) -> None:
        logger.warning(
            "job_create_compensating", extra={"tenant": tenant, "job.id": job_id}
        )
        try:
            await self._store.delete(tenant, job_id)
        except CadenceError as e:
            logger.error(
                "job_compensation_failed",
                extra={"tenant": tenant, "job.id": job_id, "error.message": str(e)},
            )

    async def update_job(
        self, tenant: str, job_id: str, spec: JobSpec
    ) -> tuple[Job, bool]:
        """Replace the job's spec, creating the job if absent.

        The old trigger is replaced atomically: no window exists in which
        neither the old nor the new trigger is armed.

        Returns:
            The stored job and whether an existing job was replaced.
        """
        recurrence = parse_recurrence(spec.time, spec.timezone)
        job = Job(job_id=job_id, spec=spec)

        async with self._job_guard(tenant, job_id):
            replaced = (tenant, job_id) in self._triggers
            if replaced:
                try:
                    await self._store.update(tenant, job)
                except JobNotFoundError:
                    await self._store.create(tenant, job)
            else:
                try:
                    await self._store.create(tenant, job)
                except JobExistsError:
                    await self._store.update(tenant, job)
            self._arm(tenant, job_id, spec, recurrence)

        logger.info(
            "job_updated",
            extra={"tenant": tenant, "job.id": job_id, "job.replaced": replaced},
        )
        return job, replaced

    async def delete_job(self, tenant: str, job_id: str) -> Job:
        """Disarm the job and remove its record.

        A record already absent from the store counts as deleted. If the
        store fails, the trigger is re-armed and the error re-raised so the
        registry and store stay consistent.

        Raises:
            JobNotFoundError: If the job is not armed.
            StoreError: If the record could not be removed.
        """
        async with self._job_guard(tenant, job_id):
            trigger = self._triggers.get((tenant, job_id))
            if trigger is None:
                raise JobNotFoundError(tenant, job_id)
            spec = self.unschedule(tenant, job_id)

            try:
                await self._store.delete(tenant, job_id)
            except NotFoundError:
                logger.warning(
                    "job_record_already_absent",
                    extra={"tenant": tenant, "job.id": job_id},
                )
            except StoreError:
                self._arm(tenant, job_id, spec, trigger.recurrence)
                raise

        logger.info("job_deleted", extra={"tenant": tenant, "job.id": job_id})
        return Job(job_id=job_id, spec=spec)

    async def delete_all_jobs(self, tenant: str) -> list[Job]:
        """Delete every armed job of the tenant concurrently.

        Raises:
            BulkDeleteError: If any deletion failed; carries the jobs that
                were removed and the per-job errors.
        """
        job_ids = [job_id for owner, job_id in list(self._triggers) if owner == tenant]
        results = await asyncio.gather(
            *(self.delete_job(tenant, job_id) for job_id in job_ids),
            return_exceptions=True,
        )

        deleted: list[Job] = []
        errors: dict[str, Exception] = {}
        for job_id, result in zip(job_ids, results, strict=True):
            if isinstance(result, JobNotFoundError):
                # Removed concurrently by another caller
                continue
            if isinstance(result, Exception):
                errors[job_id] = result
            elif isinstance(result, BaseException):
                raise result
            else:
                deleted.append(result)

        if errors:
            raise BulkDeleteError(tenant, deleted, errors)
        return deleted

    # -- Tenant lifecycle --

    async def load_tenant(self, tenant: str) -> int:
        """Create the tenant's namespace and arm every persisted job.

        Records whose recurrence no longer parses are logged and skipped.

        Returns:
            Number of jobs armed.
        """
        async with self._tenant_gate(tenant).exclusive():
            await self._store.create_namespace(tenant)
            jobs = await self._store.read_all(tenant)

            armed = 0
            for job in jobs:
                try:
                    self.schedule(tenant, job.job_id, job.spec)
                    armed += 1
                except InvalidSpecError as e:
                    logger.error(
                        "job_replay_failed",
                        extra={
                            "tenant": tenant,
                            "job.id": job.job_id,
                            "error.message": str(e),
                        },
                    )

        logger.info("tenant_loaded", extra={"tenant": tenant, "job.count": armed})
        return armed

    async def unload_tenant(self, tenant: str) -> int:
        """Disarm every job of the tenant and drop its namespace.

        Returns:
            Number of jobs disarmed.
        """
        async with self._tenant_gate(tenant).exclusive():
            job_ids = [
                job_id for owner, job_id in list(self._triggers) if owner == tenant
            ]
            for job_id in job_ids:
                self._triggers.pop((tenant, job_id)).stop()
            await self._store.drop_namespace(tenant)

        logger.info(
            "tenant_unloaded", extra={"tenant": tenant, "job.count": len(job_ids)}
        )
        return len(job_ids)

    async def close(self) -> None:
        """Stop every trigger. In-flight firings are not cancelled."""
        tasks = [trigger.stop() for trigger in self._triggers.values()]
        self._triggers.clear()
        pending = [task for task in tasks if task is not None]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info("registry_closed", extra={"trigger.count": len(tasks)})
