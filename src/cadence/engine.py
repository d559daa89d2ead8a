"""Engine facade: wires the store, executors, registry and tenant reconciler.

Every operation takes the tenant as its first argument and returns a result
or raises a CadenceError subclass.
"""

import logging

import httpx

from cadence.actions.base import ActionDispatcher
from cadence.actions.broker import BrokerExecutor, MessageBus, RedisMessageBus
from cadence.actions.http import HttpExecutor
from cadence.config.models import CadenceConfig
from cadence.errors import FatalInitError
from cadence.jobs.types import Job, JobSpec
from cadence.scheduling.registry import Registry
from cadence.store.protocols import JobStore
from cadence.store.sql import SqlJobStore
from cadence.tenancy.directory import (
    HttpTenantDirectory,
    StaticTenantDirectory,
    TenantDirectory,
)
from cadence.tenancy.events import EventStream, RedisEventStream
from cadence.tenancy.reconciler import TenantReconciler

logger = logging.getLogger(__name__)


class CadenceEngine:
    """Multi-tenant scheduled-action engine.

    Example:
        engine = build_engine(load_config())
        await engine.start()
        job = await engine.create_job("acme", spec)
        await engine.stop()
    """

    def __init__(
        self,
        store: JobStore,
        bus: MessageBus,
        stream: EventStream,
        directory: TenantDirectory,
        config: CadenceConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._config = config or CadenceConfig()
        self._store = store
        self._bus = bus
        self._stream = stream
        self._http = HttpExecutor(client=http_client, timeout=self._config.http.timeout)
        self._broker = BrokerExecutor(bus)
        self._registry = Registry(
            store,
            ActionDispatcher(http=self._http, broker=self._broker),
            overlap_policy=self._config.scheduler.overlap_policy,
        )
        self._reconciler = TenantReconciler(
            self._registry,
            directory,
            stream,
            pattern=self._config.broker.tenancy_pattern,
            unload_on_delete=self._config.tenancy.unload_on_delete,
        )
        self._started = False

    @property
    def config(self) -> CadenceConfig:
        return self._config

    @property
    def registry(self) -> Registry:
        return self._registry

    @property
    def reconciler(self) -> TenantReconciler:
        return self._reconciler

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Connect infrastructure, load known tenants and follow events.

        Raises:
            FatalInitError: If the store, bus, event stream or tenant
                directory cannot be reached.
        """
        if self._started:
            return
        logger.info("engine_starting")
        try:
            await self._store.connect()
            await self._bus.connect()
            await self._stream.connect()
            await self._reconciler.start()
        except Exception as e:
            logger.error(
                "engine_start_failed",
                extra={"error.type": type(e).__name__, "error.message": str(e)},
            )
            await self._shutdown()
            raise FatalInitError(f"Engine startup failed: {e}") from e

        self._started = True
        logger.info(
            "engine_started",
            extra={
                "tenant.count": len(self._registry.tenants()),
                "job.count": len(self._registry),
            },
        )

    async def stop(self) -> None:
        self._started = False
        await self._shutdown()
        logger.info("engine_stopped")

    async def _shutdown(self) -> None:
        await self._registry.close()
        for name, close in (
            ("stream", self._stream.close),
            ("bus", self._bus.close),
            ("http", self._http.close),
            ("store", self._store.close),
        ):
            try:
                await close()
            except Exception as e:
                logger.warning(
                    "engine_close_failed",
                    extra={"component.name": name, "error.message": str(e)},
                )

    async def create_job(
        self, tenant: str, spec: JobSpec, job_id: str | None = None
    ) -> Job:
        return await self._registry.create_job(tenant, spec, job_id)

    async def read_job(self, tenant: str, job_id: str) -> Job:
        return self._registry.get_job(tenant, job_id)

    async def read_all_jobs(self, tenant: str) -> list[Job]:
        return self._registry.list_jobs(tenant)

    async def update_job(
        self, tenant: str, job_id: str, spec: JobSpec
    ) -> tuple[Job, bool]:
        return await self._registry.update_job(tenant, job_id, spec)

    async def delete_job(self, tenant: str, job_id: str) -> Job:
        return await self._registry.delete_job(tenant, job_id)

    async def delete_all_jobs(self, tenant: str) -> list[Job]:
        return await self._registry.delete_all_jobs(tenant)

    async def load_tenant(self, tenant: str) -> int:
        return await self._registry.load_tenant(tenant)

    async def unload_tenant(self, tenant: str) -> int:
        return await self._registry.unload_tenant(tenant)


def build_directory(config: CadenceConfig) -> TenantDirectory:
    if config.tenancy.tenants_url:
        return HttpTenantDirectory(
            config.tenancy.tenants_url, timeout=config.tenancy.timeout
        )
    return StaticTenantDirectory(config.tenancy.tenants)


def build_engine(config: CadenceConfig) -> CadenceEngine:
    """Create an engine backed by SQL storage and Redis messaging."""
    return CadenceEngine(
        store=SqlJobStore.from_config(config.store),
        bus=RedisMessageBus(config.broker.redis_url),
        stream=RedisEventStream(config.broker.redis_url),
        directory=build_directory(config),
        config=config,
    )
