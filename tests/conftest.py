"""Shared test fixtures and factories."""

import asyncio
from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Any

import pytest

from cadence.actions.base import ActionDispatcher
from cadence.config.models import CadenceConfig, StoreConfig
from cadence.errors import (
    JobExistsError,
    JobNotFoundError,
    NamespaceNotFoundError,
    StoreError,
)
from cadence.jobs.types import Job, JobSpec
from cadence.scheduling.registry import Registry
from cadence.store.sql import SqlJobStore

EVERY_SECOND = "* * * * * *"
YEARLY = "0 0 1 1 *"

# =============================================================================
# Spec Factories
# =============================================================================


def make_http_spec(
    time: str = YEARLY,
    timezone: str = "UTC",
    url: str = "http://device-manager/device",
    **http: Any,
) -> JobSpec:
    return JobSpec.model_validate(
        {
            "time": time,
            "timezone": timezone,
            "name": "Reset devices",
            "http": {"method": "PUT", "url": url, **http},
        }
    )


def make_broker_spec(
    time: str = YEARLY,
    subject: str = "dojot.device-manager.device",
    message: dict[str, Any] | None = None,
) -> JobSpec:
    return JobSpec.model_validate(
        {
            "time": time,
            "name": "Actuate device",
            "broker": {
                "subject": subject,
                "message": message or {"event": "configure", "data": {"id": "efac"}},
            },
        }
    )


# =============================================================================
# Fakes
# =============================================================================


class RecordingExecutor:
    """Executor that records every send and can be told to fail."""

    def __init__(self, error: Exception | None = None, delay: float = 0.0):
        self.calls: list[tuple[str, Any]] = []
        self.error = error
        self.delay = delay
        self.called = asyncio.Event()

    async def send(self, tenant: str, action: Any) -> None:
        self.calls.append((tenant, action))
        self.called.set()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error


class MemoryJobStore:
    """In-memory JobStore with switchable failures."""

    def __init__(self) -> None:
        self.namespaces: dict[str, dict[str, Job]] = {}
        self.fail_on: set[str] = set()
        self.connected = False
        self.closed = False

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise StoreError(f"{operation} failed")

    def _namespace(self, tenant: str) -> dict[str, Job]:
        if tenant not in self.namespaces:
            raise NamespaceNotFoundError(tenant)
        return self.namespaces[tenant]

    async def connect(self) -> None:
        self._check("connect")
        self.connected = True

    async def close(self) -> None:
        self.closed = True

    async def create_namespace(self, tenant: str) -> None:
        self._check("create_namespace")
        self.namespaces.setdefault(tenant, {})

    async def drop_namespace(self, tenant: str) -> None:
        self._check("drop_namespace")
        if self.namespaces.pop(tenant, None) is None:
            raise NamespaceNotFoundError(tenant)

    async def create(self, tenant: str, job: Job) -> None:
        self._check("create")
        jobs = self._namespace(tenant)
        if job.job_id in jobs:
            raise JobExistsError(tenant, job.job_id)
        jobs[job.job_id] = job

    async def read(self, tenant: str, job_id: str) -> Job:
        self._check("read")
        jobs = self._namespace(tenant)
        if job_id not in jobs:
            raise JobNotFoundError(tenant, job_id)
        return jobs[job_id]

    async def read_all(self, tenant: str) -> list[Job]:
        self._check("read_all")
        return list(self._namespace(tenant).values())

    async def update(self, tenant: str, job: Job) -> None:
        self._check("update")
        jobs = self._namespace(tenant)
        if job.job_id not in jobs:
            raise JobNotFoundError(tenant, job.job_id)
        jobs[job.job_id] = job

    async def delete(self, tenant: str, job_id: str) -> None:
        self._check("delete")
        jobs = self._namespace(tenant)
        if jobs.pop(job_id, None) is None:
            raise JobNotFoundError(tenant, job_id)


class FakeBus:
    """MessageBus recording publishes."""

    def __init__(self, error: Exception | None = None):
        self.published: list[tuple[str, str]] = []
        self.error = error
        self.connected = False
        self.closed = False

    async def connect(self) -> None:
        if self.error is not None:
            raise self.error
        self.connected = True

    async def close(self) -> None:
        self.closed = True

    async def publish(self, destination: str, payload: str) -> None:
        if self.error is not None:
            raise self.error
        self.published.append((destination, payload))


class FakeStream:
    """EventStream that lets tests push payloads to the subscriber."""

    def __init__(self) -> None:
        self.handlers: dict[str, Any] = {}
        self.connected = False
        self.closed = False

    async def connect(self) -> None:
        self.connected = True

    async def close(self) -> None:
        self.closed = True

    async def subscribe(self, pattern: str, handler: Any) -> None:
        self.handlers[pattern] = handler

    async def emit(self, payload: str) -> None:
        for handler in self.handlers.values():
            await handler(payload)


class FakePubSub:
    """Stand-in for a redis.asyncio PubSub with scripted messages.

    After the messages, ``listen()`` raises ``error`` if set, otherwise it
    stays subscribed until cancelled.
    """

    def __init__(
        self,
        messages: list[dict[str, Any]] | None = None,
        error: Exception | None = None,
    ):
        self.messages = messages or []
        self.error = error
        self.patterns: list[str] = []
        self.closed = False

    async def psubscribe(self, *patterns: str) -> None:
        self.patterns.extend(patterns)

    async def listen(self):
        for pattern in self.patterns:
            yield {"type": "psubscribe", "pattern": None, "channel": pattern, "data": 1}
        for message in self.messages:
            yield message
        if self.error is not None:
            raise self.error
        await asyncio.Event().wait()

    async def aclose(self) -> None:
        self.closed = True


class FakeRedis:
    """Stand-in for a redis.asyncio client: hands out queued PubSubs."""

    def __init__(self, pubsubs: list[FakePubSub] | None = None):
        self._pending = list(pubsubs or [])
        self.pubsubs: list[FakePubSub] = []
        self.published: list[tuple[str, str]] = []

    def pubsub(self) -> FakePubSub:
        pubsub = self._pending.pop(0) if self._pending else FakePubSub()
        self.pubsubs.append(pubsub)
        return pubsub

    async def publish(self, channel: str, message: str) -> int:
        self.published.append((channel, message))
        return 1


def pmessage(data: str, channel: str = "acme.dojot.tenancy") -> dict[str, Any]:
    return {
        "type": "pmessage",
        "pattern": "*dojot.tenancy",
        "channel": channel,
        "data": data,
    }


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def config(tmp_path: Path) -> CadenceConfig:
    return CadenceConfig(store=StoreConfig(data_dir=tmp_path / "data"))


@pytest.fixture
async def sql_store(tmp_path: Path) -> AsyncGenerator[SqlJobStore, None]:
    store = SqlJobStore(data_dir=tmp_path / "data")
    await store.connect()
    yield store
    await store.close()


@pytest.fixture
def memory_store() -> MemoryJobStore:
    return MemoryJobStore()


@pytest.fixture
def http_executor() -> RecordingExecutor:
    return RecordingExecutor()


@pytest.fixture
def broker_executor() -> RecordingExecutor:
    return RecordingExecutor()


@pytest.fixture
async def registry(
    memory_store: MemoryJobStore,
    http_executor: RecordingExecutor,
    broker_executor: RecordingExecutor,
) -> AsyncGenerator[Registry, None]:
    registry = Registry(
        memory_store, ActionDispatcher(http=http_executor, broker=broker_executor)
    )
    yield registry
    await registry.close()
