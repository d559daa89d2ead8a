"""Tests for tenant directories and the tenant reconciler."""

import asyncio
import json
import logging

import httpx
import pytest

from cadence.errors import StoreError
from cadence.jobs.types import Job
from cadence.scheduling.registry import Registry
from cadence.tenancy.directory import HttpTenantDirectory, StaticTenantDirectory
from cadence.tenancy.events import RedisEventStream
from cadence.tenancy.reconciler import TenantReconciler, parse_event
from tests.conftest import (
    FakePubSub,
    FakeRedis,
    FakeStream,
    MemoryJobStore,
    make_http_spec,
    pmessage,
)


def _event(type_: str, tenant: str | None = None) -> str:
    data = {"type": type_}
    if tenant is not None:
        data["tenant"] = tenant
    return json.dumps(data)


class TestHttpTenantDirectory:
    @pytest.mark.asyncio
    async def test_reads_ids_and_objects(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/admin/tenants"
            return httpx.Response(
                200, json={"tenants": ["acme", {"id": "globex"}, {"name": "x"}, ""]}
            )

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        directory = HttpTenantDirectory("http://auth/admin/tenants", client=client)

        assert await directory.list_tenants() == ["acme", "globex"]
        await client.aclose()

    @pytest.mark.asyncio
    async def test_error_status(self):
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(503))
        )
        directory = HttpTenantDirectory("http://auth/admin/tenants", client=client)

        with pytest.raises(httpx.HTTPStatusError):
            await directory.list_tenants()
        await client.aclose()

    @pytest.mark.asyncio
    async def test_unexpected_shape(self):
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json=[1]))
        )
        directory = HttpTenantDirectory("http://auth/admin/tenants", client=client)

        with pytest.raises(ValueError):
            await directory.list_tenants()
        await client.aclose()

    @pytest.mark.asyncio
    async def test_static_directory(self):
        directory = StaticTenantDirectory(["acme"])
        assert await directory.list_tenants() == ["acme"]


class TestParseEvent:
    def test_create(self):
        event = parse_event('{"type": "CREATE", "tenant": "acme"}')
        assert event.type == "CREATE"
        assert event.tenant == "acme"

    def test_missing_tenant(self):
        assert parse_event('{"type": "DELETE"}').tenant is None

    def test_bytes_payload(self):
        assert parse_event(b'{"type": "CREATE", "tenant": "acme"}').tenant == "acme"

    @pytest.mark.parametrize("payload", ["not json", "[1, 2]", '"CREATE"'])
    def test_malformed(self, payload):
        with pytest.raises(ValueError):
            parse_event(payload)


@pytest.fixture
def stream() -> FakeStream:
    return FakeStream()


def _reconciler(
    registry: Registry,
    stream: FakeStream,
    tenants: list[str] | None = None,
    unload_on_delete: bool = True,
) -> TenantReconciler:
    return TenantReconciler(
        registry,
        StaticTenantDirectory(tenants),
        stream,
        pattern="*dojot.tenancy",
        unload_on_delete=unload_on_delete,
    )


class TestTenantReconciler:
    @pytest.mark.asyncio
    async def test_start_loads_known_tenants_and_subscribes(
        self, registry: Registry, memory_store: MemoryJobStore, stream: FakeStream
    ):
        await memory_store.create_namespace("acme")
        await memory_store.create("acme", Job(job_id="j1", spec=make_http_spec()))

        loaded = await _reconciler(registry, stream, ["acme", "globex"]).start()

        assert loaded == ["acme", "globex"]
        assert [job.job_id for job in registry.list_jobs("acme")] == ["j1"]
        assert "*dojot.tenancy" in stream.handlers

    @pytest.mark.asyncio
    async def test_one_failing_tenant_does_not_block_others(
        self, registry: Registry, memory_store: MemoryJobStore, stream: FakeStream
    ):
        await memory_store.create_namespace("acme")
        await memory_store.create("acme", Job(job_id="j1", spec=make_http_spec()))
        original = memory_store.read_all

        async def flaky_read_all(tenant: str):
            if tenant == "globex":
                raise StoreError("down")
            return await original(tenant)

        memory_store.read_all = flaky_read_all  # type: ignore[method-assign]

        loaded = await _reconciler(registry, stream, ["acme", "globex"]).start()

        assert loaded == ["acme"]
        assert len(registry.list_jobs("acme")) == 1

    @pytest.mark.asyncio
    async def test_create_event_loads_tenant(
        self, registry: Registry, memory_store: MemoryJobStore, stream: FakeStream
    ):
        await _reconciler(registry, stream).start()

        await stream.emit(_event("CREATE", "acme"))

        assert "acme" in memory_store.namespaces

    @pytest.mark.asyncio
    async def test_delete_event_unloads_tenant(
        self, registry: Registry, memory_store: MemoryJobStore, stream: FakeStream
    ):
        await _reconciler(registry, stream, ["acme"]).start()
        await registry.create_job("acme", make_http_spec(), job_id="j1")

        await stream.emit(_event("DELETE", "acme"))

        assert registry.list_jobs("acme") == []
        assert "acme" not in memory_store.namespaces

    @pytest.mark.asyncio
    async def test_delete_event_ignored_when_unload_disabled(
        self, registry: Registry, memory_store: MemoryJobStore, stream: FakeStream
    ):
        await _reconciler(registry, stream, ["acme"], unload_on_delete=False).start()
        await registry.create_job("acme", make_http_spec(), job_id="j1")

        await stream.emit(_event("DELETE", "acme"))

        assert len(registry.list_jobs("acme")) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            "{broken",
            _event("CREATE"),
            _event("DELETE"),
            _event("UPDATE", "acme"),
            "[]",
        ],
    )
    async def test_bad_events_are_discarded(
        self,
        registry: Registry,
        memory_store: MemoryJobStore,
        stream: FakeStream,
        payload: str,
    ):
        await _reconciler(registry, stream).start()

        await stream.emit(payload)

        assert memory_store.namespaces == {}

    @pytest.mark.asyncio
    async def test_failed_event_is_contained(
        self, registry: Registry, stream: FakeStream
    ):
        await _reconciler(registry, stream).start()

        # Unloading a tenant that was never loaded fails inside the handler
        await stream.emit(_event("DELETE", "ghost"))


async def _wait_until(predicate, timeout: float = 2.0) -> None:
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.01)


class TestRedisEventStream:
    @pytest.mark.asyncio
    async def test_delivers_pattern_messages_serially(self):
        pubsub = FakePubSub(
            [
                pmessage("first"),
                {"type": "message", "channel": "other", "data": "ignored"},
                pmessage("second"),
            ]
        )
        stream = RedisEventStream("redis://unused", client=FakeRedis([pubsub]))
        received: list[str] = []
        active = 0
        peak = 0

        async def handler(payload: str) -> None:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.02)
            received.append(payload)
            active -= 1

        await stream.subscribe("*dojot.tenancy", handler)
        await _wait_until(lambda: len(received) == 2)
        await stream.close()

        assert received == ["first", "second"]
        assert peak == 1
        assert pubsub.patterns == ["*dojot.tenancy"]
        assert pubsub.closed

    @pytest.mark.asyncio
    async def test_handler_error_is_contained(self):
        pubsub = FakePubSub([pmessage("boom"), pmessage("ok")])
        stream = RedisEventStream("redis://unused", client=FakeRedis([pubsub]))
        received: list[str] = []

        async def handler(payload: str) -> None:
            if payload == "boom":
                raise RuntimeError("handler failed")
            received.append(payload)

        await stream.subscribe("*dojot.tenancy", handler)
        await _wait_until(lambda: received == ["ok"])
        await stream.close()

    @pytest.mark.asyncio
    async def test_resubscribes_after_disconnect(self, caplog: pytest.LogCaptureFixture):
        caplog.set_level(logging.INFO, logger="cadence.tenancy.events")
        dropped = FakePubSub([pmessage("before")], error=ConnectionError("connection reset"))
        fresh = FakePubSub([pmessage("after")])
        client = FakeRedis([dropped, fresh])
        stream = RedisEventStream("redis://unused", client=client, reconnect_delay=0.01)
        received: list[str] = []

        async def handler(payload: str) -> None:
            received.append(payload)

        await stream.subscribe("*dojot.tenancy", handler)
        await _wait_until(lambda: received == ["before", "after"])
        await stream.close()

        assert dropped.closed and fresh.closed
        assert fresh.patterns == ["*dojot.tenancy"]
        disconnects = [
            r for r in caplog.records if r.getMessage() == "event_stream_disconnected"
        ]
        assert len(disconnects) == 1
        assert disconnects[0].levelno == logging.ERROR
        assert "connection reset" in disconnects[0].__dict__["error.message"]

    @pytest.mark.asyncio
    async def test_close_cancels_consumer(self):
        client = FakeRedis()
        stream = RedisEventStream("redis://unused", client=client)
        received: list[str] = []

        async def handler(payload: str) -> None:
            received.append(payload)

        await stream.subscribe("*dojot.tenancy", handler)
        await asyncio.sleep(0.02)
        await stream.close()

        assert client.pubsubs[0].closed
        assert received == []
        assert stream.client is client

    @pytest.mark.asyncio
    async def test_subscribe_requires_connection(self):
        stream = RedisEventStream("redis://unused")

        async def handler(payload: str) -> None:
            pass

        with pytest.raises(RuntimeError):
            await stream.subscribe("*dojot.tenancy", handler)
