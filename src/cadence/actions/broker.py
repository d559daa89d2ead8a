"""Broker action executor.

Publishes a job's message on ``"<tenant>.<subject>"``. For recognized
subjects the tenant and an epoch-millisecond timestamp are stamped into the
message envelope before publishing:

- ``dojot.device-manager.device``: ``meta.service`` and ``meta.timestamp``
- ``device-data``: ``metadata.tenant`` and ``metadata.timestamp``

The stored message is never mutated; each firing formats a fresh copy.
"""

import copy
import json
import logging
import time
from typing import Any, Protocol

from redis.asyncio import Redis

from cadence.errors import ExecutionFailure
from cadence.jobs.types import BrokerAction
from cadence.messaging import close_redis, connect_redis

logger = logging.getLogger(__name__)

DEVICE_MANAGER_SUBJECT = "dojot.device-manager.device"
DEVICE_DATA_SUBJECT = "device-data"

# subject -> (envelope key, tenant field)
RECOGNIZED_SUBJECTS: dict[str, tuple[str, str]] = {
    DEVICE_MANAGER_SUBJECT: ("meta", "service"),
    DEVICE_DATA_SUBJECT: ("metadata", "tenant"),
}


def format_message(
    tenant: str,
    subject: str,
    message: dict[str, Any],
    now_ms: int | None = None,
) -> dict[str, Any]:
    """Return a copy of ``message`` stamped for ``subject``.

    Raises:
        ExecutionFailure: If the envelope field exists but is not an object.
    """
    formatted = copy.deepcopy(message)
    fields = RECOGNIZED_SUBJECTS.get(subject)
    if fields is None:
        return formatted

    envelope_key, tenant_key = fields
    envelope = formatted.setdefault(envelope_key, {})
    if not isinstance(envelope, dict):
        raise ExecutionFailure(
            f"Message field '{envelope_key}' must be an object for subject {subject}"
        )
    envelope[tenant_key] = tenant
    envelope["timestamp"] = now_ms if now_ms is not None else int(time.time() * 1000)
    return formatted


def destination_for(tenant: str, subject: str) -> str:
    return f"{tenant}.{subject}"


class MessageBus(Protocol):
    async def connect(self) -> None: ...

    async def close(self) -> None: ...

    async def publish(self, destination: str, payload: str) -> None: ...


class RedisMessageBus:
    """Publishes messages on Redis pub/sub channels."""

    def __init__(self, url: str, client: Redis | None = None):
        self._url = url
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> Redis:
        if self._client is None:
            raise RuntimeError("Message bus not connected. Call connect() first.")
        return self._client

    async def connect(self) -> None:
        if self._client is None:
            self._client = await connect_redis(self._url)

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await close_redis(self._client)
            self._client = None

    async def publish(self, destination: str, payload: str) -> None:
        await self.client.publish(destination, payload)


class BrokerExecutor:
    """Executes broker actions over a MessageBus."""

    def __init__(self, bus: MessageBus):
        self._bus = bus

    async def send(self, tenant: str, action: BrokerAction) -> str:
        """Publish the formatted message and return its destination.

        Raises:
            ExecutionFailure: If formatting or publishing fails.
        """
        message = format_message(tenant, action.subject, action.message)
        destination = destination_for(tenant, action.subject)
        logger.debug(
            "broker_action_publish",
            extra={"tenant": tenant, "broker.destination": destination},
        )
        try:
            await self._bus.publish(destination, json.dumps(message))
        except Exception as e:
            raise ExecutionFailure(
                f"Publish to {destination} failed: {type(e).__name__}: {e}"
            ) from e
        return destination
