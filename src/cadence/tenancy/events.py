"""Tenant provisioning event stream."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

from redis.asyncio import Redis
from redis.asyncio.client import PubSub

from cadence.messaging import close_redis, connect_redis

logger = logging.getLogger(__name__)

EventHandler = Callable[[str], Awaitable[None]]

DEFAULT_RECONNECT_DELAY = 1.0
MAX_RECONNECT_DELAY = 30.0


class EventStream(Protocol):
    async def connect(self) -> None: ...

    async def close(self) -> None: ...

    async def subscribe(self, pattern: str, handler: EventHandler) -> None:
        """Deliver payloads of channels matching ``pattern`` to ``handler``.

        Payloads are delivered one at a time, in arrival order.
        """
        ...


@dataclass
class _Subscription:
    pattern: str
    handler: EventHandler
    pubsub: PubSub | None
    task: asyncio.Task | None = None


class RedisEventStream:
    """Pattern subscription over Redis pub/sub.

    A dropped connection is logged and the pattern is subscribed again,
    backing off exponentially between attempts.
    """

    def __init__(
        self,
        url: str,
        client: Redis | None = None,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        max_reconnect_delay: float = MAX_RECONNECT_DELAY,
    ):
        self._url = url
        self._client = client
        self._owns_client = client is None
        self._reconnect_delay = reconnect_delay
        self._max_reconnect_delay = max_reconnect_delay
        self._subscriptions: list[_Subscription] = []

    @property
    def client(self) -> Redis:
        if self._client is None:
            raise RuntimeError("Event stream not connected. Call connect() first.")
        return self._client

    async def connect(self) -> None:
        if self._client is None:
            self._client = await connect_redis(self._url)

    async def subscribe(self, pattern: str, handler: EventHandler) -> None:
        pubsub = self.client.pubsub()
        await pubsub.psubscribe(pattern)
        subscription = _Subscription(pattern=pattern, handler=handler, pubsub=pubsub)
        subscription.task = asyncio.create_task(
            self._consume(subscription), name=f"events:{pattern}"
        )
        self._subscriptions.append(subscription)
        logger.info("event_stream_subscribed", extra={"event.pattern": pattern})

    async def _consume(self, subscription: _Subscription) -> None:
        delay = self._reconnect_delay
        while True:
            if subscription.pubsub is not None:
                try:
                    async for message in subscription.pubsub.listen():
                        delay = self._reconnect_delay
                        await self._deliver(subscription, message)
                    logger.warning(
                        "event_stream_ended",
                        extra={"event.pattern": subscription.pattern},
                    )
                except Exception as e:
                    logger.error(
                        "event_stream_disconnected",
                        extra={
                            "event.pattern": subscription.pattern,
                            "error.type": type(e).__name__,
                            "error.message": str(e),
                            "retry.delay": delay,
                        },
                    )
                await self._release(subscription)

            await asyncio.sleep(delay)
            delay = min(delay * 2, self._max_reconnect_delay)
            await self._resubscribe(subscription)

    async def _deliver(
        self, subscription: _Subscription, message: dict[str, Any]
    ) -> None:
        if message.get("type") != "pmessage":
            return
        try:
            await subscription.handler(message["data"])
        except Exception as e:
            logger.error(
                "event_handler_error",
                extra={
                    "event.channel": message.get("channel"),
                    "error.message": str(e),
                },
            )

    async def _resubscribe(self, subscription: _Subscription) -> None:
        pubsub = self.client.pubsub()
        try:
            await pubsub.psubscribe(subscription.pattern)
        except Exception as e:
            logger.warning(
                "event_stream_resubscribe_failed",
                extra={
                    "event.pattern": subscription.pattern,
                    "error.message": str(e),
                },
            )
            await self._close_pubsub(pubsub)
            return
        subscription.pubsub = pubsub
        logger.info(
            "event_stream_resubscribed", extra={"event.pattern": subscription.pattern}
        )

    async def _release(self, subscription: _Subscription) -> None:
        pubsub, subscription.pubsub = subscription.pubsub, None
        if pubsub is not None:
            await self._close_pubsub(pubsub)

    async def _close_pubsub(self, pubsub: PubSub) -> None:
        try:
            await pubsub.aclose()
        except Exception as e:
            logger.debug("pubsub_close_failed", extra={"error.message": str(e)})

    async def close(self) -> None:
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            if subscription.task is not None:
                subscription.task.cancel()
                try:
                    await subscription.task
                except asyncio.CancelledError:
                    pass
                except Exception as e:
                    logger.warning(
                        "event_stream_consumer_failed", extra={"error.message": str(e)}
                    )
            await self._release(subscription)
        if self._client is not None and self._owns_client:
            await close_redis(self._client)
            self._client = None
