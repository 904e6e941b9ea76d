"""Change feed - per-identity row change notifications over Redis pub/sub"""

import asyncio
import contextlib
import json
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import redis.asyncio as redis

from teamtodo.models.change import ChangeEvent

logger = logging.getLogger(__name__)

ChangeHandler = Callable[[ChangeEvent], Awaitable[None]]


def channel_for(table: str, owner_id: str) -> str:
    return f"{table}:{owner_id}"


def parse_change_message(data) -> Optional[ChangeEvent]:
    """Decode a published change notification; malformed payloads yield None"""
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    try:
        return ChangeEvent.model_validate(json.loads(data))
    except (TypeError, ValueError) as e:
        logger.warning(f"Ignoring malformed change message: {e}")
        return None


@dataclass
class Subscription:
    name: str
    table: str
    owner_id: str
    channel: str
    pubsub: object
    task: Optional[asyncio.Task] = None


class ChangeFeed:
    """Keeps at most one live subscription per name

    Subscribing again under a name tears the previous subscription down, and
    waits for it, before the new channel is joined.
    """

    def __init__(self, redis_url: Optional[str] = None, client=None):
        self.redis_url = redis_url
        self.client = client
        self._subscriptions: dict[str, Subscription] = {}
        self._lock = asyncio.Lock()

    def _get_client(self):
        if self.client is None:
            self.client = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True
            )
            logger.info("Redis connection established")
        return self.client

    def active(self, name: str) -> Optional[Subscription]:
        return self._subscriptions.get(name)

    async def subscribe(
        self,
        table: str,
        owner_id: str,
        handler: ChangeHandler,
        name: Optional[str] = None,
    ) -> Subscription:
        """Subscribe `handler` to changes of `table` rows owned by `owner_id`"""
        name = name or table
        async with self._lock:
            existing = self._subscriptions.get(name)
            if existing is not None:
                await self._teardown(existing)

            channel = channel_for(table, owner_id)
            pubsub = self._get_client().pubsub()
            await pubsub.subscribe(channel)

            subscription = Subscription(
                name=name,
                table=table,
                owner_id=owner_id,
                channel=channel,
                pubsub=pubsub,
            )
            subscription.task = asyncio.create_task(self._listen(subscription, handler))
            self._subscriptions[name] = subscription
            logger.info(f"Subscribed to {channel} as {name}")
            return subscription

    async def unsubscribe(self, subscription: Subscription):
        async with self._lock:
            await self._teardown(subscription)

    async def unsubscribe_name(self, name: str):
        async with self._lock:
            existing = self._subscriptions.get(name)
            if existing is not None:
                await self._teardown(existing)

    async def _teardown(self, subscription: Subscription):
        if self._subscriptions.get(subscription.name) is subscription:
            del self._subscriptions[subscription.name]

        if subscription.task is not None:
            subscription.task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await subscription.task

        await subscription.pubsub.unsubscribe(subscription.channel)
        await subscription.pubsub.aclose()
        logger.info(f"Unsubscribed from {subscription.channel}")

    async def _listen(self, subscription: Subscription, handler: ChangeHandler):
        async for message in subscription.pubsub.listen():
            if message.get("type") != "message":
                continue

            event = parse_change_message(message.get("data"))
            if event is None:
                continue

            try:
                await handler(event)
            except Exception as e:
                logger.error(f"Change handler failed on {subscription.channel}: {e}", exc_info=True)

    async def publish(self, table: str, owner_id: str, event: ChangeEvent):
        """Publish a change notification (used by backend-side relays and tests)"""
        await self._get_client().publish(
            channel_for(table, owner_id),
            event.model_dump_json()
        )

    async def close(self):
        async with self._lock:
            for subscription in list(self._subscriptions.values()):
                await self._teardown(subscription)

        if self.client is not None:
            await self.client.aclose()
            self.client = None
            logger.info("Redis connection closed")
