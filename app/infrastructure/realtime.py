"""Realtime channels: named broadcast channels with explicit subscriptions.

Events are JSON envelopes ``{"event": <name>, "payload": {...}}``. With Redis
enabled they travel over Redis pub/sub so every API process sees them; without
Redis they fan out inside the current process.
"""

import asyncio
import inspect
import json
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable

from redis.exceptions import RedisError

from app.infrastructure.redis import RedisClient, redis_client

logger = logging.getLogger(__name__)

EventCallback = Callable[[str, dict[str, Any]], Awaitable[None] | None]


def contract_messages_channel(contract_id: int) -> str:
    return f"messages-contract-{contract_id}"


def contract_typing_channel(contract_id: int) -> str:
    return f"typing-contract-{contract_id}"


def customer_contracts_channel(customer_id: int) -> str:
    return f"contracts-customer-{customer_id}"


PENDING_CONTRACTS_CHANNEL = "contracts-pending"


def auth_state_channel(user_id: int) -> str:
    return f"auth-state-{user_id}"


async def _invoke(callback: EventCallback, event: str, payload: dict[str, Any]) -> None:
    result = callback(event, payload)
    if inspect.isawaitable(result):
        await result


class Subscription:
    """Handle for a live channel subscription.

    ``unsubscribe()`` must be called when the owner is done; it is safe to
    call more than once.
    """

    def __init__(self, channel: str, release: Callable[[], Awaitable[None]]) -> None:
        self.channel = channel
        self._release = release
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._release()


class RealtimeBroker:
    """Publishes and delivers events on named channels."""

    def __init__(self, redis: RedisClient | None = None) -> None:
        self._redis = redis or redis_client
        self._local: dict[str, list[tuple[str | None, EventCallback]]] = defaultdict(list)

    async def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        """Publish an event to every subscriber of a channel.

        Raises:
            RedisError: If the Redis publish fails
        """
        if self._redis.is_available:
            message = json.dumps({"event": event, "payload": payload}, default=str)
            await self._redis.publish(channel, message)
            return
        await self._dispatch_local(channel, event, payload)

    async def subscribe(
        self, channel: str, callback: EventCallback, event: str | None = None
    ) -> Subscription:
        """Subscribe to a channel.

        Args:
            channel: Channel name
            callback: Called with (event, payload) per delivered event; may be async
            event: Only deliver events with this name (all events if None)

        Returns:
            Subscription handle
        """
        if self._redis.is_available:
            return await self._subscribe_redis(channel, callback, event)

        entry = (event, callback)
        self._local[channel].append(entry)

        async def release() -> None:
            listeners = self._local.get(channel)
            if listeners and entry in listeners:
                listeners.remove(entry)
            if not listeners:
                self._local.pop(channel, None)

        return Subscription(channel, release)

    def subscriber_count(self, channel: str) -> int:
        """Number of in-process subscribers on a channel."""
        return len(self._local.get(channel, []))

    async def _dispatch_local(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        for wanted, callback in list(self._local.get(channel, [])):
            if wanted is not None and wanted != event:
                continue
            try:
                await _invoke(callback, event, payload)
            except Exception:
                logger.exception(f"Realtime subscriber on {channel} failed")

    async def _subscribe_redis(
        self, channel: str, callback: EventCallback, event: str | None
    ) -> Subscription:
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(channel)

        async def reader() -> None:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    envelope = json.loads(message["data"])
                    name = envelope["event"]
                    payload = envelope.get("payload") or {}
                except (TypeError, ValueError, KeyError) as e:
                    logger.warning(f"Dropping undecodable realtime message on {channel}: {e}")
                    continue
                if event is not None and name != event:
                    continue
                try:
                    await _invoke(callback, name, payload)
                except Exception:
                    logger.exception(f"Realtime subscriber on {channel} failed")

        task = asyncio.create_task(reader())

        async def release() -> None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            try:
                await pubsub.unsubscribe(channel)
                await pubsub.aclose()
            except RedisError as e:
                logger.warning(f"Error releasing realtime channel {channel}: {e}")

        return Subscription(channel, release)

