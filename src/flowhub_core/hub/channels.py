"""Resume channels - cross-process delivery of resume messages."""

from __future__ import annotations

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from flowhub_core.errors import create_error

from .types import ResumeMessage

logger = logging.getLogger(__name__)

ResumeHandler = Callable[[ResumeMessage], Awaitable[None]]


class ResumeChannel(ABC):
    """Broadcast medium shared by every hub that may hold a pause token."""

    @abstractmethod
    async def subscribe(self, handler: ResumeHandler) -> None:
        """Start delivering published messages to ``handler``."""

    @abstractmethod
    async def unsubscribe(self, handler: ResumeHandler) -> None:
        """Stop delivering messages to ``handler``."""

    @abstractmethod
    async def publish(self, message: ResumeMessage) -> None:
        """Broadcast a message to all subscribers, including remote ones.

        Raises:
            FlowError: CHANNEL_UNAVAILABLE if the medium cannot be reached
        """


class InMemoryResumeChannel(ResumeChannel):
    """Channel shared by hubs living in one process (tests, single host)."""

    def __init__(self) -> None:
        self._handlers: list[ResumeHandler] = []

    async def subscribe(self, handler: ResumeHandler) -> None:
        if handler not in self._handlers:
            self._handlers.append(handler)

    async def unsubscribe(self, handler: ResumeHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    async def publish(self, message: ResumeMessage) -> None:
        for handler in list(self._handlers):
            await handler(message)

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)


@dataclass
class RedisResumeChannelOptions:
    """Options for RedisResumeChannel."""

    redis_url: str = field(
        default_factory=lambda: os.getenv("REDIS_URL", "redis://localhost:6379/0")
    )
    channel: str = field(
        default_factory=lambda: os.getenv("FLOWHUB_RESUME_CHANNEL", "flowhub:resume")
    )
    connect_timeout: float = 5.0
    socket_timeout: float = 5.0
    poll_interval: float = 0.5


class RedisResumeChannel(ResumeChannel):
    """Resume channel backed by Redis pub/sub.

    Example:
        channel = RedisResumeChannel(RedisResumeChannelOptions(redis_url=url))
        if await channel.connect():
            hub = SuspensionHub(channel=channel)
            await hub.start()
    """

    def __init__(self, options: RedisResumeChannelOptions | None = None):
        self._options = options or RedisResumeChannelOptions()
        self._client: Any | None = None  # redis.asyncio.Redis
        self._pubsub: Any | None = None
        self._listener: asyncio.Task[None] | None = None
        self._handlers: list[ResumeHandler] = []
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> bool:
        """Connect to Redis.

        Returns:
            True if connection successful, False otherwise.
        """
        if self._connected:
            return True

        try:
            import redis.asyncio as redis

            self._client = redis.from_url(
                self._options.redis_url,
                socket_connect_timeout=self._options.connect_timeout,
                socket_timeout=self._options.socket_timeout,
                decode_responses=True,
            )
            await self._client.ping()
            self._connected = True
            logger.info(f"Resume channel connected to Redis ({self._options.channel})")
            return True

        except Exception as e:
            logger.error(f"Failed to connect resume channel to Redis: {e}")
            self._connected = False
            return False

    async def disconnect(self) -> None:
        """Stop listening and close the connection."""
        self._handlers.clear()
        await self._stop_listener()
        if self._client:
            try:
                await self._client.aclose()
            except Exception as e:
                logger.warning(f"Error closing Redis connection: {e}")
            finally:
                self._client = None
                self._connected = False

    async def subscribe(self, handler: ResumeHandler) -> None:
        if not self._connected or not self._client:
            raise create_error("CHANNEL_UNAVAILABLE", detail="Redis resume channel not connected")

        if handler not in self._handlers:
            self._handlers.append(handler)

        if self._listener is None:
            self._pubsub = self._client.pubsub()
            await self._pubsub.subscribe(self._options.channel)
            self._listener = asyncio.create_task(self._listen())

    async def unsubscribe(self, handler: ResumeHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)
        if not self._handlers:
            await self._stop_listener()

    async def publish(self, message: ResumeMessage) -> None:
        if not self._connected or not self._client:
            raise create_error("CHANNEL_UNAVAILABLE", detail="Redis resume channel not connected")

        try:
            await self._client.publish(self._options.channel, message.model_dump_json())
        except Exception as e:
            raise create_error(
                "CHANNEL_UNAVAILABLE", detail=f"Failed to publish resume message: {e}"
            ) from e

    async def _listen(self) -> None:
        while True:
            try:
                msg = await self._pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=self._options.poll_interval,
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Resume channel read failed: {e}")
                await asyncio.sleep(self._options.poll_interval)
                continue

            if not msg or msg.get("type") != "message":
                continue

            try:
                message = ResumeMessage.model_validate_json(msg["data"])
            except ValidationError as e:
                logger.warning(f"Ignoring malformed resume message: {e}")
                continue

            for handler in list(self._handlers):
                try:
                    await handler(message)
                except Exception as e:
                    logger.error(f"Resume handler failed for '{message.pause_id}': {e}")

    async def _stop_listener(self) -> None:
        if self._listener:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None

        if self._pubsub:
            try:
                await self._pubsub.unsubscribe()
                await self._pubsub.aclose()
            except Exception as e:
                logger.warning(f"Error closing Redis pubsub: {e}")
            self._pubsub = None
