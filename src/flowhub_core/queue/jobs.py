"""Durable run jobs and the queues that carry them."""

from __future__ import annotations

import asyncio
import logging
import os
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from flowhub_core.errors import create_error

logger = logging.getLogger(__name__)


class Job(BaseModel):
    """A queued run. JSON-serializable when nodes are ids, calls and branches."""

    job_id: str = Field(default_factory=lambda: f"job-{uuid.uuid4().hex[:12]}")
    flow_instance_id: str
    nodes: list[Any]
    initial_state: dict[str, Any] = Field(default_factory=dict)
    workflow_id: str | None = None
    attempts: int = 0
    enqueued_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class JobQueue(ABC):
    """FIFO of run jobs consumed by QueueWorkers."""

    @abstractmethod
    async def enqueue(self, job: Job) -> None:
        """Add a job to the tail of the queue."""

    @abstractmethod
    async def dequeue(self, timeout: float | None = None) -> Job | None:
        """Take the next job, waiting up to ``timeout`` seconds.

        Returns:
            Job, or None if the wait timed out
        """

    @abstractmethod
    async def retry(self, job: Job, delay: float) -> None:
        """Make a job available again after ``delay`` seconds."""

    @abstractmethod
    async def size(self) -> int:
        """Number of jobs ready to be taken."""

    async def close(self) -> None:
        """Release resources held by the queue."""
        return None


class InMemoryJobQueue(JobQueue):
    """Process-local queue for tests and single-process deployments."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Job] = asyncio.Queue()
        self._delayed: set[asyncio.TimerHandle] = set()

    async def enqueue(self, job: Job) -> None:
        self._queue.put_nowait(job)

    async def dequeue(self, timeout: float | None = None) -> Job | None:
        try:
            return await asyncio.wait_for(self._queue.get(), timeout)
        except TimeoutError:
            return None

    async def retry(self, job: Job, delay: float) -> None:
        if delay <= 0:
            self._queue.put_nowait(job)
            return

        def release() -> None:
            self._delayed.discard(handle)
            self._queue.put_nowait(job)

        handle = asyncio.get_running_loop().call_later(delay, release)
        self._delayed.add(handle)

    async def size(self) -> int:
        return self._queue.qsize()

    @property
    def delayed(self) -> int:
        return len(self._delayed)

    async def close(self) -> None:
        for handle in self._delayed:
            handle.cancel()
        self._delayed.clear()


@dataclass
class RedisJobQueueOptions:
    """Options for RedisJobQueue."""

    redis_url: str = field(
        default_factory=lambda: os.getenv("REDIS_URL", "redis://localhost:6379/0")
    )
    key: str = field(default_factory=lambda: os.getenv("FLOWHUB_QUEUE_KEY", "flowhub:jobs"))
    connect_timeout: float = 5.0
    socket_timeout: float | None = None  # BRPOP blocks longer than a normal read


class RedisJobQueue(JobQueue):
    """Job queue on a Redis list (LPUSH/BRPOP).

    Retried jobs wait in a sorted set scored by due time and are moved back
    to the list when due.
    """

    def __init__(self, options: RedisJobQueueOptions | None = None):
        self._options = options or RedisJobQueueOptions()
        self._client: Any | None = None  # redis.asyncio.Redis
        self._connected = False

    @property
    def key(self) -> str:
        return self._options.key

    @property
    def delayed_key(self) -> str:
        return f"{self._options.key}:delayed"

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
            logger.info(f"Job queue connected to Redis ({self._options.key})")
            return True

        except Exception as e:
            logger.error(f"Failed to connect job queue to Redis: {e}")
            self._connected = False
            return False

    async def close(self) -> None:
        if self._client:
            try:
                await self._client.aclose()
            except Exception as e:
                logger.warning(f"Error closing Redis connection: {e}")
            finally:
                self._client = None
                self._connected = False

    def _require_client(self) -> Any:
        if not self._connected or not self._client:
            raise create_error("QUEUE_UNAVAILABLE", detail="Redis job queue not connected")
        return self._client

    async def enqueue(self, job: Job) -> None:
        client = self._require_client()
        try:
            await client.lpush(self._options.key, job.model_dump_json())
        except Exception as e:
            raise create_error("QUEUE_UNAVAILABLE", detail=f"Failed to enqueue job: {e}") from e

    async def dequeue(self, timeout: float | None = None) -> Job | None:
        client = self._require_client()
        await self._promote_due(client)

        try:
            item = await client.brpop([self._options.key], timeout=timeout or 0)
        except Exception as e:
            raise create_error("QUEUE_UNAVAILABLE", detail=f"Failed to dequeue job: {e}") from e

        if not item:
            return None
        _, payload = item
        return Job.model_validate_json(payload)

    async def retry(self, job: Job, delay: float) -> None:
        client = self._require_client()
        due = time.time() + max(delay, 0.0)
        await client.zadd(self.delayed_key, {job.model_dump_json(): due})

    async def size(self) -> int:
        client = self._require_client()
        return int(await client.llen(self._options.key))

    async def _promote_due(self, client: Any) -> None:
        due = await client.zrangebyscore(self.delayed_key, "-inf", time.time())
        for payload in due:
            # ZREM wins for exactly one consumer when several poll at once
            if await client.zrem(self.delayed_key, payload):
                await client.lpush(self._options.key, payload)
