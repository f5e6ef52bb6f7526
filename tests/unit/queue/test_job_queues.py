"""Unit tests for job queues."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from flowhub_core.errors import FlowError
from flowhub_core.queue import InMemoryJobQueue, Job, RedisJobQueue, RedisJobQueueOptions


def _job(**kwargs) -> Job:
    kwargs.setdefault("flow_instance_id", "flow-1")
    kwargs.setdefault("nodes", ["a", {"b": {"x": 1}}])
    return Job(**kwargs)


class TestJob:
    def test_defaults(self):
        job = _job()

        assert job.job_id.startswith("job-")
        assert job.attempts == 0
        assert job.initial_state == {}

    def test_json_round_trip(self):
        job = _job(initial_state={"k": [1, 2]}, workflow_id="wf", attempts=2)

        assert Job.model_validate_json(job.model_dump_json()) == job


class TestInMemoryJobQueue:
    @pytest.mark.asyncio
    async def test_fifo(self):
        queue = InMemoryJobQueue()
        first, second = _job(flow_instance_id="f1"), _job(flow_instance_id="f2")
        await queue.enqueue(first)
        await queue.enqueue(second)

        assert await queue.size() == 2
        assert (await queue.dequeue(0.1)).flow_instance_id == "f1"
        assert (await queue.dequeue(0.1)).flow_instance_id == "f2"

    @pytest.mark.asyncio
    async def test_dequeue_timeout_returns_none(self):
        assert await InMemoryJobQueue().dequeue(0.01) is None

    @pytest.mark.asyncio
    async def test_retry_without_delay(self):
        queue = InMemoryJobQueue()
        await queue.retry(_job(), 0)

        assert await queue.size() == 1

    @pytest.mark.asyncio
    async def test_retry_with_delay(self):
        queue = InMemoryJobQueue()
        await queue.retry(_job(), 0.05)

        assert await queue.size() == 0
        assert queue.delayed == 1
        await asyncio.sleep(0.1)
        assert await queue.size() == 1
        assert queue.delayed == 0

    @pytest.mark.asyncio
    async def test_close_drops_delayed(self):
        queue = InMemoryJobQueue()
        await queue.retry(_job(), 0.05)

        await queue.close()
        await asyncio.sleep(0.1)

        assert await queue.size() == 0


@pytest.fixture
def redis_client():
    client = MagicMock()
    client.ping = AsyncMock(return_value=True)
    client.lpush = AsyncMock(return_value=1)
    client.brpop = AsyncMock(return_value=None)
    client.zadd = AsyncMock(return_value=1)
    client.zrem = AsyncMock(return_value=1)
    client.zrangebyscore = AsyncMock(return_value=[])
    client.llen = AsyncMock(return_value=0)
    client.aclose = AsyncMock()
    return client


@pytest.fixture
async def redis_queue(redis_client):
    queue = RedisJobQueue(RedisJobQueueOptions(redis_url="redis://test:6379/0", key="jobs"))
    with patch("redis.asyncio.from_url", return_value=redis_client):
        assert await queue.connect() is True
    yield queue
    await queue.close()


class TestRedisJobQueue:
    @pytest.mark.asyncio
    async def test_connect_failure(self, redis_client):
        redis_client.ping.side_effect = ConnectionError("refused")
        queue = RedisJobQueue(RedisJobQueueOptions(redis_url="redis://test:6379/0"))

        with patch("redis.asyncio.from_url", return_value=redis_client):
            assert await queue.connect() is False
        assert queue.connected is False

    @pytest.mark.asyncio
    async def test_not_connected_raises(self):
        queue = RedisJobQueue()

        with pytest.raises(FlowError) as exc_info:
            await queue.enqueue(_job())
        assert exc_info.value.code == "QUEUE_UNAVAILABLE"

    @pytest.mark.asyncio
    async def test_enqueue_pushes_json(self, redis_queue, redis_client):
        job = _job()

        await redis_queue.enqueue(job)

        key, payload = redis_client.lpush.call_args.args
        assert key == "jobs"
        assert Job.model_validate_json(payload) == job

    @pytest.mark.asyncio
    async def test_enqueue_failure_wrapped(self, redis_queue, redis_client):
        redis_client.lpush.side_effect = ConnectionError("gone")

        with pytest.raises(FlowError) as exc_info:
            await redis_queue.enqueue(_job())
        assert exc_info.value.code == "QUEUE_UNAVAILABLE"

    @pytest.mark.asyncio
    async def test_dequeue_parses_job(self, redis_queue, redis_client):
        job = _job()
        redis_client.brpop.return_value = ("jobs", job.model_dump_json())

        assert await redis_queue.dequeue(1) == job
        redis_client.brpop.assert_awaited_with(["jobs"], timeout=1)

    @pytest.mark.asyncio
    async def test_dequeue_timeout(self, redis_queue):
        assert await redis_queue.dequeue(1) is None

    @pytest.mark.asyncio
    async def test_retry_schedules_in_delayed_set(self, redis_queue, redis_client):
        await redis_queue.retry(_job(), 5)

        key, mapping = redis_client.zadd.call_args.args
        assert key == "jobs:delayed"
        assert len(mapping) == 1

    @pytest.mark.asyncio
    async def test_due_jobs_promoted_before_pop(self, redis_queue, redis_client):
        payload = _job().model_dump_json()
        redis_client.zrangebyscore.return_value = [payload]

        await redis_queue.dequeue(1)

        redis_client.zrem.assert_awaited_with("jobs:delayed", payload)
        redis_client.lpush.assert_awaited_with("jobs", payload)

    @pytest.mark.asyncio
    async def test_promotion_skipped_when_another_consumer_won(self, redis_queue, redis_client):
        redis_client.zrangebyscore.return_value = [_job().model_dump_json()]
        redis_client.zrem.return_value = 0

        await redis_queue.dequeue(1)

        redis_client.lpush.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_size(self, redis_queue, redis_client):
        redis_client.llen.return_value = 4

        assert await redis_queue.size() == 4

    @pytest.mark.asyncio
    async def test_close(self, redis_queue, redis_client):
        await redis_queue.close()

        redis_client.aclose.assert_awaited_once()
        assert redis_queue.connected is False
