"""Queue worker integration - durable run jobs."""

from .jobs import (
    InMemoryJobQueue,
    Job,
    JobQueue,
    RedisJobQueue,
    RedisJobQueueOptions,
)
from .worker import QueueWorker

__all__ = [
    "Job",
    "JobQueue",
    "InMemoryJobQueue",
    "RedisJobQueue",
    "RedisJobQueueOptions",
    "QueueWorker",
]
