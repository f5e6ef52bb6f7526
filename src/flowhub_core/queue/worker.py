"""Queue worker - drives queued jobs through the Run Manager."""

from __future__ import annotations

import asyncio
from typing import Any

from flowhub_core.config import QueueConfig
from flowhub_core.execution import ExecutionRecord, ExecutionStore, RunManager
from flowhub_core.logging import FlowLogger
from flowhub_core.telemetry import MetricLabels, get_metrics
from flowhub_core.types import ExecutionMode, LogLevel

from .jobs import Job, JobQueue


class QueueWorker:
    """Consume run jobs with bounded concurrency.

    Each job is started in immediate mode under the job's flow instance id,
    awaited to a terminal status and recorded in the store. A job whose
    processing faults is retried with exponential backoff and dropped after
    ``max_attempts``. A run that ends failed is an outcome, not a fault.
    A job whose run is already terminal in the store (cancelled while it
    waited, or finished by an earlier attempt) is skipped.
    """

    def __init__(
        self,
        queue: JobQueue,
        run_manager: RunManager,
        store: ExecutionStore | None = None,
        config: QueueConfig | None = None,
        logger: FlowLogger | None = None,
    ):
        """Initialize worker.

        Args:
            queue: Job queue to consume
            run_manager: Run manager that executes the jobs
            store: Store for execution records (defaults to the manager's)
            config: Queue configuration
            logger: Optional logger
        """
        self._queue = queue
        self._run_manager = run_manager
        self._store = store if store is not None else run_manager.store
        self._config = config or QueueConfig()
        self._logger = logger
        self._tasks: list[asyncio.Task[None]] = []
        self._running = False

        self.processed = 0
        self.retried = 0
        self.dropped = 0
        self.skipped = 0

    def _log(self, level: LogLevel, message: str, context: dict[str, Any] | None = None) -> None:
        if self._logger:
            self._logger._log(level, "queue", message, context)

    @property
    def running(self) -> bool:
        return self._running

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retrying after the given (1-based) attempt."""
        return self._config.backoff_seconds * 2 ** (attempt - 1)

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._tasks = [
            asyncio.create_task(self._consume(index), name=f"queue-worker-{index}")
            for index in range(self._config.concurrency)
        ]
        self._log(LogLevel.INFO, f"Queue worker started ({self._config.concurrency} consumers)")

    async def stop(self) -> None:
        self._running = False
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._log(LogLevel.INFO, "Queue worker stopped")

    async def _consume(self, index: int) -> None:
        while self._running:
            try:
                job = await self._queue.dequeue(self._config.poll_timeout)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._log(LogLevel.ERROR, f"Consumer {index} failed to dequeue: {e}")
                await asyncio.sleep(self._config.poll_timeout)
                continue

            if job is not None:
                await self.process(job)

    async def process(self, job: Job) -> bool:
        """Run one job to completion.

        Returns:
            True if the job was processed or skipped, False if it was retried or dropped
        """
        job.attempts += 1
        context = {
            "job_id": job.job_id,
            "flow_instance_id": job.flow_instance_id,
            "attempt": job.attempts,
        }

        try:
            if await self._already_finished(job):
                self.skipped += 1
                self._log(
                    LogLevel.INFO,
                    f"Job '{job.job_id}' skipped, run already finished",
                    context,
                )
                return True

            flow_instance_id = await self._run_manager.start(
                job.nodes,
                job.initial_state,
                flow_instance_id=job.flow_instance_id,
                workflow_id=job.workflow_id,
                mode=ExecutionMode.IMMEDIATE,
            )
            snapshot = await self._run_manager.wait(flow_instance_id)
            if self._store is not None:
                record = await self._store.get(flow_instance_id)
                started_at = record.started_at if record else job.enqueued_at
                await self._store.save(
                    ExecutionRecord.from_snapshot(
                        snapshot,
                        started_at=started_at,
                        completed_at=record.completed_at if record else None,
                        attempts=job.attempts,
                    )
                )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self._handle_fault(job, e, context)
            return False

        self.processed += 1
        self._record_metric(MetricLabels.STATUS_SUCCESS)
        self._log(
            LogLevel.INFO,
            f"Job '{job.job_id}' finished ({snapshot.status.value})",
            {**context, "status": snapshot.status.value},
        )
        return True

    async def _handle_fault(self, job: Job, error: Exception, context: dict[str, Any]) -> None:
        if job.attempts < self._config.max_attempts:
            delay = self.backoff_delay(job.attempts)
            await self._queue.retry(job, delay)
            self.retried += 1
            self._record_metric(MetricLabels.STATUS_RETRIED)
            self._log(
                LogLevel.WARN,
                f"Job '{job.job_id}' failed, retrying in {delay:.1f}s: {error}",
                {**context, "delay_seconds": delay},
            )
            return

        self.dropped += 1
        self._record_metric(MetricLabels.STATUS_ERROR)
        self._log(
            LogLevel.ERROR,
            f"Job '{job.job_id}' dropped after {job.attempts} attempts: {error}",
            context,
        )

    async def _already_finished(self, job: Job) -> bool:
        if self._store is None:
            return False
        record = await self._store.get(job.flow_instance_id)
        return record is not None and record.status.is_terminal

    def _record_metric(self, status: str) -> None:
        metrics = get_metrics()
        if metrics:
            metrics.record_job(status)

    def stats(self) -> dict[str, int]:
        return {
            "processed": self.processed,
            "retried": self.retried,
            "dropped": self.dropped,
            "skipped": self.skipped,
        }
