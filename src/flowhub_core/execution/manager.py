"""Run Manager - directory of live flow instances."""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from collections.abc import AsyncIterator, Mapping
from datetime import UTC, datetime
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from flowhub_core.config import ExecutionConfig
from flowhub_core.engine import FlowInterpreter, FlowSnapshot, count_nodes, generate_flow_instance_id
from flowhub_core.errors import ErrorFactory, create_error
from flowhub_core.hub import FlowEvent, SuspensionHub
from flowhub_core.logging import FlowLogger
from flowhub_core.registry import NodeRegistry
from flowhub_core.types import ExecutionMode, ExecutionStatus, FlowEventType, LogLevel

from .complexity import ComplexityAnalyzer
from .store import ExecutionStore
from .types import ExecutionRecord, RunHandle, RunProgress, RunSummary

if TYPE_CHECKING:
    from flowhub_core.queue import JobQueue


class RunManager:
    """Owns every flow instance of this process.

    Provides:
    - Immediate or queued dispatch (auto mode asks the ComplexityAnalyzer)
    - Idempotent start by flow instance id
    - Status, progress, pause, resume, cancel and wait by id
    - Event streaming per run
    - Execution records on queueing, start, suspension and terminal status

    A queued run may be picked up by a worker in another process; its
    pending handle here follows the stored record of that run.
    """

    # Seconds between store reads while waiting on a run another process owns
    store_poll_interval = 0.1

    def __init__(
        self,
        registry: NodeRegistry,
        hub: SuspensionHub,
        config: ExecutionConfig | None = None,
        logger: FlowLogger | None = None,
        queue: JobQueue | None = None,
        store: ExecutionStore | None = None,
        analyzer: ComplexityAnalyzer | None = None,
        error_factory: ErrorFactory | None = None,
    ):
        """Initialize run manager.

        Args:
            registry: Node registry providing the base scope
            hub: Suspension hub shared by all runs
            config: Execution configuration
            logger: Optional logger
            queue: Job queue for queued mode (None = immediate only)
            store: Execution record store (None = no persistence)
            analyzer: Complexity analyzer for auto mode
            error_factory: Factory classifying node exceptions
        """
        self._registry = registry
        self._hub = hub
        self._config = config or ExecutionConfig()
        self._logger = logger
        self._queue = queue
        self._store = store
        self._analyzer = analyzer or ComplexityAnalyzer(self._config.queue_node_threshold)
        self._error_factory = error_factory
        self._runs: OrderedDict[str, RunHandle] = OrderedDict()

    def _log(self, level: LogLevel, message: str, context: dict[str, Any] | None = None) -> None:
        if self._logger:
            self._logger._log(level, "run", message, context)

    @property
    def hub(self) -> SuspensionHub:
        return self._hub

    @property
    def store(self) -> ExecutionStore | None:
        return self._store

    # ── Dispatch ─────────────────────────────────────────────────────

    async def start(
        self,
        nodes: list[Any],
        initial_state: Mapping[str, Any] | None = None,
        *,
        flow_instance_id: str | None = None,
        workflow_id: str | None = None,
        mode: ExecutionMode | None = None,
        scope: Mapping[str, Any] | None = None,
    ) -> str:
        """Start (or enqueue) a run.

        Args:
            nodes: Node references to run
            initial_state: Starting State
            flow_instance_id: Run id; generated when omitted
            workflow_id: Optional workflow label
            mode: Dispatch mode; None uses execution.default_mode
            scope: Extra node_id -> definition or callable for this run only

        Returns:
            Flow instance id. Returns at once; the run proceeds in the background.

        Raises:
            FlowError: QUEUE_UNAVAILABLE if queued mode has no queue
        """
        flow_instance_id = flow_instance_id or generate_flow_instance_id()
        requested = mode or self._config.default_mode

        existing = self._runs.get(flow_instance_id)
        if existing is not None:
            # The worker path: a pending run of ours is picked up from the queue
            if (
                requested == ExecutionMode.IMMEDIATE
                and existing.interpreter is None
                and existing.status == ExecutionStatus.PENDING
            ):
                self._begin(existing)
            return flow_instance_id

        run_scope = self._build_scope(scope)
        resolved = self._resolve_mode(requested, nodes, run_scope)

        handle = RunHandle(
            flow_instance_id=flow_instance_id,
            nodes=list(nodes),
            scope=run_scope,
            mode=resolved,
            initial_state=dict(initial_state or {}),
            workflow_id=workflow_id,
        )
        self._runs[flow_instance_id] = handle

        if resolved == ExecutionMode.QUEUED:
            await self._enqueue(handle)
        else:
            self._begin(handle)

        return flow_instance_id

    def _build_scope(self, extra: Mapping[str, Any] | None) -> Mapping[str, Any]:
        base = self._registry.scope()
        if not extra:
            return base
        return MappingProxyType({**base, **extra})

    def _resolve_mode(
        self,
        mode: ExecutionMode,
        nodes: list[Any],
        scope: Mapping[str, Any],
    ) -> ExecutionMode:
        if mode == ExecutionMode.QUEUED and self._queue is None:
            raise create_error(
                "QUEUE_UNAVAILABLE", detail="Queued mode requested but no job queue is configured"
            )
        if mode != ExecutionMode.AUTO:
            return mode
        if self._queue is None:
            return ExecutionMode.IMMEDIATE

        report = self._analyzer.analyze(nodes, scope)
        if report.reasons:
            self._log(LogLevel.DEBUG, f"Queueing run: {'; '.join(report.reasons)}")
        return report.recommended_mode

    async def _enqueue(self, handle: RunHandle) -> None:
        from flowhub_core.queue import Job

        job = Job(
            flow_instance_id=handle.flow_instance_id,
            nodes=handle.nodes,
            initial_state=handle.initial_state,
            workflow_id=handle.workflow_id,
        )
        try:
            await self._queue.enqueue(job)  # type: ignore[union-attr]
        except Exception:
            self._runs.pop(handle.flow_instance_id, None)
            raise

        self._log(
            LogLevel.INFO,
            f"Run '{handle.flow_instance_id}' queued as job '{job.job_id}'",
            {"flow_instance_id": handle.flow_instance_id, "job_id": job.job_id},
        )
        await self._persist(handle, handle.snapshot())

    def _begin(self, handle: RunHandle) -> None:
        handle.interpreter = FlowInterpreter(
            handle.nodes,
            scope=handle.scope,
            hub=self._hub,
            initial_state=handle.initial_state,
            flow_instance_id=handle.flow_instance_id,
            workflow_id=handle.workflow_id,
            config=self._config,
            logger=self._logger,
            error_factory=self._error_factory,
            on_status_change=self._on_status_change,
        )
        handle.task = asyncio.create_task(
            handle.interpreter.run(), name=f"flow:{handle.flow_instance_id}"
        )

    # ── Queries ──────────────────────────────────────────────────────

    def _get(self, flow_instance_id: str) -> RunHandle:
        handle = self._runs.get(flow_instance_id)
        if handle is None:
            raise create_error("NOT_FOUND", kind="Run", identifier=flow_instance_id)
        return handle

    def get_status(self, flow_instance_id: str) -> ExecutionStatus:
        """Current status of a run.

        Raises:
            FlowError: NOT_FOUND for an unknown id
        """
        return self._get(flow_instance_id).status

    def get_progress(self, flow_instance_id: str) -> RunProgress:
        """Progress of a run.

        Raises:
            FlowError: NOT_FOUND for an unknown id
        """
        handle = self._get(flow_instance_id)
        snapshot = handle.snapshot()
        return RunProgress(
            status=handle.status,
            completed_steps=len(snapshot.steps),
            total_steps=count_nodes(handle.nodes, handle.scope),
            last_output=snapshot.last_output,
        )

    async def refresh(self, flow_instance_id: str) -> RunProgress:
        """Progress of a run after syncing a pending handle with the store.

        A queued run that a worker in another process started, finished or
        cancelled is only visible here through its execution record.

        Raises:
            FlowError: NOT_FOUND for an unknown id
        """
        handle = self._get(flow_instance_id)
        await self._refresh(handle)
        return self.get_progress(flow_instance_id)

    async def _refresh(self, handle: RunHandle) -> None:
        if self._store is None or handle.interpreter is not None or handle.status.is_terminal:
            return
        try:
            record = await self._store.get(handle.flow_instance_id)
        except Exception as e:
            self._log(
                LogLevel.WARN,
                f"Failed to read record of run '{handle.flow_instance_id}': {e}",
                {"flow_instance_id": handle.flow_instance_id},
            )
            return
        if record is None or record.status == ExecutionStatus.PENDING:
            return

        handle.record = record
        handle._status = record.status
        if record.status.is_terminal:
            handle.completed_at = record.completed_at or datetime.now(UTC)
            self._hub.events.publish(self._terminal_event(handle.snapshot()))
            self._hub.events.close(handle.flow_instance_id)
            handle.done.set()
            self._evict()

    def snapshot(self, flow_instance_id: str) -> FlowSnapshot:
        return self._get(flow_instance_id).snapshot()

    def list_runs(self, status: ExecutionStatus | None = None) -> list[RunSummary]:
        return [
            RunSummary(
                flow_instance_id=handle.flow_instance_id,
                status=handle.status,
                mode=handle.mode,
                created_at=handle.created_at,
                workflow_id=handle.workflow_id,
                completed_at=handle.completed_at,
            )
            for handle in self._runs.values()
            if status is None or handle.status == status
        ]

    def __contains__(self, flow_instance_id: object) -> bool:
        return flow_instance_id in self._runs

    # ── Control ──────────────────────────────────────────────────────

    def pause(self, flow_instance_id: str) -> bool:
        """Ask a run to pause at its next node boundary."""
        interpreter = self._get(flow_instance_id).interpreter
        return interpreter.pause() if interpreter else False

    def resume(self, flow_instance_id: str, data: Any = None) -> bool:
        """Resume a run suspended in the hub, or clear an external pause.

        Args:
            flow_instance_id: Run id
            data: Payload handed to the suspended node

        Returns:
            False if the run had nothing to resume
        """
        interpreter = self._get(flow_instance_id).interpreter
        if interpreter is None:
            return False
        for pause_id in interpreter.active_pauses:
            if self._hub.resume(pause_id, data):
                return True
        return interpreter.resume()

    async def cancel(self, flow_instance_id: str) -> bool:
        """Cancel a run.

        Returns:
            False if the run was already terminal or is running in another
            process
        """
        handle = self._get(flow_instance_id)
        await self._refresh(handle)
        if handle.status.is_terminal:
            return False

        if handle.record is not None:
            self._log(
                LogLevel.WARN,
                f"Run '{flow_instance_id}' is owned by another worker, not cancelled",
                {"flow_instance_id": flow_instance_id},
            )
            return False

        if handle.interpreter is None:
            # Pending in the queue; the worker will find it cancelled in the store
            handle._status = ExecutionStatus.CANCELLED
            await self._finalize(handle, handle.snapshot())
            return True

        return handle.interpreter.cancel()

    async def wait(self, flow_instance_id: str, timeout: float | None = None) -> FlowSnapshot:
        """Wait for a run to reach a terminal status.

        Raises:
            FlowError: NOT_FOUND for an unknown id
            TimeoutError: If the run is still live after ``timeout`` seconds
        """
        handle = self._get(flow_instance_id)
        if handle.interpreter is None and self._store is not None:
            await asyncio.wait_for(self._wait_pending(handle), timeout)
        else:
            await asyncio.wait_for(handle.done.wait(), timeout)
        return handle.snapshot()

    async def _wait_pending(self, handle: RunHandle) -> None:
        while not handle.done.is_set():
            await self._refresh(handle)
            if handle.done.is_set():
                return
            try:
                await asyncio.wait_for(handle.done.wait(), self.store_poll_interval)
            except TimeoutError:
                continue

    async def stream(self, flow_instance_id: str) -> AsyncIterator[FlowEvent]:
        """Events of one run: progress first, ending with complete or error.

        Raises:
            FlowError: NOT_FOUND for an unknown id
        """
        handle = self._get(flow_instance_id)
        subscription = self._hub.events.subscribe(flow_instance_id)
        try:
            yield self._progress_event(handle)
            if handle.status.is_terminal:
                yield self._terminal_event(handle.snapshot())
                return
            async for event in subscription:
                yield event
                if event.is_terminal:
                    return
        finally:
            subscription.close()

    async def shutdown(self) -> None:
        """Cancel every live run and wait for them to finish."""
        tasks = []
        for handle in list(self._runs.values()):
            if handle.status.is_terminal:
                continue
            await self.cancel(handle.flow_instance_id)
            if handle.task is not None:
                tasks.append(handle.task)

        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ── Status callbacks ─────────────────────────────────────────────

    async def _on_status_change(self, interpreter: FlowInterpreter, status: ExecutionStatus) -> None:
        handle = self._runs.get(interpreter.flow_instance_id)
        if handle is None:
            return

        self._hub.events.publish(self._progress_event(handle))

        if status in (ExecutionStatus.RUNNING, ExecutionStatus.PAUSED):
            await self._persist(handle, interpreter.snapshot())
        elif status.is_terminal:
            await self._finalize(handle, interpreter.snapshot())

    async def _finalize(self, handle: RunHandle, snapshot: FlowSnapshot) -> None:
        handle.completed_at = datetime.now(UTC)
        self._hub.events.publish(self._terminal_event(snapshot))
        self._hub.events.close(handle.flow_instance_id)
        await self._persist(handle, snapshot)
        handle.done.set()
        self._evict()

    async def _persist(self, handle: RunHandle, snapshot: FlowSnapshot) -> None:
        if self._store is None:
            return
        record = ExecutionRecord.from_snapshot(
            snapshot, started_at=handle.created_at, completed_at=handle.completed_at
        )
        try:
            await self._store.save(record)
        except Exception as e:
            self._log(
                LogLevel.ERROR,
                f"Failed to persist run '{handle.flow_instance_id}': {e}",
                {"flow_instance_id": handle.flow_instance_id},
            )

    def _evict(self) -> None:
        terminal = [fid for fid, handle in self._runs.items() if handle.status.is_terminal]
        excess = len(terminal) - self._config.max_runs
        for fid in terminal[: max(excess, 0)]:
            del self._runs[fid]

    def _progress_event(self, handle: RunHandle) -> FlowEvent:
        progress = self.get_progress(handle.flow_instance_id)
        return FlowEvent(
            type=FlowEventType.PROGRESS,
            flow_instance_id=handle.flow_instance_id,
            data={
                "status": progress.status.value,
                "completed_steps": progress.completed_steps,
                "total_steps": progress.total_steps,
                "last_output": progress.last_output,
            },
        )

    def _terminal_event(self, snapshot: FlowSnapshot) -> FlowEvent:
        failed = snapshot.status == ExecutionStatus.FAILED
        return FlowEvent(
            type=FlowEventType.ERROR if failed else FlowEventType.COMPLETE,
            flow_instance_id=snapshot.flow_instance_id,
            data={
                "status": snapshot.status.value,
                "state": snapshot.state,
                "completed_steps": len(snapshot.steps),
                "error": snapshot.error,
            },
        )
