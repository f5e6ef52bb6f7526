"""Flow interpreter - executes one node graph against one State."""

from __future__ import annotations

import asyncio
import inspect
import time
import uuid
from collections.abc import Awaitable, Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from flowhub_core.config import ExecutionConfig
from flowhub_core.errors import ErrorFactory, FlowError, create_error, get_error_factory
from flowhub_core.hub import FlowEvent, Subscription, SuspensionHub
from flowhub_core.logging import FlowLogger, RunLogger
from flowhub_core.registry import NodeDefinition
from flowhub_core.telemetry import MetricLabels, instrument_node, instrument_run, record_result
from flowhub_core.types import ExecutionStatus, FlowEventType

from .context import NodeContext
from .state import StateHistory
from .types import (
    ERROR_EDGE,
    LOOP_EXIT_EDGE,
    PARALLEL_KEY,
    FlowSnapshot,
    StepRecord,
    count_nodes,
    generate_flow_instance_id,
    is_branch,
    is_parallel,
    is_parameterized_call,
    resolve_placeholders,
)

StatusCallback = Callable[["FlowInterpreter", ExecutionStatus], Awaitable[None] | None]
EventCallback = Callable[[FlowEvent], Awaitable[None] | None]


class FlowInterpreter:
    """
    Execute a node list for one flow instance.

    Core loop, left to right over the list:
    1. Check for cancellation and external pause
    2. Resolve the element (node, call, branch, sub-list, loop, fan-out)
    3. Invoke the implementation and classify its result into edge + output
    4. Record the step, merge mapping outputs into State, publish a step event

    Branch elements select on the previous edge and record no step of their
    own. A failing node either routes to its 'error' edge or fails the run.
    """

    def __init__(
        self,
        nodes: list[Any],
        *,
        scope: Mapping[str, Any],
        hub: SuspensionHub,
        initial_state: Mapping[str, Any] | None = None,
        flow_instance_id: str | None = None,
        workflow_id: str | None = None,
        config: ExecutionConfig | None = None,
        logger: FlowLogger | None = None,
        error_factory: ErrorFactory | None = None,
        on_status_change: StatusCallback | None = None,
        parent: FlowInterpreter | None = None,
    ):
        """Initialize interpreter.

        Args:
            nodes: Node references to run in order
            scope: node_id -> NodeDefinition (or bare callable) for this run
            hub: Suspension hub used for pauses and run events
            initial_state: Starting State (copied)
            flow_instance_id: Run id (generated when omitted)
            workflow_id: Optional workflow label for logs and metrics
            config: Execution configuration
            logger: Optional logger
            error_factory: Optional error factory
            on_status_change: Called (and awaited if needed) on every status change
            parent: Owning interpreter when running a parallel branch
        """
        self.nodes = list(nodes)
        self.scope = scope
        self.hub = hub
        self.flow_instance_id = flow_instance_id or generate_flow_instance_id()
        self.workflow_id = workflow_id
        self._config = config or ExecutionConfig()
        self._logger = logger
        self._error_factory = error_factory or get_error_factory()
        self._on_status_change = on_status_change

        self._state: dict[str, Any] = dict(initial_state or {})
        self._history = StateHistory(self._state, self._config.max_state_history)
        self.steps: list[StepRecord] = []
        self._last_output: Any = None
        self._last_edge: str | None = None

        # Run-wide control lives on the root interpreter; branches delegate to it
        self._parent = parent
        self._root: FlowInterpreter = parent._root if parent else self
        self.status = ExecutionStatus.PENDING
        self.error: FlowError | None = None
        self._cancel_requested = False
        self._resume_gate = asyncio.Event()
        self._resume_gate.set()
        self._active_pauses: set[str] = set()
        self._started = False
        self._listeners: list[tuple[Subscription, asyncio.Task[None]]] = []

        self._run_logger: RunLogger | None = (
            logger.run(self.flow_instance_id, workflow_id) if logger else None
        )

    # ── Observers ────────────────────────────────────────────────────

    @property
    def state(self) -> dict[str, Any]:
        """Copy of the current State."""
        return dict(self._state)

    @property
    def last_output(self) -> Any:
        return self._last_output

    @property
    def active_pauses(self) -> list[str]:
        return sorted(self._root._active_pauses)

    @property
    def total_nodes(self) -> int:
        return count_nodes(self.nodes, self.scope)

    def snapshot(self) -> FlowSnapshot:
        return FlowSnapshot(
            flow_instance_id=self.flow_instance_id,
            workflow_id=self.workflow_id,
            status=self.status,
            state=self.state,
            steps=list(self.steps),
            active_pauses=self.active_pauses,
            error=self.error.to_dict() if self.error else None,
        )

    # ── Lifecycle ────────────────────────────────────────────────────

    async def run(self) -> FlowSnapshot:
        """Execute the node list to a terminal status.

        Node failures and cancellation end the run with a status rather
        than raising. Task cancellation marks the run cancelled and then
        propagates.

        Returns:
            Final snapshot

        Raises:
            FlowError: INTERNAL_ERROR if the interpreter was already run
        """
        if self._started:
            raise create_error("INTERNAL_ERROR", detail=f"Run '{self.flow_instance_id}' already started")
        self._started = True

        started = time.perf_counter()
        if self._run_logger:
            self._run_logger.started(self.total_nodes)

        final = ExecutionStatus.COMPLETED
        async with instrument_run(self.flow_instance_id, self.workflow_id) as telemetry_result:
            await self._set_status(ExecutionStatus.RUNNING)
            try:
                await self._run_list(self.nodes)
                if self._cancel_requested:
                    # Cancelled while the last node was running
                    raise create_error(
                        "CANCELLED", reason="run cancelled", flow_instance_id=self.flow_instance_id
                    )
            except FlowError as e:
                final = self._classify_failure(e, telemetry_result)
            except asyncio.CancelledError:
                self._cancel_requested = True
                record_result(telemetry_result, MetricLabels.STATUS_CANCELLED)
                await self._finish(ExecutionStatus.CANCELLED, started)
                raise
            except Exception as e:
                error = self._error_factory.from_exception(e, flow_instance_id=self.flow_instance_id)
                final = self._classify_failure(error, telemetry_result)

        await self._finish(final, started)
        return self.snapshot()

    def pause(self) -> bool:
        """Request a pause at the next node boundary.

        Returns:
            False if the run is already terminal
        """
        if self.status.is_terminal:
            return False
        self._resume_gate.clear()
        return True

    def resume(self) -> bool:
        """Clear an external pause request.

        Returns:
            True if a pause request was pending
        """
        if self.status.is_terminal or self._resume_gate.is_set():
            return False
        self._resume_gate.set()
        return True

    def cancel(self) -> bool:
        """Request cancellation and reject this run's hub suspensions.

        Returns:
            False if the run is already terminal
        """
        if self.status.is_terminal:
            return False
        self._cancel_requested = True
        self._resume_gate.set()
        self.hub.cancel_for_instance(self.flow_instance_id)
        return True

    @property
    def cancel_requested(self) -> bool:
        return self._root._cancel_requested

    @property
    def pause_requested(self) -> bool:
        return not self._root._resume_gate.is_set()

    # ── Graph walking ────────────────────────────────────────────────

    async def _run_list(self, elements: list[Any], following: Any = None) -> None:
        """Run a node list; ``following`` is the element after it, for lookahead."""
        for index, element in enumerate(elements):
            next_element = elements[index + 1] if index + 1 < len(elements) else following
            await self._run_element(element, next_element)

    async def _run_element(self, element: Any, next_element: Any = None) -> None:
        """Dispatch one graph element by shape.

        Args:
            element: Node id, definition, callable, sub-list, loop, parameterized
                call, branch mapping or parallel fan-out
            next_element: Element after this one, used to narrow edge mappings

        Raises:
            FlowError: INVALID_GRAPH for an element of no known shape,
                UNKNOWN_NODE for an id missing from the scope
        """
        if isinstance(element, NodeDefinition):
            await self._invoke(element, None, next_element)
        elif isinstance(element, str):
            await self._invoke(self._resolve(element), None, next_element)
        elif isinstance(element, list):
            if len(element) == 1 and isinstance(element[0], list) and element[0]:
                await self._run_loop(element[0][0], element[0][1:])
            else:
                await self._run_list(element, next_element)
        elif is_parallel(element):
            await self._run_parallel(element[PARALLEL_KEY])
        elif is_parameterized_call(element, self.scope):
            (node_id, params), = element.items()
            await self._invoke(self._resolve(node_id), params, next_element)
        elif isinstance(element, Mapping):
            await self._run_branch(element, next_element)
        elif callable(element):
            name = getattr(element, "__name__", None) or "anonymous"
            await self._invoke(NodeDefinition(id=name, implementation=element), None, next_element)
        else:
            raise create_error(
                "INVALID_GRAPH",
                reason=f"unsupported element of type {type(element).__name__}",
                flow_instance_id=self.flow_instance_id,
            )

    def _resolve(self, node_id: str) -> NodeDefinition:
        """Look ``node_id`` up in the scope; bare callables get a synthetic definition."""
        target = self.scope.get(node_id)
        if target is None:
            raise create_error(
                "UNKNOWN_NODE", node_id=node_id, flow_instance_id=self.flow_instance_id
            )
        if isinstance(target, NodeDefinition):
            return target
        return NodeDefinition(id=node_id, implementation=target)

    async def _run_branch(self, branch: Mapping[str, Any], next_element: Any) -> None:
        """Run the entry of ``branch`` keyed by the previous edge, if there is one."""
        edge = self._last_edge
        if edge is None or edge not in branch:
            return

        if self._run_logger:
            self._run_logger.node(f"branch:{edge}").branched(edge)

        # A taken branch consumes the edge; nodes inside set their own
        self._last_edge = None
        await self._run_element(branch[edge], next_element)

    async def _run_loop(self, controller: Any, actions: list[Any]) -> None:
        """Alternate ``controller`` and ``actions`` until the controller returns "exit".

        Args:
            controller: Element run at the start of every iteration
            actions: Elements run after the controller unless it exited

        Stops with a warning after ``execution.max_loop_iterations`` iterations.
        """
        limit = self._config.max_loop_iterations
        lookahead = actions[0] if actions else None

        for _ in range(limit):
            await self._run_element(controller, lookahead)
            if self._last_edge == LOOP_EXIT_EDGE:
                return
            await self._run_list(actions)

        if self._run_logger:
            self._run_logger.warning(
                f"Loop stopped after reaching {limit} iterations", max_iterations=limit
            )

    async def _run_parallel(self, branches: list[Any]) -> None:
        """Run each branch in a child interpreter on a copy of the State.

        Child steps join this log; changed keys merge back in declaration
        order, so later branches win conflicts. The fan-out records one step
        whose output lists each branch's last output.

        Args:
            branches: Elements (or element lists), one per concurrent branch

        Raises:
            FlowError: The first branch failure, after the other branches
                have been cancelled
        """
        await self._checkpoint()

        base = dict(self._state)
        children = [
            FlowInterpreter(
                [],
                scope=self.scope,
                hub=self.hub,
                initial_state=base,
                flow_instance_id=self.flow_instance_id,
                workflow_id=self.workflow_id,
                config=self._config,
                logger=self._logger,
                error_factory=self._error_factory,
                parent=self,
            )
            for _ in branches
        ]
        for child in children:
            child._last_output = self._last_output

        started = time.perf_counter()
        timestamp = datetime.now(UTC)
        tasks = [
            asyncio.create_task(child._run_list(branch if isinstance(branch, list) else [branch]))
            for child, branch in zip(children, branches, strict=True)
        ]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        finally:
            for child in children:
                self.steps.extend(child.steps)

        for child in children:
            changed = {
                key: value
                for key, value in child._state.items()
                if key not in base or base[key] is not value
            }
            self._state.update(changed)
            if changed:
                self._history.commit()

        outputs = [child._last_output for child in children]
        step = StepRecord(
            node_id=PARALLEL_KEY,
            input={"branches": len(branches)},
            output=outputs,
            duration_ms=int((time.perf_counter() - started) * 1000),
            timestamp=timestamp,
        )
        self._record(step)
        self._last_output = outputs
        self._last_edge = None

    # ── Node invocation ──────────────────────────────────────────────

    async def _invoke(
        self,
        definition: NodeDefinition,
        params: Mapping[str, Any] | None,
        next_element: Any,
    ) -> None:
        """Call one node and record its step.

        Params are resolved against the State first. A mapping output merges
        into the State. A failure routes to the 'error' edge when the node or
        the next branch declares one and is raised otherwise.

        Args:
            definition: Node to call
            params: Raw params from a parameterized call, or None
            next_element: Element after the node, for edge narrowing

        Raises:
            FlowError: The node's classified error when it is not routed,
                CANCELLED when the node swallowed the rejection of its own
                suspension
        """
        await self._checkpoint()

        resolved = resolve_placeholders(dict(params or {}), self._state)
        node_log = self._run_logger.node(definition.id) if self._run_logger else None
        if node_log:
            node_log.started(resolved)

        context = NodeContext(self, definition, input=self._last_output)
        started = time.perf_counter()
        timestamp = datetime.now(UTC)
        edge: str | None = None
        output: Any = None
        error: FlowError | None = None

        async with instrument_node(self.flow_instance_id, definition.id) as telemetry_result:
            try:
                raw = await self._call(definition, resolved, context)
                edge, output = await self._classify(definition, raw, next_element, context)
            except FlowError as e:
                if e.code == "CANCELLED":
                    raise
                error = e.with_context(node_id=definition.id, flow_instance_id=self.flow_instance_id)
            except Exception as e:
                error = self._error_factory.from_exception(
                    e, node_id=definition.id, flow_instance_id=self.flow_instance_id
                )
            if error:
                record_result(telemetry_result, MetricLabels.STATUS_ERROR, error.code)

        # A node that swallowed the CANCELLED rejection of its own suspension
        # ends the run without a step; any other node finishing after a
        # cancel is recorded and the next boundary stops the run
        if context._suspension_cancelled:
            raise create_error("CANCELLED", reason="run cancelled", flow_instance_id=self.flow_instance_id)

        duration_ms = int((time.perf_counter() - started) * 1000)

        if error is None:
            self._record(
                StepRecord(
                    node_id=definition.id,
                    input=resolved,
                    output=output,
                    edge=edge,
                    duration_ms=duration_ms,
                    timestamp=timestamp,
                )
            )
            if isinstance(output, Mapping):
                self._state.update(output)
                self._history.commit()
            self._last_output = output
            self._last_edge = edge
            if node_log:
                node_log.completed(duration_ms, edge, output)
            return

        routed = definition.has_edge(ERROR_EDGE) or (
            is_branch(next_element, self.scope) and ERROR_EDGE in next_element
        )
        self._record(
            StepRecord(
                node_id=definition.id,
                input=resolved,
                output=error.to_dict() if routed else None,
                edge=ERROR_EDGE if routed else None,
                duration_ms=duration_ms,
                timestamp=timestamp,
                error=error.to_dict(),
            )
        )
        if node_log:
            node_log.failed(error, routed_to_error_edge=routed)
        if not routed:
            raise error

        self._last_output = error.to_dict()
        self._last_edge = ERROR_EDGE

    async def _call(
        self,
        definition: NodeDefinition,
        params: dict[str, Any],
        context: NodeContext,
    ) -> Any:
        """Run the implementation, awaiting it under ``execution.node_timeout`` if async.

        Raises:
            FlowError: NODE_TIMEOUT when the bound is exceeded
        """
        result = definition.implementation(params, context)
        if not inspect.isawaitable(result):
            return result

        timeout = self._config.node_timeout
        if timeout is None:
            return await result

        try:
            async with asyncio.timeout(timeout) as cm:
                context._timeout = cm
                return await result
        except TimeoutError as e:
            raise create_error(
                "NODE_TIMEOUT",
                node_id=definition.id,
                timeout_seconds=timeout,
                flow_instance_id=self.flow_instance_id,
            ) from e

    async def _classify(
        self,
        definition: NodeDefinition,
        raw: Any,
        next_element: Any,
        context: NodeContext,
    ) -> tuple[str | None, Any]:
        """Split a node result into (edge, output)."""
        branch_keys: set[str] = set()
        if is_branch(next_element, self.scope):
            branch_keys = {key for key in next_element if isinstance(key, str)}
        known = definition.edge_names | branch_keys

        if isinstance(raw, str) and raw in known:
            return raw, None

        if not (
            isinstance(raw, Mapping)
            and raw
            and all(isinstance(key, str) and key in known for key in raw)
        ):
            return None, raw

        keys = list(raw)
        candidates = [key for key in keys if key in branch_keys]
        if len(candidates) == 1:
            edge = candidates[0]
        elif not candidates and len(keys) == 1:
            edge = keys[0]
        else:
            raise create_error(
                "AMBIGUOUS_EDGE",
                node_id=definition.id,
                edges=", ".join(candidates or keys),
                flow_instance_id=self.flow_instance_id,
            )

        value = raw[edge]
        if callable(value):
            value = value(context)
            if inspect.isawaitable(value):
                value = await value
        return edge, value

    def _record(self, step: StepRecord) -> None:
        """Append ``step`` and publish it as a step event."""
        self.steps.append(step)
        self.hub.events.publish(
            FlowEvent(
                type=FlowEventType.STEP,
                flow_instance_id=self.flow_instance_id,
                data={"step": step.to_dict(), "completed_steps": len(self._root.steps)},
            )
        )

    # ── Control points ───────────────────────────────────────────────

    async def _checkpoint(self) -> None:
        """Node boundary: honor cancellation and external pause."""
        root = self._root
        if root._cancel_requested:
            raise create_error("CANCELLED", reason="run cancelled", flow_instance_id=self.flow_instance_id)

        if not root._resume_gate.is_set():
            await root._set_status(ExecutionStatus.PAUSED)
            if root._run_logger:
                root._run_logger.paused()
            await root._resume_gate.wait()
            if root._cancel_requested:
                raise create_error(
                    "CANCELLED", reason="run cancelled", flow_instance_id=self.flow_instance_id
                )
            await root._set_status(ExecutionStatus.RUNNING)
            if root._run_logger:
                root._run_logger.resumed()

    async def _suspend(
        self,
        context: NodeContext,
        details: dict[str, Any] | None,
        pause_id: str | None,
    ) -> Any:
        """Park ``context``'s node in the hub until it is resumed.

        The run is paused while any suspension is outstanding. Time spent
        suspended does not count against the node timeout.

        Args:
            context: Context of the suspending node
            details: Description for whoever resumes
            pause_id: Explicit id, or None to generate one

        Returns:
            The resume payload

        Raises:
            FlowError: CANCELLED if the run is cancelled before or during the
                suspension
        """
        root = self._root
        if root._cancel_requested:
            context._suspension_cancelled = True
            raise create_error("CANCELLED", reason="run cancelled", flow_instance_id=self.flow_instance_id)

        pause_id = pause_id or f"{self.flow_instance_id}:{context.node_id}:{uuid.uuid4().hex[:8]}"
        future = self.hub.request_pause(pause_id, details, self.flow_instance_id)
        root._active_pauses.add(pause_id)
        await root._set_status(ExecutionStatus.PAUSED)
        if root._run_logger:
            root._run_logger.paused(pause_id)

        # Time spent waiting for a resume does not count against node_timeout
        timeout = context._timeout
        loop = asyncio.get_running_loop()
        remaining = None
        if timeout is not None and timeout.when() is not None:
            remaining = timeout.when() - loop.time()
            timeout.reschedule(None)

        try:
            data = await future
        except FlowError as e:
            if e.code == "CANCELLED":
                context._suspension_cancelled = True
            raise
        finally:
            root._active_pauses.discard(pause_id)
            if timeout is not None and remaining is not None:
                timeout.reschedule(loop.time() + remaining)

        if not root._active_pauses and not root._cancel_requested:
            await root._set_status(ExecutionStatus.RUNNING)
            if root._run_logger:
                root._run_logger.resumed(pause_id)
        return data

    def _emit_custom(self, node_id: str, name: str, data: Any) -> None:
        """Publish a node's custom event as a progress event on the run topic."""
        self.hub.events.publish(
            FlowEvent(
                type=FlowEventType.PROGRESS,
                flow_instance_id=self.flow_instance_id,
                data={"event": name, "node_id": node_id, "data": data},
            )
        )

    def _prior_steps(self) -> list[StepRecord]:
        """Steps recorded so far, including those of enclosing interpreters."""
        inherited = self._parent._prior_steps() if self._parent else []
        return inherited + self.steps

    def _listen(self, node_id: str, name: str, callback: EventCallback) -> Callable[[], None]:
        """Deliver this run's events named ``name`` to ``callback`` until the run ends.

        ``name`` matches an event type ("step", "progress", ...) or the name of
        a custom event published with ``NodeContext.emit``.

        Returns:
            Function that removes the listener early
        """
        root = self._root
        subscription = self.hub.events.subscribe(self.flow_instance_id)

        async def deliver() -> None:
            async for event in subscription:
                if event.type.value != name and event.data.get("event") != name:
                    continue
                try:
                    result = callback(event)
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    if root._run_logger:
                        root._run_logger.warning(
                            f"Listener of node '{node_id}' failed on '{name}': {e}",
                            node_id=node_id,
                        )

        task = asyncio.create_task(deliver(), name=f"listener:{self.flow_instance_id}:{node_id}")
        root._listeners.append((subscription, task))
        return subscription.close

    async def _stop_listeners(self) -> None:
        # Closing lets each listener drain what was published before the end
        listeners, self._listeners = self._listeners, []
        for subscription, _ in listeners:
            subscription.close()
        if listeners:
            await asyncio.gather(*(task for _, task in listeners), return_exceptions=True)

    # ── Status ───────────────────────────────────────────────────────

    async def _set_status(self, status: ExecutionStatus) -> None:
        """Move to ``status`` and notify the status callback. Terminal status is final."""
        if self.status == status or self.status.is_terminal:
            return
        self.status = status
        if self._on_status_change:
            result = self._on_status_change(self, status)
            if inspect.isawaitable(result):
                await result

    def _classify_failure(self, error: FlowError, telemetry_result: dict[str, Any]) -> ExecutionStatus:
        """Map a run-ending error to cancelled or failed, keeping the error when failed."""
        if error.code == "CANCELLED" or self._cancel_requested:
            record_result(telemetry_result, MetricLabels.STATUS_CANCELLED)
            return ExecutionStatus.CANCELLED
        self.error = error
        record_result(telemetry_result, MetricLabels.STATUS_ERROR, error.code)
        return ExecutionStatus.FAILED

    async def _finish(self, status: ExecutionStatus, started: float) -> None:
        """Set the terminal status, stop node listeners and log the outcome.

        Args:
            status: Terminal status
            started: ``time.perf_counter()`` value at run start
        """
        duration_ms = int((time.perf_counter() - started) * 1000)
        await self._set_status(status)
        await self._stop_listeners()
        if not self._run_logger:
            return
        if status == ExecutionStatus.COMPLETED:
            self._run_logger.completed(duration_ms, len(self.steps))
        elif status == ExecutionStatus.FAILED and self.error:
            self._run_logger.failed(self.error, duration_ms)
        elif status == ExecutionStatus.CANCELLED:
            self._run_logger.cancelled(len(self.steps))
