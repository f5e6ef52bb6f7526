"""Unit tests for FlowInterpreter."""

import asyncio

import pytest

from flowhub_core.config import ExecutionConfig
from flowhub_core.engine import PARALLEL_KEY, FlowInterpreter
from flowhub_core.errors import FlowError, create_error
from flowhub_core.hub import SuspensionHub
from flowhub_core.registry import NodeDefinition, NodeEdge
from flowhub_core.types import ExecutionStatus, FlowEventType


def _interpreter(nodes, scope=None, hub=None, **kwargs) -> FlowInterpreter:
    return FlowInterpreter(nodes, scope=scope or {}, hub=hub if hub is not None else SuspensionHub(), **kwargs)


def _edges(*names: str) -> tuple[NodeEdge, ...]:
    return tuple(NodeEdge(name) for name in names)


async def _until(predicate, timeout: float = 1.0) -> None:
    async def poll():
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), timeout)


class TestLinearExecution:
    """Tests for sequential node lists."""

    @pytest.mark.asyncio
    async def test_outputs_fold_into_state(self):
        scope = {
            "a": lambda params, ctx: {"x": 1},
            "b": lambda params, ctx: {"y": 2, "x": 3},
            "c": lambda params, ctx: "plain value",
        }
        interpreter = _interpreter(["a", "b", "c"], scope, initial_state={"seed": True})

        snapshot = await interpreter.run()

        assert snapshot.status == ExecutionStatus.COMPLETED
        assert snapshot.state == {"seed": True, "x": 3, "y": 2}
        assert [step.node_id for step in snapshot.steps] == ["a", "b", "c"]
        assert snapshot.last_output == "plain value"

    @pytest.mark.asyncio
    async def test_async_implementation(self):
        async def fetch(params, ctx):
            await asyncio.sleep(0)
            return {"fetched": params["url"]}

        interpreter = _interpreter([{"fetch": {"url": "https://example.test"}}], {"fetch": fetch})

        snapshot = await interpreter.run()

        assert snapshot.state == {"fetched": "https://example.test"}
        assert snapshot.steps[0].input == {"url": "https://example.test"}

    @pytest.mark.asyncio
    async def test_bare_callable_element(self):
        def shout(params, ctx):
            return {"shout": "HI"}

        snapshot = await _interpreter([shout]).run()

        assert snapshot.steps[0].node_id == "shout"
        assert snapshot.state == {"shout": "HI"}

    @pytest.mark.asyncio
    async def test_node_definition_element(self):
        definition = NodeDefinition(id="inline", implementation=lambda p, c: {"ok": True})

        snapshot = await _interpreter([definition]).run()

        assert snapshot.steps[0].node_id == "inline"

    @pytest.mark.asyncio
    async def test_placeholders_resolved_from_state(self):
        scope = {"echo": lambda params, ctx: {"got": params["who"]}}
        interpreter = _interpreter(
            [{"echo": {"who": "${user.names[1]}", "literal": "x ${user}"}}],
            scope,
            initial_state={"user": {"names": ["ada", "grace"]}},
        )

        snapshot = await interpreter.run()

        assert snapshot.state["got"] == "grace"
        assert snapshot.steps[0].input == {"who": "grace", "literal": "x ${user}"}

    @pytest.mark.asyncio
    async def test_context_input_is_previous_output(self):
        seen = []
        scope = {
            "first": lambda params, ctx: 41,
            "second": lambda params, ctx: seen.append(ctx.input),
        }

        await _interpreter(["first", "second"], scope).run()

        assert seen == [41]

    @pytest.mark.asyncio
    async def test_context_state_access(self):
        def node(params, ctx):
            ctx.set("a", 1)
            ctx.update({"b": 2})
            return {"c": ctx.get("a") + ctx.get("b"), "read_only": "a" in ctx.state}

        snapshot = await _interpreter([node]).run()

        assert snapshot.state == {"a": 1, "b": 2, "c": 3, "read_only": True}

    @pytest.mark.asyncio
    async def test_nested_list_shares_state(self):
        scope = {
            "a": lambda params, ctx: {"a": 1},
            "b": lambda params, ctx: {"b": ctx.get("a") + 1},
        }

        snapshot = await _interpreter([["a", ["b"]]], scope).run()

        assert snapshot.state == {"a": 1, "b": 2}
        assert len(snapshot.steps) == 2

    @pytest.mark.asyncio
    async def test_state_property_is_copy(self):
        interpreter = _interpreter([lambda p, c: {"x": 1}])
        await interpreter.run()

        interpreter.state["x"] = 99

        assert interpreter.state["x"] == 1

    @pytest.mark.asyncio
    async def test_run_twice_rejected(self):
        interpreter = _interpreter([])
        await interpreter.run()

        with pytest.raises(FlowError) as exc_info:
            await interpreter.run()
        assert exc_info.value.code == "INTERNAL_ERROR"


class TestBranching:
    """Tests for edges and branch elements."""

    @pytest.mark.asyncio
    async def test_sentiment_branch_records_two_steps(self):
        executed = []
        scope = {
            "n1": lambda params, ctx: {"positive": "Sentiment was positive!"},
            "logNode": lambda params, ctx: executed.append("logNode"),
            "logNode2": lambda params, ctx: executed.append("logNode2"),
        }
        graph = ["n1", {"positive": "logNode", "negative": "logNode2"}]

        snapshot = await _interpreter(graph, scope).run()

        assert snapshot.status == ExecutionStatus.COMPLETED
        assert executed == ["logNode"]
        assert [step.node_id for step in snapshot.steps] == ["n1", "logNode"]
        assert snapshot.steps[0].edge == "positive"
        assert snapshot.steps[0].output == "Sentiment was positive!"

    @pytest.mark.asyncio
    async def test_string_result_selects_declared_edge(self):
        scope = {
            "check": NodeDefinition(
                id="check", implementation=lambda p, c: "true", edges=_edges("true", "false")
            ),
            "yes": lambda p, c: {"branch": "yes"},
        }

        snapshot = await _interpreter(["check", {"true": "yes"}], scope).run()

        assert snapshot.steps[0].edge == "true"
        assert snapshot.steps[0].output is None
        assert snapshot.state == {"branch": "yes"}

    @pytest.mark.asyncio
    async def test_undeclared_string_is_plain_value(self):
        scope = {"say": lambda p, c: "hello"}

        snapshot = await _interpreter(["say"], scope).run()

        assert snapshot.steps[0].edge is None
        assert snapshot.steps[0].output == "hello"

    @pytest.mark.asyncio
    async def test_unmatched_branch_is_noop(self):
        scope = {
            "n1": lambda params, ctx: {"neutral": "meh"},
            "log": lambda params, ctx: None,
            "after": lambda params, ctx: {"after": True},
        }
        graph = ["n1", {"positive": "log", "negative": "log"}, "after"]

        snapshot = await _interpreter(graph, scope).run()

        assert snapshot.status == ExecutionStatus.COMPLETED
        assert [step.node_id for step in snapshot.steps] == ["n1", "after"]

    @pytest.mark.asyncio
    async def test_branch_with_list_value(self):
        scope = {
            "route": NodeDefinition(
                id="route", implementation=lambda p, c: "go", edges=_edges("go")
            ),
            "a": lambda p, c: {"a": 1},
            "b": lambda p, c: {"b": 2},
        }

        snapshot = await _interpreter(["route", {"go": ["a", "b"]}], scope).run()

        assert [step.node_id for step in snapshot.steps] == ["route", "a", "b"]

    @pytest.mark.asyncio
    async def test_callable_edge_value_receives_context(self):
        async def describe(ctx):
            return f"from {ctx.node_id}"

        scope = {
            "n1": NodeDefinition(
                id="n1",
                implementation=lambda p, c: {"done": describe},
                edges=_edges("done"),
            )
        }

        snapshot = await _interpreter(["n1"], scope).run()

        assert snapshot.steps[0].output == "from n1"

    @pytest.mark.asyncio
    async def test_edge_narrowed_by_next_branch(self):
        scope = {
            "n1": NodeDefinition(
                id="n1",
                implementation=lambda p, c: {"a": "A", "b": "B"},
                edges=_edges("a", "b"),
            ),
            "on_b": lambda p, c: {"took": "b"},
        }

        snapshot = await _interpreter(["n1", {"b": "on_b"}], scope).run()

        assert snapshot.steps[0].edge == "b"
        assert snapshot.state == {"took": "b"}

    @pytest.mark.asyncio
    async def test_ambiguous_edges_fail_the_run(self):
        scope = {
            "n1": NodeDefinition(
                id="n1",
                implementation=lambda p, c: {"a": 1, "b": 2},
                edges=_edges("a", "b"),
            ),
            "x": lambda p, c: None,
        }

        snapshot = await _interpreter(["n1", {"a": "x", "b": "x"}], scope).run()

        assert snapshot.status == ExecutionStatus.FAILED
        assert snapshot.error["code"] == "AMBIGUOUS_EDGE"
        assert len(snapshot.steps) == 1

    @pytest.mark.asyncio
    async def test_single_key_without_candidates_selects_key(self):
        scope = {
            "n1": NodeDefinition(
                id="n1", implementation=lambda p, c: {"done": 5}, edges=_edges("done")
            ),
            "other": lambda p, c: {"ran": True},
        }

        snapshot = await _interpreter(["n1", {"other": "other"}], scope).run()

        assert snapshot.steps[0].edge == "done"
        assert snapshot.steps[0].output == 5
        assert len(snapshot.steps) == 1

    @pytest.mark.asyncio
    async def test_branch_consumes_edge(self):
        scope = {
            "route": NodeDefinition(
                id="route", implementation=lambda p, c: "go", edges=_edges("go")
            ),
            "a": lambda p, c: None,
        }
        graph = ["route", {"go": "a"}, {"go": "a"}]

        snapshot = await _interpreter(graph, scope).run()

        assert [step.node_id for step in snapshot.steps] == ["route", "a"]


class TestFailures:
    """Tests for node failures and error routing."""

    @pytest.mark.asyncio
    async def test_divide_by_zero_fails_with_one_step(self):
        executed = []
        scope = {
            "divideByZero": lambda params, ctx: 1 / 0,
            "after": lambda params, ctx: executed.append("after"),
        }

        snapshot = await _interpreter(["divideByZero", "after"], scope).run()

        assert snapshot.status == ExecutionStatus.FAILED
        assert len(snapshot.steps) == 1
        assert snapshot.steps[0].error["code"] == "NODE_EXECUTION_ERROR"
        assert snapshot.error["node_id"] == "divideByZero"
        assert "division by zero" in snapshot.error["message"]
        assert executed == []

    @pytest.mark.asyncio
    async def test_unknown_node_records_no_step(self):
        snapshot = await _interpreter(["missing"]).run()

        assert snapshot.status == ExecutionStatus.FAILED
        assert snapshot.error["code"] == "UNKNOWN_NODE"
        assert snapshot.steps == []

    @pytest.mark.asyncio
    async def test_unsupported_element(self):
        snapshot = await _interpreter([42]).run()

        assert snapshot.status == ExecutionStatus.FAILED
        assert snapshot.error["code"] == "INVALID_GRAPH"

    @pytest.mark.asyncio
    async def test_declared_error_edge_routes(self):
        def analyze(params, ctx):
            raise ValueError("cannot parse")

        scope = {
            "analyze": NodeDefinition(
                id="analyze", implementation=analyze, edges=_edges("ok", "error")
            ),
            "recover": lambda params, ctx: {"recovered": ctx.input["code"]},
        }

        snapshot = await _interpreter(["analyze", {"error": "recover"}], scope).run()

        assert snapshot.status == ExecutionStatus.COMPLETED
        failed = snapshot.steps[0]
        assert failed.edge == "error"
        assert failed.error["code"] == "NODE_EXECUTION_ERROR"
        assert failed.output == failed.error
        assert snapshot.state == {"recovered": "NODE_EXECUTION_ERROR"}

    @pytest.mark.asyncio
    async def test_next_branch_error_key_routes(self):
        def broken(params, ctx):
            raise RuntimeError("boom")

        scope = {"handler": lambda params, ctx: {"handled": True}}

        snapshot = await _interpreter([broken, {"error": "handler"}], scope).run()

        assert snapshot.status == ExecutionStatus.COMPLETED
        assert snapshot.state == {"handled": True}

    @pytest.mark.asyncio
    async def test_routed_error_not_merged_into_state(self):
        def broken(params, ctx):
            raise RuntimeError("boom")

        snapshot = await _interpreter([broken, {"error": []}]).run()

        assert snapshot.state == {}

    @pytest.mark.asyncio
    async def test_flow_error_from_node_keeps_code(self):
        def strict(params, ctx):
            raise create_error("INVALID_GRAPH", reason="bad input")

        snapshot = await _interpreter([strict]).run()

        assert snapshot.error["code"] == "INVALID_GRAPH"
        assert snapshot.error["node_id"] == "strict"

    @pytest.mark.asyncio
    async def test_node_timeout(self):
        async def slow(params, ctx):
            await asyncio.sleep(5)

        interpreter = _interpreter([slow], config=ExecutionConfig(node_timeout=0.05))

        snapshot = await interpreter.run()

        assert snapshot.status == ExecutionStatus.FAILED
        assert snapshot.error["code"] == "NODE_TIMEOUT"


class TestLoopsAndParallel:
    """Tests for loop and fan-out elements."""

    @staticmethod
    def _counter(limit: int) -> NodeDefinition:
        def controller(params, ctx):
            count = ctx.get("count", 0)
            if count >= limit:
                return "exit"
            ctx.set("count", count + 1)
            return "continue"

        return NodeDefinition(
            id="counter", implementation=controller, edges=_edges("continue", "exit")
        )

    @pytest.mark.asyncio
    async def test_loop_runs_until_exit(self):
        scope = {
            "counter": self._counter(3),
            "work": lambda params, ctx: {"done": ctx.get("done", 0) + 1},
        }

        snapshot = await _interpreter([[["counter", "work"]]], scope).run()

        assert snapshot.state["done"] == 3
        assert [step.node_id for step in snapshot.steps].count("counter") == 4

    @pytest.mark.asyncio
    async def test_loop_stops_at_iteration_cap(self, logger, log_output):
        scope = {
            "forever": NodeDefinition(
                id="forever", implementation=lambda p, c: "continue", edges=_edges("continue", "exit")
            ),
            "work": lambda params, ctx: {"done": ctx.get("done", 0) + 1},
        }
        interpreter = _interpreter(
            [[["forever", "work"]]],
            scope,
            config=ExecutionConfig(max_loop_iterations=3),
            logger=logger,
        )

        snapshot = await interpreter.run()

        assert snapshot.status == ExecutionStatus.COMPLETED
        assert snapshot.state["done"] == 3
        assert "Loop stopped after reaching 3 iterations" in log_output.getvalue()

    @pytest.mark.asyncio
    async def test_parallel_merges_branch_state(self):
        async def left(params, ctx):
            await asyncio.sleep(0.01)
            return {"left": ctx.get("base") + 1}

        def right(params, ctx):
            ctx.set("right", "R")
            return "right-output"

        interpreter = _interpreter(
            [{PARALLEL_KEY: [[left], ["right"]]}],
            {"right": right},
            initial_state={"base": 10},
        )

        snapshot = await interpreter.run()

        assert snapshot.status == ExecutionStatus.COMPLETED
        assert snapshot.state == {"base": 10, "left": 11, "right": "R"}
        assert snapshot.steps[-1].node_id == PARALLEL_KEY
        assert snapshot.steps[-1].output == [{"left": 11}, "right-output"]
        assert {step.node_id for step in snapshot.steps[:-1]} == {"left", "right"}

    @pytest.mark.asyncio
    async def test_parallel_later_branch_wins_conflicts(self):
        graph = [{PARALLEL_KEY: [lambda p, c: {"k": "first"}, lambda p, c: {"k": "second"}]}]

        snapshot = await _interpreter(graph).run()

        assert snapshot.state["k"] == "second"

    @pytest.mark.asyncio
    async def test_parallel_failure_fails_run(self):
        cancelled = asyncio.Event()

        async def slow(params, ctx):
            try:
                await asyncio.sleep(5)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        def broken(params, ctx):
            raise RuntimeError("branch failed")

        snapshot = await asyncio.wait_for(
            _interpreter([{PARALLEL_KEY: [slow, broken]}]).run(), 2
        )

        assert snapshot.status == ExecutionStatus.FAILED
        assert cancelled.is_set()


class TestSuspension:
    """Tests for pauses, resumes and cancellation."""

    @pytest.mark.asyncio
    async def test_request_pause_receives_exact_payload(self, hub):
        received = []

        async def ask(params, ctx):
            answer = await ctx.request_pause({"prompt": "Name?"}, pause_id="p1")
            received.append(answer)
            return {"answer": answer}

        interpreter = _interpreter([ask], hub=hub)
        task = asyncio.create_task(interpreter.run())
        await _until(lambda: hub.has_pause("p1"))

        assert interpreter.status == ExecutionStatus.PAUSED
        assert interpreter.active_pauses == ["p1"]
        assert hub.list_active_pauses()[0].details == {"prompt": "Name?"}

        payload = {"value": "Alice"}
        assert hub.resume("p1", payload) is True
        snapshot = await task

        assert received[0] is payload
        assert snapshot.status == ExecutionStatus.COMPLETED
        assert snapshot.state["answer"] == payload
        assert interpreter.active_pauses == []

    @pytest.mark.asyncio
    async def test_generated_pause_id_scoped_to_run(self, hub):
        async def ask(params, ctx):
            return await ctx.request_pause()

        interpreter = _interpreter([ask], hub=hub, flow_instance_id="flow-x")
        task = asyncio.create_task(interpreter.run())
        await _until(lambda: hub.active_count == 1)

        (pause_id,) = hub.pauses_for("flow-x")
        assert pause_id.startswith("flow-x:ask:")
        hub.resume(pause_id, "done")
        await task

    @pytest.mark.asyncio
    async def test_cancel_rejects_pending_suspension(self, hub):
        outcome = []

        async def ask(params, ctx):
            try:
                await ctx.request_pause(pause_id="p1")
            except FlowError as e:
                outcome.append(e.code)
                raise

        interpreter = _interpreter([ask, lambda p, c: {"after": True}], hub=hub)
        task = asyncio.create_task(interpreter.run())
        await _until(lambda: hub.has_pause("p1"))

        assert interpreter.cancel() is True
        snapshot = await task

        assert outcome == ["CANCELLED"]
        assert snapshot.status == ExecutionStatus.CANCELLED
        assert hub.resume("p1", "late") is False
        assert interpreter.cancel() is False

    @pytest.mark.asyncio
    async def test_swallowed_cancellation_still_ends_run(self, hub):
        async def stubborn(params, ctx):
            try:
                await ctx.request_pause(pause_id="p1")
            except FlowError:
                return "ignored"

        interpreter = _interpreter([stubborn, lambda p, c: {"after": True}], hub=hub)
        task = asyncio.create_task(interpreter.run())
        await _until(lambda: hub.has_pause("p1"))

        interpreter.cancel()
        snapshot = await task

        assert snapshot.status == ExecutionStatus.CANCELLED
        assert "after" not in snapshot.state
        assert snapshot.steps == []

    @pytest.mark.asyncio
    async def test_node_running_at_cancel_is_recorded(self):
        release = asyncio.Event()
        entered = asyncio.Event()

        async def slow(params, ctx):
            entered.set()
            ctx.set("side_effect", True)
            await release.wait()
            return {"slow_done": True}

        interpreter = _interpreter(
            [{"slow": {}}, lambda p, c: {"after": True}], scope={"slow": slow}
        )
        task = asyncio.create_task(interpreter.run())
        await entered.wait()

        assert interpreter.cancel() is True
        release.set()
        snapshot = await task

        assert snapshot.status == ExecutionStatus.CANCELLED
        assert [step.node_id for step in snapshot.steps] == ["slow"]
        assert snapshot.state == {"side_effect": True, "slow_done": True}

    @pytest.mark.asyncio
    async def test_last_node_running_at_cancel_ends_cancelled(self):
        release = asyncio.Event()
        entered = asyncio.Event()

        async def last(params, ctx):
            entered.set()
            await release.wait()
            return {"done": True}

        interpreter = _interpreter(["last"], scope={"last": last})
        task = asyncio.create_task(interpreter.run())
        await entered.wait()

        interpreter.cancel()
        release.set()
        snapshot = await task

        assert snapshot.status == ExecutionStatus.CANCELLED
        assert [step.node_id for step in snapshot.steps] == ["last"]
        assert snapshot.state == {"done": True}

    @pytest.mark.asyncio
    async def test_external_pause_at_boundary(self):
        interpreter = _interpreter([lambda p, c: {"a": 1}, lambda p, c: {"b": 2}])
        interpreter.pause()

        task = asyncio.create_task(interpreter.run())
        await _until(lambda: interpreter.status == ExecutionStatus.PAUSED)

        assert interpreter.steps == []
        assert interpreter.pause_requested
        assert interpreter.resume() is True
        snapshot = await task

        assert snapshot.status == ExecutionStatus.COMPLETED
        assert interpreter.resume() is False

    @pytest.mark.asyncio
    async def test_cancel_while_externally_paused(self):
        interpreter = _interpreter([lambda p, c: {"a": 1}])
        interpreter.pause()
        task = asyncio.create_task(interpreter.run())
        await _until(lambda: interpreter.status == ExecutionStatus.PAUSED)

        interpreter.cancel()
        snapshot = await task

        assert snapshot.status == ExecutionStatus.CANCELLED
        assert snapshot.steps == []

    @pytest.mark.asyncio
    async def test_suspension_time_excluded_from_timeout(self, hub):
        async def ask(params, ctx):
            return {"answer": await ctx.request_pause(pause_id="p1")}

        interpreter = _interpreter(
            [ask], hub=hub, config=ExecutionConfig(node_timeout=0.1)
        )
        task = asyncio.create_task(interpreter.run())
        await _until(lambda: hub.has_pause("p1"))
        await asyncio.sleep(0.25)

        hub.resume("p1", "late but fine")
        snapshot = await task

        assert snapshot.status == ExecutionStatus.COMPLETED
        assert snapshot.state["answer"] == "late but fine"

    @pytest.mark.asyncio
    async def test_task_cancellation_marks_cancelled(self):
        async def slow(params, ctx):
            await asyncio.sleep(5)

        interpreter = _interpreter([slow])
        task = asyncio.create_task(interpreter.run())
        await _until(lambda: interpreter.status == ExecutionStatus.RUNNING)
        await asyncio.sleep(0)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert interpreter.status == ExecutionStatus.CANCELLED


class TestObservation:
    """Tests for status callbacks and events."""

    @pytest.mark.asyncio
    async def test_status_callback_sequence(self, hub):
        statuses = []

        async def on_change(interpreter, status):
            statuses.append(status)

        async def ask(params, ctx):
            return await ctx.request_pause(pause_id="p1")

        interpreter = _interpreter([ask], hub=hub, on_status_change=on_change)
        task = asyncio.create_task(interpreter.run())
        await _until(lambda: hub.has_pause("p1"))
        hub.resume("p1")
        await task

        assert statuses == [
            ExecutionStatus.RUNNING,
            ExecutionStatus.PAUSED,
            ExecutionStatus.RUNNING,
            ExecutionStatus.COMPLETED,
        ]

    @pytest.mark.asyncio
    async def test_step_and_custom_events_published(self, hub):
        def node(params, ctx):
            ctx.emit("tick", {"n": 1})
            return {"x": 1}

        interpreter = _interpreter([node], hub=hub, flow_instance_id="flow-ev")
        subscription = hub.events.subscribe("flow-ev")

        await interpreter.run()
        hub.events.close("flow-ev")
        events = [event async for event in subscription]

        assert [event.type for event in events] == [FlowEventType.PROGRESS, FlowEventType.STEP]
        assert events[0].data == {"event": "tick", "node_id": "node", "data": {"n": 1}}
        assert events[1].data["step"]["node_id"] == "node"
        assert events[1].data["completed_steps"] == 1

    @pytest.mark.asyncio
    async def test_total_nodes_counts_branches(self):
        graph = ["a", {"x": "b", "y": ["c", "d"]}, {PARALLEL_KEY: ["e", "f"]}]
        assert _interpreter(graph).total_nodes == 7

    @pytest.mark.asyncio
    async def test_runs_are_isolated(self):
        def remember(params, ctx):
            return {"seen": ctx.get("seen", []) + [params["tag"]]}

        scope = {"remember": remember}
        first = _interpreter([{"remember": {"tag": "a"}}], scope)
        second = _interpreter([{"remember": {"tag": "b"}}], scope)

        results = await asyncio.gather(first.run(), second.run())

        assert results[0].state == {"seen": ["a"]}
        assert results[1].state == {"seen": ["b"]}
        assert first.flow_instance_id != second.flow_instance_id
