"""Built-in node definitions."""

import asyncio
import logging
import time
from collections.abc import Mapping
from typing import Any

from flowhub_core.engine import NodeContext
from flowhub_core.registry import NodeDefinition, NodeEdge, NodePort, NodeRegistry

logger = logging.getLogger(__name__)

MAX_DELAY_MS = 300_000
MAX_LOOP_ITERATIONS = 1000

_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


# ── utils.debug.logMessage ──────────────────────────────────────────


def log_message(params: dict[str, Any], context: NodeContext) -> str:
    level = _LOG_LEVELS.get(str(params.get("level", "info")), logging.INFO)
    logger.log(level, f"[{context.flow_instance_id}] {params.get('message')}")
    return "pass"


LOG_MESSAGE = NodeDefinition(
    id="utils.debug.logMessage",
    implementation=log_message,
    name="Log Message",
    description="Logs a message or value for debugging a flow.",
    categories=("Utilities", "Debugging"),
    tags=("log", "debug"),
    inputs=(
        NodePort("message", "any", "The message or data to log.", required=True),
        NodePort("level", "string", "Log level: info, warn, error or debug.", default="info"),
    ),
    edges=(NodeEdge("pass", "Message logged successfully."),),
)


# ── human.input.text ────────────────────────────────────────────────


async def human_text_input(params: dict[str, Any], context: NodeContext) -> dict[str, Any]:
    response = await context.request_pause(
        {
            "type": "text-input",
            "prompt": params.get("prompt") or "Please enter text:",
            "placeholder": params.get("placeholder") or "",
            "default_value": params.get("defaultValue") or "",
            "node_id": context.node_id,
            "flow_instance_id": context.flow_instance_id,
        },
        pause_id=params.get("pauseId"),
    )

    if response is None or (isinstance(response, Mapping) and response.get("cancelled")):
        return {"cancelled": None}

    value = response.get("value", response) if isinstance(response, Mapping) else response
    context.set("lastHumanInput", value)
    return {"submitted": value}


HUMAN_TEXT_INPUT = NodeDefinition(
    id="human.input.text",
    implementation=human_text_input,
    name="Human Text Input",
    description="Pauses the flow until a person submits a text response.",
    categories=("Human Interaction",),
    tags=("human", "input", "pause"),
    inputs=(
        NodePort("prompt", "string", "Question shown to the person.", required=True),
        NodePort("placeholder", "string", "Placeholder text for the input field."),
        NodePort("defaultValue", "string", "Pre-filled value."),
        NodePort("pauseId", "string", "Explicit pause id; generated when omitted."),
    ),
    outputs=(NodePort("value", "string", "The submitted text."),),
    edges=(
        NodeEdge("submitted", "The person submitted a value."),
        NodeEdge("cancelled", "The request was dismissed."),
    ),
    requires_human_input=True,
)


# ── text.analysis.sentiment ─────────────────────────────────────────


def analyze_sentiment(params: dict[str, Any], context: NodeContext) -> dict[str, Any]:
    text = str(params.get("text") or "").lower()
    if "error" in text:
        return {"error": "Simulated analysis error."}

    sentiment = "neutral"
    if any(word in text for word in ("love", "amazing", "great")):
        sentiment = "positive"
    elif any(word in text for word in ("hate", "terrible", "bad")):
        sentiment = "negative"

    context.set(
        "lastSentimentAnalysis",
        {"text": params.get("text"), "sentiment": sentiment, "confidence": 0.9},
    )
    return {sentiment: sentiment}


SENTIMENT = NodeDefinition(
    id="text.analysis.sentiment",
    implementation=analyze_sentiment,
    name="Sentiment Analyzer",
    description="Classifies text as positive, negative or neutral by keyword.",
    categories=("Text Processing", "NLP"),
    tags=("sentiment", "text analysis", "nlp"),
    inputs=(
        NodePort("text", "string", "The text to analyze.", required=True),
        NodePort("language", "string", "Language of the text.", default="en"),
    ),
    outputs=(NodePort("analyzedSentiment", "string", "positive, negative or neutral."),),
    edges=(
        NodeEdge("positive", "The text has a positive sentiment."),
        NodeEdge("negative", "The text has a negative sentiment."),
        NodeEdge("neutral", "The text has a neutral sentiment."),
        NodeEdge("error", "The text could not be analyzed."),
    ),
)


# ── logic.condition.if ──────────────────────────────────────────────


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or (isinstance(value, (list, tuple, dict)) and not value)


def _compare(value: Any, operator: str, compare_value: Any) -> bool:
    if operator == "==":
        return value == compare_value
    if operator == "!=":
        return value != compare_value
    if operator == ">":
        return value > compare_value
    if operator == "<":
        return value < compare_value
    if operator == ">=":
        return value >= compare_value
    if operator == "<=":
        return value <= compare_value
    if operator == "contains":
        return str(compare_value) in str(value)
    if operator == "startsWith":
        return str(value).startswith(str(compare_value))
    if operator == "endsWith":
        return str(value).endswith(str(compare_value))
    if operator == "isEmpty":
        return _is_empty(value)
    if operator == "isNotEmpty":
        return not _is_empty(value)
    raise ValueError(f"Unknown operator: {operator}")


def evaluate_condition(params: dict[str, Any], context: NodeContext) -> dict[str, Any]:
    value = params.get("value")
    try:
        result = _compare(value, params.get("operator", "=="), params.get("compareValue"))
    except (TypeError, ValueError) as e:
        context.set("lastConditionResult", False)
        return {"false": {"result": False, "value": value, "error": str(e)}}

    context.set("lastConditionResult", result)
    edge = "true" if result else "false"
    return {edge: {"result": result, "value": value}}


CONDITION = NodeDefinition(
    id="logic.condition.if",
    implementation=evaluate_condition,
    name="Condition",
    description="Compares a value and branches to 'true' or 'false'.",
    categories=("Logic",),
    tags=("condition", "branch", "if"),
    inputs=(
        NodePort("value", "any", "Value to test.", required=True),
        NodePort("operator", "string", "==, !=, >, <, >=, <=, contains, startsWith, "
                 "endsWith, isEmpty or isNotEmpty.", default="=="),
        NodePort("compareValue", "any", "Value to compare against."),
    ),
    edges=(
        NodeEdge("true", "The condition holds."),
        NodeEdge("false", "The condition does not hold or could not be evaluated."),
    ),
)


# ── logic.control.delay ─────────────────────────────────────────────


async def delay(params: dict[str, Any], context: NodeContext) -> dict[str, Any]:
    try:
        requested = float(params.get("duration") or 0)
    except (TypeError, ValueError):
        requested = 0.0
    duration_ms = max(0.0, min(requested, MAX_DELAY_MS))

    started = time.perf_counter()
    context.set("lastDelay", {"duration": duration_ms, "status": "waiting"})
    await asyncio.sleep(duration_ms / 1000)
    actual_ms = int((time.perf_counter() - started) * 1000)
    context.set(
        "lastDelay", {"duration": duration_ms, "actualDuration": actual_ms, "status": "completed"}
    )
    return {"completed": {"duration": actual_ms, "passThrough": params.get("passThrough")}}


DELAY = NodeDefinition(
    id="logic.control.delay",
    implementation=delay,
    name="Delay",
    description="Waits for a number of milliseconds (at most five minutes).",
    categories=("Logic", "Flow Control"),
    tags=("delay", "wait", "sleep"),
    inputs=(
        NodePort("duration", "number", "Milliseconds to wait (0-300000).", default=0),
        NodePort("passThrough", "any", "Data forwarded to the output."),
    ),
    edges=(NodeEdge("completed", "The delay elapsed."),),
)


# ── logic.control.loop ──────────────────────────────────────────────


def loop_controller(params: dict[str, Any], context: NodeContext) -> dict[str, Any]:
    try:
        max_iterations = int(params.get("maxIterations") or 100)
    except (TypeError, ValueError):
        max_iterations = 100
    max_iterations = max(1, min(max_iterations, MAX_LOOP_ITERATIONS))

    state_key = f"loop_{context.node_id}_state"
    loop_state = context.get(state_key) or {"index": 0}
    index = loop_state["index"]

    if index < max_iterations:
        context.set(state_key, {"index": index + 1})
        return {
            "continue": {
                "index": index,
                "remaining": max_iterations - index - 1,
                "loopData": params.get("loopData"),
            }
        }

    context.set(state_key, None)
    return {"exit": {"index": index, "completed": True, "loopData": params.get("loopData")}}


LOOP = NodeDefinition(
    id="logic.control.loop",
    implementation=loop_controller,
    name="Loop Controller",
    description="Counts loop iterations; use as the first element of [[controller, ...actions]].",
    categories=("Logic", "Flow Control"),
    tags=("loop", "iterate", "repeat"),
    inputs=(
        NodePort("maxIterations", "number", "Number of iterations (1-1000).", default=100),
        NodePort("loopData", "any", "Data forwarded on every iteration."),
    ),
    edges=(
        NodeEdge("continue", "Run the loop actions again."),
        NodeEdge("exit", "The loop is done."),
    ),
)


BUILTIN_NODES: tuple[NodeDefinition, ...] = (
    LOG_MESSAGE,
    HUMAN_TEXT_INPUT,
    SENTIMENT,
    CONDITION,
    DELAY,
    LOOP,
)


def register_builtin_nodes(registry: NodeRegistry) -> int:
    """Register every built-in node that is not already present.

    Returns:
        Number of nodes registered
    """
    count = 0
    for definition in BUILTIN_NODES:
        if definition.id not in registry:
            registry.register(definition)
            count += 1
    return count
