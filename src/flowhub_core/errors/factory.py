"""Conversion of arbitrary exceptions into ``FlowError``."""

from typing import Any

from .errors import FlowError
from .matchers import ErrorMatcherChain
from .registry import ErrorRegistry


class ErrorFactory:
    """Builds ``FlowError`` instances from codes or from caught exceptions."""

    def __init__(
        self,
        registry: ErrorRegistry | None = None,
        matcher_chain: ErrorMatcherChain | None = None,
    ):
        self.registry = registry or ErrorRegistry()
        self.matcher_chain = matcher_chain or ErrorMatcherChain()

    def from_exception(
        self,
        error: BaseException,
        node_id: str | None = None,
        flow_instance_id: str | None = None,
    ) -> FlowError:
        """Classify ``error`` and scope it to a node and run.

        A ``FlowError`` keeps its code and only gains context; anything else
        goes through the matcher chain.
        """
        if isinstance(error, FlowError):
            return error.with_context(node_id=node_id, flow_instance_id=flow_instance_id)

        result = self.matcher_chain.match(error)
        scope = {"node_id": node_id, "flow_instance_id": flow_instance_id}
        context = {**result.context, **{key: value for key, value in scope.items() if value}}

        flow_error = self.registry.create(result.code, context)
        if result.retryable is not None:
            flow_error.retryable = result.retryable
        return flow_error

    def create(self, code: str, context: dict[str, Any] | None = None, **kwargs: Any) -> FlowError:
        return self.registry.create(code, {**(context or {}), **kwargs})


_default_factory: ErrorFactory | None = None


def get_error_factory() -> ErrorFactory:
    """Process-wide factory behind ``create_error``."""
    global _default_factory  # noqa: PLW0603
    if _default_factory is None:
        _default_factory = ErrorFactory()
    return _default_factory


def create_error(code: str, **context: Any) -> FlowError:
    """Shorthand for ``get_error_factory().create(code, context)``."""
    return get_error_factory().create(code, context)
