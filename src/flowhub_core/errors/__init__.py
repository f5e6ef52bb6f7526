"""Structured errors raised by the flow engine."""

from .errors import ErrorCategory, ErrorTemplate, FlowError
from .factory import ErrorFactory, create_error, get_error_factory
from .matchers import ErrorMatcher, ErrorMatcherChain, MatchResult
from .registry import ErrorRegistry

__all__ = [
    "ErrorCategory",
    "ErrorFactory",
    "ErrorMatcher",
    "ErrorMatcherChain",
    "ErrorRegistry",
    "ErrorTemplate",
    "FlowError",
    "MatchResult",
    "create_error",
    "get_error_factory",
]
