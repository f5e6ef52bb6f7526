"""Classification of exceptions raised inside node implementations."""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class MatchResult:
    """Error code and template context extracted from an exception."""

    code: str
    context: dict[str, Any] = field(default_factory=dict)
    retryable: bool | None = None  # None keeps the template default


class ErrorMatcher(ABC):
    """Recognizes one family of exceptions."""

    @abstractmethod
    def matches(self, error: BaseException) -> bool: ...

    @abstractmethod
    def extract(self, error: BaseException) -> MatchResult: ...


class TimeoutErrorMatcher(ErrorMatcher):
    def matches(self, error: BaseException) -> bool:
        return isinstance(error, TimeoutError)

    def extract(self, error: BaseException) -> MatchResult:
        seconds = getattr(error, "timeout_seconds", "unknown")
        return MatchResult("NODE_TIMEOUT", {"timeout_seconds": seconds}, retryable=True)


class CancelledErrorMatcher(ErrorMatcher):
    def matches(self, error: BaseException) -> bool:
        return isinstance(error, asyncio.CancelledError)

    def extract(self, error: BaseException) -> MatchResult:
        return MatchResult("CANCELLED", {"reason": str(error) or "task cancelled"}, retryable=False)


class GenericErrorMatcher(ErrorMatcher):
    """Catch-all: any other exception is a node execution failure."""

    def matches(self, error: BaseException) -> bool:
        return True

    def extract(self, error: BaseException) -> MatchResult:
        kind = type(error).__name__
        return MatchResult(
            "NODE_EXECUTION_ERROR",
            {"error_type": kind, "error_message": str(error) or kind},
        )


class ErrorMatcherChain:
    """Ordered matchers; the first that accepts an exception classifies it.

    The catch-all matcher always stays last, so ``match`` never comes up empty.
    """

    def __init__(self) -> None:
        self.matchers: list[ErrorMatcher] = [TimeoutErrorMatcher(), CancelledErrorMatcher()]
        self._fallback = GenericErrorMatcher()

    def add_matcher(self, matcher: ErrorMatcher, priority: int = 0) -> None:
        """Insert ``matcher`` at position ``priority`` (0 is tried first)."""
        self.matchers.insert(priority, matcher)

    def match(self, error: BaseException) -> MatchResult:
        matcher = next((m for m in self.matchers if m.matches(error)), self._fallback)
        return matcher.extract(error)
