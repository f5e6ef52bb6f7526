"""Validation results shared by the configuration loader and the node registry."""

from dataclasses import dataclass, field


@dataclass
class ValidationIssue:
    """One finding, addressed by a dotted path such as ``queue.concurrency``."""

    path: str
    message: str
    severity: str = "error"  # or "warning"


@dataclass
class ValidationResult:
    """Outcome of a validation pass; any error forces ``valid`` to False."""

    valid: bool
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.valid = self.valid and not self.errors
