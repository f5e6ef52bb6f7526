"""Flow engine configuration loader.

Reads ``flowhub-config.yaml``, interpolates environment references,
checks the raw mapping and builds the nested ``FlowConfig`` dataclasses.
"""

import os
import re
import types
import typing
from collections.abc import Callable
from dataclasses import fields, is_dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from flowhub_core.errors import create_error
from flowhub_core.types import (
    ExecutionMode,
    LogFormat,
    LogLevel,
    QueueBackend,
    ValidationIssue,
    ValidationResult,
)

from .models import FlowConfig

CONFIG_PATH_ENV = "FLOWHUB_CONFIG_PATH"
LOCAL_CONFIG = Path("flowhub-config.yaml")
HOME_CONFIG = Path("~/.flowhub/config.yaml")

# ${NAME}, ${NAME:-fallback}, ${NAME:?message}
_ENV_REF = re.compile(r"\$\{(?P<name>[^}:]+)(?::(?P<op>[-?])(?P<arg>[^}]*))?\}")

# Section -> {key: enum} for values that must parse into an enum
_ENUM_FIELDS: dict[str, dict[str, type[Enum]]] = {
    "execution": {"default_mode": ExecutionMode},
    "queue": {"backend": QueueBackend},
    "logging": {"level": LogLevel, "format": LogFormat},
}

# Section -> keys that must be positive numbers
_POSITIVE_FIELDS: dict[str, tuple[str, ...]] = {
    "execution": (
        "max_loop_iterations",
        "queue_node_threshold",
        "max_runs",
        "max_state_history",
    ),
    "queue": ("concurrency", "max_attempts", "poll_timeout"),
    "store": ("max_records",),
}


def resolve_env_vars(value: str) -> str:
    """Interpolate environment references in a string.

    ``${NAME}`` must be set, ``${NAME:-fallback}`` falls back when unset and
    ``${NAME:?message}`` fails with ``message`` when unset.

    Raises:
        FlowError: CONFIG_INVALID when a required variable is unset
    """

    def substitute(match: re.Match[str]) -> str:
        name, op, arg = match.group("name", "op", "arg")
        if name in os.environ:
            return os.environ[name]
        if op == "-":
            return arg or ""
        detail = arg if op == "?" and arg else f"Required environment variable {name} not set"
        raise create_error("CONFIG_INVALID", detail=detail)

    return _ENV_REF.sub(substitute, value)


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into a copy of ``base``; nested mappings merge key by key."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def _interpolate(data: Any) -> Any:
    if isinstance(data, str):
        return resolve_env_vars(data)
    if isinstance(data, dict):
        return {key: _interpolate(item) for key, item in data.items()}
    if isinstance(data, list):
        return [_interpolate(item) for item in data]
    return data


def _build(field_type: Any, value: Any) -> Any:
    """Coerce a raw YAML value into ``field_type`` (dataclass, enum or optional)."""
    if value is None:
        return None

    if isinstance(field_type, types.UnionType) or typing.get_origin(field_type) is typing.Union:
        candidates = [arg for arg in typing.get_args(field_type) if arg is not type(None)]
        return _build(candidates[0], value) if len(candidates) == 1 else value

    if is_dataclass(field_type) and isinstance(value, dict):
        known = {f.name: f for f in fields(field_type)}
        return field_type(
            **{name: _build(known[name].type, item) for name, item in value.items() if name in known}
        )

    if isinstance(field_type, type) and issubclass(field_type, Enum) and isinstance(value, str):
        return field_type(value)

    return value


class ConfigLoader:
    """Load and validate flow engine configuration.

    Example:
        loader = ConfigLoader()
        config = loader.load()  # FLOWHUB_CONFIG_PATH, ./flowhub-config.yaml, ~/.flowhub/config.yaml
        loader.on_change(lambda cfg: print(cfg.queue.concurrency))
    """

    def __init__(self, logger: Any = None):
        """Initialize config loader.

        Args:
            logger: Optional FlowLogger
        """
        self._logger = logger
        self._config: FlowConfig | None = None
        self._source: Path | None = None
        self._listeners: list[Callable[[FlowConfig], None]] = []

    def load(self, path: str | Path | None = None, use_defaults: bool = True) -> FlowConfig:
        """Load configuration from a YAML file.

        Args:
            path: Config file; resolved from the environment and the usual
                locations when omitted
            use_defaults: Fall back to defaults when the file does not exist

        Raises:
            FlowError: CONFIG_INVALID for a missing file (without defaults),
                bad YAML or a configuration that fails validation
        """
        source = Path(path) if path is not None else self._locate()

        if not source.exists():
            if not use_defaults:
                raise create_error("CONFIG_INVALID", detail=f"Configuration file not found: {source}")
            return self.load_defaults()

        return self.load_from_dict(_interpolate(self._read(source)), source)

    def load_defaults(self) -> FlowConfig:
        return self.load_from_dict({})

    def load_from_dict(self, data: dict[str, Any], config_path: Path | None = None) -> FlowConfig:
        """Validate a raw mapping and build the configuration from it.

        Raises:
            FlowError: CONFIG_INVALID if validation or conversion fails
        """
        result = self.validate(data)
        if not result.valid:
            lines = "\n".join(f"- {issue.path}: {issue.message}" for issue in result.errors)
            raise create_error("CONFIG_INVALID", detail=f"Configuration validation failed:\n{lines}")

        try:
            config = _build(FlowConfig, data)
        except (TypeError, ValueError) as e:
            raise create_error("CONFIG_INVALID", detail=f"Failed to parse configuration: {e}") from e

        self._config = config
        self._source = config_path
        if self._logger:
            source = str(config_path) if config_path else "defaults"
            self._logger._log(LogLevel.DEBUG, "run", f"Configuration loaded from {source}")
        return config

    def validate(self, data: dict[str, Any]) -> ValidationResult:
        """Check a raw mapping without building it.

        Unknown sections are warnings; wrong shapes, enum values and
        non-positive limits are errors.
        """
        issues: list[ValidationIssue] = []
        sections = {f.name for f in fields(FlowConfig)}

        for name, section in data.items():
            if name not in sections:
                issues.append(
                    ValidationIssue(name, f"Unknown configuration key: {name}", severity="warning")
                )
            elif not isinstance(section, dict):
                issues.append(ValidationIssue(name, f"{name} must be a dictionary"))
            else:
                issues.extend(self._check_section(name, section))

        queue, redis = data.get("queue"), data.get("redis")
        wants_redis = isinstance(queue, dict) and queue.get("backend") == QueueBackend.REDIS.value
        if wants_redis and not (isinstance(redis, dict) and redis.get("url")):
            issues.append(
                ValidationIssue("redis.url", "redis.url is required when queue.backend is 'redis'")
            )

        errors = [issue for issue in issues if issue.severity == "error"]
        warnings = [issue for issue in issues if issue.severity == "warning"]
        return ValidationResult(valid=not errors, errors=errors, warnings=warnings)

    def _check_section(self, name: str, section: dict[str, Any]) -> list[ValidationIssue]:
        issues = []
        for key, enum_type in _ENUM_FIELDS.get(name, {}).items():
            allowed = sorted(member.value for member in enum_type)
            if key in section and section[key] not in allowed:
                issues.append(ValidationIssue(f"{name}.{key}", f"{key} must be one of {allowed}"))

        for key in _POSITIVE_FIELDS.get(name, ()):
            value = section.get(key)
            if key in section and (
                isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0
            ):
                issues.append(ValidationIssue(f"{name}.{key}", f"{key} must be a positive number"))
        return issues

    def get(self) -> FlowConfig:
        """Last loaded configuration.

        Raises:
            FlowError: CONFIG_INVALID if nothing was loaded yet
        """
        if self._config is None:
            raise create_error("CONFIG_INVALID", detail="Configuration not loaded")
        return self._config

    def reload(self) -> FlowConfig:
        """Re-read the last file and hand the result to every ``on_change`` listener.

        Raises:
            FlowError: CONFIG_INVALID if the configuration did not come from a file
        """
        if self._source is None:
            raise create_error("CONFIG_INVALID", detail="No config path set, cannot reload")

        config = self.load(self._source)
        for listener in self._listeners:
            try:
                listener(config)
            except Exception as e:
                if self._logger:
                    self._logger._log(LogLevel.ERROR, "run", f"Config change listener failed: {e}")
        return config

    def on_change(self, callback: Callable[[FlowConfig], None]) -> None:
        self._listeners.append(callback)

    def _read(self, source: Path) -> dict[str, Any]:
        try:
            data = yaml.safe_load(source.read_text()) or {}
        except yaml.YAMLError as e:
            raise create_error("CONFIG_INVALID", detail=f"Invalid YAML in {source}: {e}") from e
        if not isinstance(data, dict):
            raise create_error("CONFIG_INVALID", detail="Configuration root must be a mapping")
        return data

    def _locate(self) -> Path:
        if os.environ.get(CONFIG_PATH_ENV):
            return Path(os.environ[CONFIG_PATH_ENV])
        for candidate in (LOCAL_CONFIG, HOME_CONFIG.expanduser()):
            if candidate.exists():
                return candidate
        return LOCAL_CONFIG


_default_loader: ConfigLoader | None = None


def get_config_loader() -> ConfigLoader:
    """Process-wide loader used by ``load_config``."""
    global _default_loader  # noqa: PLW0603
    if _default_loader is None:
        _default_loader = ConfigLoader()
    return _default_loader


def load_config(path: str | Path | None = None) -> FlowConfig:
    """Load configuration with the process-wide loader."""
    return get_config_loader().load(path)
