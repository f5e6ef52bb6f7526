"""Flow engine configuration - Config loading and models."""

from .loader import (
    ConfigLoader,
    deep_merge,
    get_config_loader,
    load_config,
    resolve_env_vars,
)
from .models import (
    ExecutionConfig,
    FlowConfig,
    LoggingComponentsConfig,
    LoggingConfig,
    LoggingOptionsConfig,
    QueueConfig,
    RedisConfig,
    StoreConfig,
    TelemetryConfig,
    TelemetryMetricsConfig,
    TelemetryTracingConfig,
)

__all__ = [
    # Config models
    "FlowConfig",
    "ExecutionConfig",
    "QueueConfig",
    "RedisConfig",
    "StoreConfig",
    "LoggingConfig",
    "LoggingComponentsConfig",
    "LoggingOptionsConfig",
    "TelemetryConfig",
    "TelemetryMetricsConfig",
    "TelemetryTracingConfig",
    # Loader
    "ConfigLoader",
    "get_config_loader",
    "load_config",
    # Utilities
    "resolve_env_vars",
    "deep_merge",
]
