"""Flow engine configuration data models."""

from dataclasses import dataclass, field

from flowhub_core.types import ExecutionMode, LogFormat, LogLevel, QueueBackend


@dataclass
class ExecutionConfig:
    """Interpreter and run manager configuration."""

    default_mode: ExecutionMode = ExecutionMode.AUTO
    max_loop_iterations: int = 100
    node_timeout: float | None = None  # Seconds; None = unbounded
    queue_node_threshold: int = 10  # AUTO mode queues graphs larger than this
    max_runs: int = 1000  # Terminal runs kept in the directory
    max_state_history: int = 100  # State entries kept for undo/redo per run


@dataclass
class QueueConfig:
    """Durable job queue configuration."""

    backend: QueueBackend = QueueBackend.MEMORY
    key: str = "flowhub:jobs"
    concurrency: int = 5
    max_attempts: int = 3
    backoff_seconds: float = 2.0  # Exponential: backoff * 2 ** (attempt - 1)
    poll_timeout: float = 1.0


@dataclass
class RedisConfig:
    """Redis connection configuration (resume channel and job queue)."""

    url: str = ""  # Empty = Redis disabled
    resume_channel: str = "flowhub:resume"
    connect_timeout: float = 5.0


@dataclass
class StoreConfig:
    """Execution record store configuration."""

    max_records: int = 1000


@dataclass
class LoggingComponentsConfig:
    """Logging components configuration."""

    run: bool = True
    node: bool = True
    hub: bool = True
    queue: bool = True
    trigger: bool = True
    registry: bool = True


@dataclass
class LoggingOptionsConfig:
    """Logging options configuration."""

    show_params: bool = True
    show_results: bool = True
    truncate_at: int = 200


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.COLORED
    components: LoggingComponentsConfig = field(default_factory=LoggingComponentsConfig)
    options: LoggingOptionsConfig = field(default_factory=LoggingOptionsConfig)


@dataclass
class TelemetryMetricsConfig:
    """Telemetry metrics configuration (OpenTelemetry)."""

    enabled: bool = True
    prometheus_enabled: bool = True


@dataclass
class TelemetryTracingConfig:
    """Telemetry tracing configuration (OpenTelemetry)."""

    enabled: bool = False
    sample_rate: float = 1.0


@dataclass
class TelemetryConfig:
    """Telemetry configuration."""

    enabled: bool = False
    service_name: str = "flowhub"
    service_version: str = "0.1.0"
    metrics: TelemetryMetricsConfig = field(default_factory=TelemetryMetricsConfig)
    tracing: TelemetryTracingConfig = field(default_factory=TelemetryTracingConfig)


@dataclass
class FlowConfig:
    """Root configuration object."""

    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
