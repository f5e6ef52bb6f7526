"""Flowhub Application - orchestrator for all components.

Initializes and wires the engine components together: configuration,
logging, telemetry, node registry, suspension hub, run manager, queue
worker and trigger manager.
"""

import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, TextIO

from flowhub_core.config import ConfigLoader, FlowConfig
from flowhub_core.engine import FlowSnapshot
from flowhub_core.errors import ErrorFactory, ErrorRegistry, create_error
from flowhub_core.execution import (
    ComplexityAnalyzer,
    ExecutionStore,
    InMemoryExecutionStore,
    RunManager,
)
from flowhub_core.hub import (
    InMemoryResumeChannel,
    RedisResumeChannel,
    RedisResumeChannelOptions,
    ResumeChannel,
    SuspensionHub,
)
from flowhub_core.logging import FlowLogger, LogConfig
from flowhub_core.nodes import register_builtin_nodes
from flowhub_core.queue import (
    InMemoryJobQueue,
    JobQueue,
    QueueWorker,
    RedisJobQueue,
    RedisJobQueueOptions,
)
from flowhub_core.registry import NodeRegistry
from flowhub_core.telemetry import setup_telemetry
from flowhub_core.triggers import EventTriggerHandler, IntervalTriggerHandler, TriggerManager
from flowhub_core.types import LogLevel, QueueBackend


class FlowApplication:
    """
    Flowhub Application orchestrator.

    Handles the full initialization sequence:

    1. Config loading
    2. Logger setup
    3. Telemetry setup
    4. Error registry
    5. Node registry (with built-in nodes)
    6. Resume channel and suspension hub
    7. Execution store
    8. Job queue
    9. Run manager
    10. Queue worker
    11. Trigger manager (interval and event trigger types)
    """

    def __init__(
        self,
        config_path: str | Path | None = None,
        config: FlowConfig | None = None,
        log_output: TextIO | None = None,
        start_worker: bool = True,
    ):
        """Initialize application.

        Args:
            config_path: Path to config file (optional)
            config: Ready-made configuration; skips file loading when given
            log_output: Output stream for logs (default: sys.stdout)
            start_worker: Consume the job queue in this process
        """
        self._config_path = config_path
        self._log_output = log_output or sys.stdout
        self._start_worker = start_worker
        self._initialized = False

        # Components (initialized in initialize())
        self.config_loader: ConfigLoader | None = None
        self.config: FlowConfig | None = config
        self.logger: FlowLogger | None = None
        self.error_registry: ErrorRegistry | None = None
        self.error_factory: ErrorFactory | None = None
        self.node_registry: NodeRegistry | None = None
        self.resume_channel: ResumeChannel | None = None
        self.hub: SuspensionHub | None = None
        self.store: ExecutionStore | None = None
        self.job_queue: JobQueue | None = None
        self.run_manager: RunManager | None = None
        self.worker: QueueWorker | None = None
        self.trigger_manager: TriggerManager | None = None
        self.event_triggers: EventTriggerHandler | None = None

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Initialize all components.

        Raises:
            FlowError: CONFIG_INVALID for a bad configuration,
                CHANNEL_UNAVAILABLE or QUEUE_UNAVAILABLE when Redis is
                configured but unreachable
        """
        if self._initialized:
            return

        # 1. Config Loader
        self.config_loader = ConfigLoader()
        if self.config is None:
            self.config = self.config_loader.load(self._config_path)
        config = self.config

        # 2. Logger
        log_config = LogConfig(
            level=config.logging.level,
            format=config.logging.format,
            show_params=config.logging.options.show_params,
            show_results=config.logging.options.show_results,
            truncate_at=config.logging.options.truncate_at,
            components=asdict(config.logging.components),
            output=self._log_output,
        )
        self.logger = FlowLogger(log_config)
        self.config_loader._logger = self.logger

        # 3. Telemetry Setup
        setup_telemetry(config.telemetry)

        # 4. Error Registry & Factory
        self.error_registry = ErrorRegistry()
        self.error_factory = ErrorFactory(self.error_registry)

        # 5. Node Registry
        self.node_registry = NodeRegistry(logger=self.logger)
        register_builtin_nodes(self.node_registry)

        # 6. Resume Channel & Suspension Hub
        if config.redis.url:
            channel = RedisResumeChannel(
                RedisResumeChannelOptions(
                    redis_url=config.redis.url,
                    channel=config.redis.resume_channel,
                    connect_timeout=config.redis.connect_timeout,
                )
            )
            if not await channel.connect():
                raise create_error(
                    "CHANNEL_UNAVAILABLE",
                    detail=f"Cannot connect to {_redact(config.redis.url)}",
                )
            self.resume_channel = channel
        else:
            self.resume_channel = InMemoryResumeChannel()
        self.hub = SuspensionHub(channel=self.resume_channel, logger=self.logger)
        await self.hub.start()

        # 7. Execution Store
        self.store = InMemoryExecutionStore(max_records=config.store.max_records)

        # 8. Job Queue
        if config.queue.backend == QueueBackend.REDIS:
            queue = RedisJobQueue(
                RedisJobQueueOptions(
                    redis_url=config.redis.url,
                    key=config.queue.key,
                    connect_timeout=config.redis.connect_timeout,
                )
            )
            if not await queue.connect():
                raise create_error(
                    "QUEUE_UNAVAILABLE",
                    detail=f"Cannot connect to {_redact(config.redis.url)}",
                )
            self.job_queue = queue
        else:
            self.job_queue = InMemoryJobQueue()

        # 9. Run Manager
        self.run_manager = RunManager(
            self.node_registry,
            self.hub,
            config.execution,
            logger=self.logger,
            queue=self.job_queue,
            store=self.store,
            analyzer=ComplexityAnalyzer(config.execution.queue_node_threshold),
            error_factory=self.error_factory,
        )

        # 10. Queue Worker
        self.worker = QueueWorker(
            self.job_queue,
            self.run_manager,
            self.store,
            config.queue,
            logger=self.logger,
        )
        if self._start_worker:
            await self.worker.start()

        # 11. Trigger Manager
        self.trigger_manager = TriggerManager(self.run_manager, logger=self.logger)
        self.event_triggers = EventTriggerHandler()
        self.trigger_manager.register_trigger_type("interval", IntervalTriggerHandler())
        self.trigger_manager.register_trigger_type("event", self.event_triggers)

        self._initialized = True
        self.logger._log(
            LogLevel.INFO,
            "run",
            "Flowhub initialized",
            {
                "nodes": len(self.node_registry),
                "queue": config.queue.backend.value,
                "redis": bool(config.redis.url),
            },
        )

    async def shutdown(self) -> None:
        """Shutdown all components, newest first."""
        if not self._initialized:
            return

        if self.trigger_manager is not None:
            await self.trigger_manager.shutdown()
        if self.worker is not None:
            await self.worker.stop()
        if self.run_manager is not None:
            await self.run_manager.shutdown()
        if self.hub is not None:
            await self.hub.stop()
        if isinstance(self.resume_channel, RedisResumeChannel):
            await self.resume_channel.disconnect()
        if self.job_queue is not None:
            await self.job_queue.close()

        self._initialized = False

    async def run_flow(
        self,
        nodes: list[Any],
        initial_state: dict[str, Any] | None = None,
        workflow_id: str | None = None,
        timeout: float | None = None,
    ) -> FlowSnapshot:
        """Start a flow and wait for it to finish.

        Args:
            nodes: Flow graph
            initial_state: Starting state
            workflow_id: Optional workflow id for grouping
            timeout: Seconds to wait for completion

        Returns:
            Final FlowSnapshot
        """
        if not self.run_manager:
            raise RuntimeError("Application not initialized")

        flow_instance_id = await self.run_manager.start(
            nodes, initial_state, workflow_id=workflow_id
        )
        return await self.run_manager.wait(flow_instance_id, timeout)

    async def __aenter__(self) -> "FlowApplication":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()


def _redact(url: str) -> str:
    """Hide credentials in a connection URL."""
    return url.split("@")[-1]
