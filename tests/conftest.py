"""
Pytest configuration and shared fixtures for flowhub tests.
"""

import io
import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from flowhub_core.config import ExecutionConfig  # noqa: E402
from flowhub_core.execution import InMemoryExecutionStore, RunManager  # noqa: E402
from flowhub_core.hub import SuspensionHub  # noqa: E402
from flowhub_core.logging import FlowLogger, LogConfig  # noqa: E402
from flowhub_core.registry import NodeRegistry  # noqa: E402
from flowhub_core.telemetry import reset_telemetry  # noqa: E402
from flowhub_core.types import ExecutionMode, LogFormat, LogLevel  # noqa: E402


# =============================================================================
# Path Fixtures
# =============================================================================


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


# =============================================================================
# Component Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def _no_telemetry():
    """Run every test without global telemetry unless it sets it up."""
    reset_telemetry()
    yield
    reset_telemetry()


@pytest.fixture
def log_output() -> io.StringIO:
    """Buffer that captures logger output."""
    return io.StringIO()


@pytest.fixture
def logger(log_output: io.StringIO) -> FlowLogger:
    """JSON logger writing to a buffer."""
    return FlowLogger(LogConfig(level=LogLevel.DEBUG, format=LogFormat.JSON, output=log_output))


@pytest.fixture
def registry() -> NodeRegistry:
    """Empty node registry."""
    return NodeRegistry()


@pytest.fixture
def hub() -> SuspensionHub:
    """Local-only suspension hub."""
    return SuspensionHub()


@pytest.fixture
def store() -> InMemoryExecutionStore:
    """In-memory execution store."""
    return InMemoryExecutionStore()


@pytest.fixture
def manager(registry: NodeRegistry, hub: SuspensionHub, store: InMemoryExecutionStore) -> RunManager:
    """Run manager without a queue, dispatching immediately."""
    return RunManager(
        registry,
        hub,
        ExecutionConfig(default_mode=ExecutionMode.IMMEDIATE),
        store=store,
    )


# =============================================================================
# Markers Configuration
# =============================================================================


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "property: Property-based tests")
    config.addinivalue_line("markers", "redis: Tests requiring a Redis server")
