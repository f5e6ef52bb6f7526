"""Flowhub Core - Workflow execution engine.

Runs node graphs with branching, loops, parallel blocks and cross-process
pause/resume, dispatched immediately or through a durable job queue.
"""

from flowhub_core.application import FlowApplication

__version__ = "0.1.0"
__all__ = ["__version__", "FlowApplication"]
