"""Colored and JSON logging for flow runs."""

from .logger import FlowLogger, LogConfig, NodeLogger, RunLogger

__all__ = ["FlowLogger", "LogConfig", "NodeLogger", "RunLogger"]
