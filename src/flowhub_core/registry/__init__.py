"""Node Registry - catalog of pluggable node definitions."""

from .registry import RESERVED_PREFIX, NodeRegistry
from .types import NodeDefinition, NodeEdge, NodeImplementation, NodePort, RegistrySummary

__all__ = [
    "NodeRegistry",
    "NodeDefinition",
    "NodeEdge",
    "NodePort",
    "NodeImplementation",
    "RegistrySummary",
    "RESERVED_PREFIX",
]
