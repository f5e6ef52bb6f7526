"""Suspension Hub - pause/resume across processes and per-run event topics."""

from .channels import (
    InMemoryResumeChannel,
    RedisResumeChannel,
    RedisResumeChannelOptions,
    ResumeChannel,
    ResumeHandler,
)
from .events import FlowEventBus, Subscription
from .hub import SuspensionHub
from .types import FlowEvent, PauseSummary, PauseToken, ResumeMessage

__all__ = [
    "SuspensionHub",
    # Types
    "PauseToken",
    "PauseSummary",
    "ResumeMessage",
    "FlowEvent",
    # Events
    "FlowEventBus",
    "Subscription",
    # Channels
    "ResumeChannel",
    "ResumeHandler",
    "InMemoryResumeChannel",
    "RedisResumeChannel",
    "RedisResumeChannelOptions",
]
