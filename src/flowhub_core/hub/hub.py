"""Suspension Hub - process-wide pause/resume broker."""

from __future__ import annotations

import asyncio
import os
import uuid
from typing import Any

from flowhub_core.errors import FlowError, create_error
from flowhub_core.logging import FlowLogger
from flowhub_core.telemetry import get_metrics
from flowhub_core.types import LogLevel

from .channels import ResumeChannel
from .events import FlowEventBus
from .types import PauseSummary, PauseToken, ResumeMessage


class SuspensionHub:
    """Broker between suspended nodes and whoever delivers their resume data.

    Owns:
    - The pause token map (pause_id -> future)
    - The optional cross-process resume channel
    - The per-run event bus
    """

    def __init__(
        self,
        channel: ResumeChannel | None = None,
        logger: FlowLogger | None = None,
        instance_id: str | None = None,
    ):
        """Initialize the hub.

        Args:
            channel: Resume channel shared with other hubs (None = local only)
            logger: Optional logger
            instance_id: Identity used to ignore our own channel messages
        """
        self._tokens: dict[str, PauseToken] = {}
        self._channel = channel
        self._logger = logger
        self._started = False
        self.instance_id = instance_id or f"hub-{os.getpid()}-{uuid.uuid4().hex[:8]}"
        self.events = FlowEventBus()

    def _log(self, level: LogLevel, message: str, context: dict[str, Any] | None = None) -> None:
        if self._logger:
            self._logger._log(level, "hub", message, context)

    @property
    def channel(self) -> ResumeChannel | None:
        return self._channel

    async def start(self) -> None:
        """Subscribe to the resume channel."""
        if self._started:
            return
        if self._channel:
            await self._channel.subscribe(self._on_message)
        self._started = True
        self._log(LogLevel.DEBUG, f"Suspension hub '{self.instance_id}' started")

    async def stop(self) -> None:
        """Unsubscribe and reject every remaining pause with CANCELLED."""
        if self._channel and self._started:
            await self._channel.unsubscribe(self._on_message)
        self._started = False

        for pause_id in list(self._tokens):
            self.cancel(pause_id, reason="hub stopped")
        self._log(LogLevel.DEBUG, f"Suspension hub '{self.instance_id}' stopped")

    def request_pause(
        self,
        pause_id: str,
        details: dict[str, Any] | None = None,
        flow_instance_id: str | None = None,
    ) -> asyncio.Future[Any]:
        """Register a pause token.

        Args:
            pause_id: Unique id the resumer will refer to
            details: Free-form description for observers (prompt, form, ...)
            flow_instance_id: Run that owns the token

        Returns:
            Future resolved with the resume payload

        Raises:
            FlowError: DUPLICATE_PAUSE_ID if the id is live
        """
        if pause_id in self._tokens:
            raise create_error(
                "DUPLICATE_PAUSE_ID", pause_id=pause_id, flow_instance_id=flow_instance_id
            )

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        token = PauseToken(
            pause_id=pause_id,
            future=future,
            flow_instance_id=flow_instance_id,
            details=dict(details or {}),
        )
        self._tokens[pause_id] = token
        future.add_done_callback(lambda _: self._discard(token))

        metrics = get_metrics()
        if metrics:
            metrics.record_pause_change(1)

        self._log(
            LogLevel.INFO,
            f"Pause '{pause_id}' registered",
            {"pause_id": pause_id, "flow_instance_id": flow_instance_id},
        )
        return future

    def resume(self, pause_id: str, data: Any = None) -> bool:
        """Resolve a local pause token.

        The token is popped before the future is set, so concurrent resumes
        for one id see exactly one True.

        Returns:
            True if this call resolved the token, False otherwise
        """
        token = self._tokens.pop(pause_id, None)
        if token is None or token.future.done():
            return False

        token.future.set_result(data)
        self._log(
            LogLevel.INFO,
            f"Pause '{pause_id}' resumed",
            {"pause_id": pause_id, "flow_instance_id": token.flow_instance_id},
        )
        return True

    def cancel(self, pause_id: str, reason: str = "pause cancelled") -> bool:
        """Reject a pause token with CANCELLED.

        Returns:
            True if a live token was rejected
        """
        token = self._tokens.pop(pause_id, None)
        if token is None or token.future.done():
            return False

        token.future.set_exception(
            create_error("CANCELLED", reason=reason, flow_instance_id=token.flow_instance_id)
        )
        self._log(LogLevel.INFO, f"Pause '{pause_id}' cancelled ({reason})")
        return True

    def cancel_for_instance(self, flow_instance_id: str, reason: str = "run cancelled") -> int:
        """Reject every pause token owned by a run.

        Returns:
            Number of tokens rejected
        """
        pause_ids = self.pauses_for(flow_instance_id)
        return sum(1 for pause_id in pause_ids if self.cancel(pause_id, reason=reason))

    def pauses_for(self, flow_instance_id: str) -> list[str]:
        return [
            token.pause_id
            for token in self._tokens.values()
            if token.flow_instance_id == flow_instance_id
        ]

    def has_pause(self, pause_id: str) -> bool:
        return pause_id in self._tokens

    def list_active_pauses(self, flow_instance_id: str | None = None) -> list[PauseSummary]:
        return [
            token.summary()
            for token in self._tokens.values()
            if flow_instance_id is None or token.flow_instance_id == flow_instance_id
        ]

    async def dispatch_resume(self, pause_id: str, data: Any = None) -> bool:
        """Resume locally, else broadcast to the other hubs.

        Returns:
            True if resolved locally or handed to the channel, False if the
            id is unknown here and there is no channel

        Raises:
            FlowError: CHANNEL_UNAVAILABLE if publishing fails
        """
        if self.resume(pause_id, data):
            return True
        if self._channel is None:
            return False

        message = ResumeMessage(pause_id=pause_id, resume_data=data, origin=self.instance_id)
        try:
            await self._channel.publish(message)
        except FlowError:
            raise
        except Exception as e:
            raise create_error("CHANNEL_UNAVAILABLE", detail=str(e)) from e

        self._log(LogLevel.DEBUG, f"Resume for '{pause_id}' published to channel")
        return True

    async def _on_message(self, message: ResumeMessage) -> None:
        if message.origin == self.instance_id:
            return
        self.resume(message.pause_id, message.resume_data)

    def _discard(self, token: PauseToken) -> None:
        # Covers futures cancelled by task cancellation as well as resolved ones
        if self._tokens.get(token.pause_id) is token:
            del self._tokens[token.pause_id]
        metrics = get_metrics()
        if metrics:
            metrics.record_pause_change(-1)

    @property
    def active_count(self) -> int:
        """Number of outstanding pause tokens."""
        return len(self._tokens)
