"""Execution context bridge.

Runs one trigger of a listener or action: renders its template or hands
the instruction to the instruction executor, then applies the notify
policy through the messaging channel. Executor and channel failures stop
here; callers only see "no output".
"""

from typing import Any, Dict, Mapping, Optional, Protocol

import structlog

from .executor import InstructionExecutor
from .template import render_template
from .types import (
    Delivered,
    ExecutionContext,
    ExecutionResult,
    Ignored,
    InstructionRequest,
    InstructionTrigger,
    TemplateTrigger,
    TriggerSpec,
)

logger = structlog.get_logger()


class MessagingChannel(Protocol):
    """Best-effort delivery of text to an owner."""

    async def deliver(self, owner_id: str, text: str) -> None: ...


def find_image_context(payload: Mapping[str, Any]) -> Optional[str]:
    """Return the first inline image (``data:image/...`` URL) in a payload."""
    for value in payload.values():
        if isinstance(value, str) and value.startswith("data:image/"):
            return value
    return None


class ExecutionBridge:
    """Turns a trigger spec plus payload into delivered output."""

    def __init__(
        self,
        executor: InstructionExecutor,
        channel: Optional[MessagingChannel] = None,
    ) -> None:
        self.executor = executor
        self.channel = channel

    async def run(
        self,
        trigger: TriggerSpec,
        *,
        owner_id: str,
        payload: Optional[Dict[str, Any]],
        notify: bool,
        context: ExecutionContext,
    ) -> Optional[ExecutionResult]:
        """Execute a trigger.

        Returns ``Delivered`` or ``Ignored``, or ``None`` when execution
        failed (already logged).
        """
        payload = payload or {}
        try:
            result = await self._execute(trigger, owner_id, payload, notify, context)
        except Exception:
            logger.exception(
                "Trigger execution failed",
                source=context.kind,
                source_id=context.source_id,
                event_id=context.event_id,
                owner_id=owner_id,
            )
            return None

        if isinstance(result, Ignored):
            logger.info(
                "Trigger ignored by executor",
                source=context.kind,
                source_id=context.source_id,
                event_id=context.event_id,
            )
            return result

        if notify:
            await self._deliver(owner_id, result.text, context)
        else:
            logger.info(
                "Silenced notification",
                source=context.kind,
                source_id=context.source_id,
                text_length=len(result.text),
            )
        return result

    async def _execute(
        self,
        trigger: TriggerSpec,
        owner_id: str,
        payload: Dict[str, Any],
        notify: bool,
        context: ExecutionContext,
    ) -> ExecutionResult:
        if isinstance(trigger, TemplateTrigger):
            return Delivered(text=render_template(trigger.template, payload))

        if isinstance(trigger, InstructionTrigger):
            request = InstructionRequest(
                instruction=trigger.instruction,
                payload=payload,
                owner_id=owner_id,
                notify=notify,
                context=context,
                tool_names=list(trigger.tool_names),
                image_context=find_image_context(payload),
            )
            logger.info(
                "Running instruction",
                source=context.kind,
                source_id=context.source_id,
                description=context.description,
            )
            return await self.executor.execute(request)

        raise TypeError(f"Unknown trigger spec: {trigger!r}")

    async def _deliver(
        self, owner_id: str, text: str, context: ExecutionContext
    ) -> None:
        if self.channel is None:
            logger.warning(
                "No messaging channel configured, dropping notification",
                owner_id=owner_id,
                source_id=context.source_id,
            )
            return
        try:
            await self.channel.deliver(owner_id, text)
        except Exception:
            logger.exception(
                "Failed to deliver notification",
                owner_id=owner_id,
                source=context.kind,
                source_id=context.source_id,
            )
