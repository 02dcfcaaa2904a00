"""Execution of listener and action triggers."""

from .bridge import ExecutionBridge, MessagingChannel
from .executor import (
    HttpInstructionExecutor,
    InstructionExecutor,
    InstructionExecutorError,
    UnconfiguredInstructionExecutor,
)
from .template import render_template, replace_placeholders
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

__all__ = [
    "Delivered",
    "ExecutionBridge",
    "ExecutionContext",
    "ExecutionResult",
    "HttpInstructionExecutor",
    "Ignored",
    "InstructionExecutor",
    "InstructionExecutorError",
    "InstructionRequest",
    "InstructionTrigger",
    "MessagingChannel",
    "TemplateTrigger",
    "TriggerSpec",
    "UnconfiguredInstructionExecutor",
    "render_template",
    "replace_placeholders",
]
