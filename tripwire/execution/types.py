"""Value types shared by the execution bridge, listeners and actions.

A trigger spec is stored data describing what runs when a listener or
action fires. A single dispatcher interprets it; nothing is captured in
per-listener closures.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Union


@dataclass(frozen=True)
class TemplateTrigger:
    """Render a placeholder template against the trigger payload."""

    template: str
    kind: Literal["template"] = "template"


@dataclass(frozen=True)
class InstructionTrigger:
    """Hand a free-text instruction to the instruction executor."""

    instruction: str
    tool_names: List[str] = field(default_factory=list)
    kind: Literal["instruction"] = "instruction"


TriggerSpec = Union[TemplateTrigger, InstructionTrigger]


def trigger_from_fields(
    instruction: Optional[str],
    template: Optional[str],
    tool_names: Optional[List[str]] = None,
) -> TriggerSpec:
    """Build a trigger spec, enforcing that exactly one source is set."""
    has_instruction = bool(instruction)
    has_template = bool(template)
    if has_instruction == has_template:
        raise ValueError(
            "Either 'instruction' or 'template' must be provided, but not both."
        )
    if template:
        return TemplateTrigger(template=template)
    return InstructionTrigger(
        instruction=instruction or "", tool_names=list(tool_names or [])
    )


def trigger_to_fields(trigger: TriggerSpec) -> Dict[str, Any]:
    """Flatten a trigger spec into instruction/template/tool_names fields."""
    if isinstance(trigger, TemplateTrigger):
        return {"instruction": None, "template": trigger.template, "tool_names": None}
    return {
        "instruction": trigger.instruction,
        "template": None,
        "tool_names": list(trigger.tool_names),
    }


@dataclass(frozen=True)
class Delivered:
    """The trigger produced text for the owner."""

    text: str


@dataclass(frozen=True)
class Ignored:
    """The executor decided the payload does not match the instruction."""


ExecutionResult = Union[Delivered, Ignored]


@dataclass(frozen=True)
class ExecutionContext:
    """Where a trigger came from; passed through to the executor."""

    kind: Literal["listener", "action"]
    source_id: str
    description: str
    event_id: Optional[str] = None


@dataclass(frozen=True)
class InstructionRequest:
    """Everything the instruction executor receives for one trigger."""

    instruction: str
    payload: Dict[str, Any]
    owner_id: str
    notify: bool
    context: ExecutionContext
    tool_names: List[str] = field(default_factory=list)
    image_context: Optional[str] = None
