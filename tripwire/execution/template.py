"""Placeholder rendering for listener and action templates.

Unresolved placeholders are left as literal ``{{name}}`` text so a
misconfigured template is visible in the delivered message instead of
silently blank.
"""

import json
import re
from typing import Any, Mapping

PLACEHOLDER_PATTERN = re.compile(r"{{\s*([^}]+?)\s*}}")


def render_template(template: str, payload: Mapping[str, Any]) -> str:
    """Render a listener/action template against a flat payload.

    Strings are inserted as-is and other values through ``str()``. Missing
    keys, ``None`` and empty values keep the placeholder.

    >>> render_template("Hello {{ name }}", {"name": "Raj"})
    'Hello Raj'
    """

    def _substitute(match: "re.Match[str]") -> str:
        key = match.group(1).strip()
        value = payload.get(key)
        if value is None or value == "":
            return "{{" + key + "}}"
        return value if isinstance(value, str) else str(value)

    return PLACEHOLDER_PATTERN.sub(_substitute, template)


def replace_placeholders(template: str, data: Mapping[str, Any]) -> str:
    """General-purpose variant: non-string values are JSON-encoded."""

    def _substitute(match: "re.Match[str]") -> str:
        key = match.group(1).strip()
        if key not in data:
            return "{{" + key + "}}"
        value = data[key]
        return value if isinstance(value, str) else json.dumps(value, default=str)

    return PLACEHOLDER_PATTERN.sub(_substitute, template)
