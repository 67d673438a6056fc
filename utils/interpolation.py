"""
${dotted.path} interpolation against session vars.

Unresolved paths render as an empty string; interpolation never fails.
"""
from __future__ import annotations

import json
import re
from typing import Any, Mapping

from utils.conditions import get_nested_value

PLACEHOLDER = re.compile(r"\$\{\s*([\w.\-]+)\s*\}")


def _render(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def interpolate(template: str, variables: Mapping[str, Any]) -> str:
    """Replace every ``${path}`` in ``template`` with the value found in ``variables``."""
    if "${" not in template:
        return template
    return PLACEHOLDER.sub(
        lambda m: _render(get_nested_value(variables, m.group(1))), template
    )


def placeholders(template: str) -> list[str]:
    """Paths referenced by ``template``, in order of appearance."""
    return PLACEHOLDER.findall(template)
