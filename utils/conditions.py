"""
Shared condition evaluator — used by Conditional and Loop predicates.

Evaluates VarCondition objects against session vars (or any mapping).
Supports nested dot-notation field access and type coercion.
"""
from __future__ import annotations

import re
import operator as op
from collections.abc import Mapping
from typing import Any, Callable

from pydantic import BaseModel

from models.session import Session


OPERATORS: dict[str, Any] = {
    "eq": op.eq,
    "neq": op.ne,
    "gt": op.gt,
    "gte": op.ge,
    "lt": op.lt,
    "lte": op.le,
    "in": lambda a, b: a in b,
    "contains": lambda a, b: b in str(a),
    "regex": lambda a, b: bool(re.search(str(b), str(a))),
    "exists": lambda a, b: a is not None,
    "not_exists": lambda a, b: a is None,
}


class VarCondition(BaseModel):
    field: str                                    # dot-path into vars, e.g. "user.age"
    operator: str = "eq"                          # key of OPERATORS
    value: Any = None


def get_nested_value(data: Any, field: str) -> Any:
    """Get a value from nested data using dot notation. e.g. 'order.items.0.sku'"""
    current = data
    for part in field.split("."):
        if isinstance(current, Mapping):
            current = current.get(part)
        elif isinstance(current, (list, tuple)) and part.lstrip("-").isdigit():
            idx = int(part)
            current = current[idx] if -len(current) <= idx < len(current) else None
        elif hasattr(current, "__dict__") and not part.startswith("_") and hasattr(current, part):
            current = getattr(current, part)
        else:
            return None
    return current


def evaluate_condition(condition: VarCondition, data: Mapping[str, Any]) -> bool:
    """Evaluate a single condition against data."""
    val = get_nested_value(data, condition.field)
    fn = OPERATORS.get(condition.operator)
    if fn is None:
        return False
    try:
        if isinstance(condition.value, (int, float)) and not isinstance(condition.value, bool) and isinstance(val, str):
            val = float(val)
        return fn(val, condition.value)
    except (TypeError, ValueError):
        return False


def evaluate_conditions(conditions: list[VarCondition], data: Mapping[str, Any]) -> bool:
    """Evaluate all conditions (AND logic). Returns True if all pass."""
    if not conditions:
        return True
    return all(evaluate_condition(c, data) for c in conditions)


def vars_match(*conditions: VarCondition) -> Callable[[Session], bool]:
    """Build a session predicate that is true when every condition holds on its vars."""
    conds = list(conditions)

    def predicate(session: Session) -> bool:
        return evaluate_conditions(conds, session.vars)

    return predicate
