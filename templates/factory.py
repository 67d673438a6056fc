"""
Convenience constructors for building template trees.

One named constructor per input shape: ``user("hi")`` wraps fixed text,
``user_from(source)`` wraps any ContentSource, ``user_cli(...)`` reads
from the terminal, and so on.
"""
from __future__ import annotations

from typing import Any, Callable, Optional, Sequence as SequenceOf, Type, Union

from pydantic import BaseModel

from core.engine import GenerationOptions, Model
from core.tools import ToolRegistry
from models.session import Session
from sources.base import ContentSource
from sources.model import LlmSource, SchemaSource
from sources.text import CLISource, Reader
from templates.base import Template
from templates.composite import (
    Conditional, InitFn, Loop, Predicate, Sequence, SessionFn, SquashFn, Subroutine, Transform,
)
from templates.messages import (
    AssistantTemplate, SystemTemplate, ToolResultTemplate, UserTemplate,
)
from utils.conditions import VarCondition, vars_match
from validators.base import Validator


# ── Leaves ────────────────────────────────────────────

def system(text: str, **kwargs: Any) -> SystemTemplate:
    return SystemTemplate.from_text(text, **kwargs)


def system_from(source: ContentSource, **kwargs: Any) -> SystemTemplate:
    return SystemTemplate(source, **kwargs)


def user(text: str, **kwargs: Any) -> UserTemplate:
    return UserTemplate.from_text(text, **kwargs)


def user_from(source: ContentSource, **kwargs: Any) -> UserTemplate:
    return UserTemplate(source, **kwargs)


def user_cli(prompt: Optional[str] = None, default: Optional[str] = None,
             validator: Optional[Validator] = None, max_attempts: Optional[int] = None,
             reader: Optional[Reader] = None, **kwargs: Any) -> UserTemplate:
    """Terminal input; the re-prompt loop uses ``validator`` and ``max_attempts``."""
    return UserTemplate(CLISource(prompt, default, reader=reader), validator=validator,
                        max_attempts=max_attempts, **kwargs)


def assistant(text: str, **kwargs: Any) -> AssistantTemplate:
    return AssistantTemplate.from_text(text, **kwargs)


def assistant_from(source: ContentSource, **kwargs: Any) -> AssistantTemplate:
    return AssistantTemplate(source, **kwargs)


def generate(
    model: Model,
    options: Optional[GenerationOptions] = None,
    tools: Optional[ToolRegistry] = None,
    validator: Optional[Validator] = None,
    max_attempts: Optional[int] = None,
    raise_error: Optional[bool] = None,
    **kwargs: Any,
) -> AssistantTemplate:
    """Model-generated assistant turn. Tools, when given, are advertised and executed."""
    source = LlmSource(model, options=options, tools=tools, validator=validator,
                       max_attempts=max_attempts, raise_error=raise_error)
    return AssistantTemplate(source, tools=tools, **kwargs)


def structured(
    model: Model,
    schema: Type[BaseModel],
    function_name: str = "",
    extract_to_vars: Union[bool, SequenceOf[str], dict[str, str]] = False,
    max_attempts: Optional[int] = None,
    raise_error: Optional[bool] = None,
    **kwargs: Any,
) -> AssistantTemplate:
    """Assistant turn whose reply must be a ``schema`` record."""
    source = SchemaSource(model, schema, function_name=function_name,
                          max_attempts=max_attempts, raise_error=raise_error)
    return AssistantTemplate(source, extract_to_vars=extract_to_vars, **kwargs)


def tool_result(text: str, tool_call_id: str, **kwargs: Any) -> ToolResultTemplate:
    return ToolResultTemplate.from_text(text, tool_call_id, **kwargs)


# ── Composites ────────────────────────────────────────

def sequence(*templates: Template, **kwargs: Any) -> Sequence:
    return Sequence(list(templates), **kwargs)


def conditional(condition: Predicate, then: Template,
                otherwise: Optional[Template] = None, **kwargs: Any) -> Conditional:
    return Conditional(condition, then, otherwise, **kwargs)


def loop(body: Union[Template, SequenceOf[Template]], until: Optional[Predicate] = None,
         max_iterations: Optional[int] = None, **kwargs: Any) -> Loop:
    return Loop(body, until=until, max_iterations=max_iterations, **kwargs)


def subroutine(*templates: Template, init_with: Optional[InitFn] = None,
               squash_with: Optional[SquashFn] = None, isolated_context: bool = False,
               retain_messages: bool = True, **kwargs: Any) -> Subroutine:
    return Subroutine(list(templates), init_with=init_with, squash_with=squash_with,
                      isolated_context=isolated_context, retain_messages=retain_messages,
                      **kwargs)


def transform(*fns: SessionFn, **kwargs: Any) -> Transform:
    return Transform(list(fns), **kwargs)


def set_vars(**values: Any) -> Transform:
    """Transform that merges fixed values into vars."""
    return Transform(lambda s: s.update_vars(values))


# ── Predicates ────────────────────────────────────────

def when(field: str, operator: str = "eq", value: Any = None) -> Callable[[Session], bool]:
    """Var predicate, e.g. ``when("attempts", "gte", 3)``."""
    return vars_match(VarCondition(field=field, operator=operator, value=value))
