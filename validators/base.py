"""
Validator capability.

A validator judges one piece of content (optionally in light of the
session it is headed for) and returns a ValidationResult. Failing results
carry an instruction: human/model-readable guidance for the next attempt.
"""
from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import BaseModel

from models.session import Session


class ValidationResult(BaseModel):
    is_valid: bool
    instruction: str = ""

    @classmethod
    def ok(cls) -> ValidationResult:
        return cls(is_valid=True)

    @classmethod
    def fail(cls, instruction: str) -> ValidationResult:
        return cls(is_valid=False, instruction=instruction)


class Validator(ABC):
    description: str = ""

    @abstractmethod
    async def validate(self, content: str, session: Optional[Session] = None) -> ValidationResult:
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.description!r})"


CheckFn = Callable[[str, Optional[Session]],
                   Union[bool, ValidationResult, Awaitable[Union[bool, ValidationResult]]]]


class CustomValidator(Validator):
    """
    Wrap a function fn(content, session) → bool | ValidationResult (sync or async).
    A bare ``False`` fails with ``instruction``.
    """

    def __init__(self, fn: CheckFn, instruction: str = "Content failed custom validation",
                 description: str = "Custom validation"):
        self._fn = fn
        self.instruction = instruction
        self.description = description

    async def validate(self, content: str, session: Optional[Session] = None) -> ValidationResult:
        outcome: Any = self._fn(content, session)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        if isinstance(outcome, ValidationResult):
            return outcome
        return ValidationResult.ok() if outcome else ValidationResult.fail(self.instruction)
