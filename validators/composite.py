"""Validator combinators."""
from __future__ import annotations

from typing import Optional, Sequence

from models.session import Session
from validators.base import ValidationResult, Validator

ANY_PREAMBLE = (
    "None of the following validators passed. "
    "Any of the following instructions should be followed:"
)


class AllValidator(Validator):
    """Logical AND. Every child runs; all failing instructions are reported."""

    def __init__(self, validators: Sequence[Validator], description: str = ""):
        self.validators = list(validators)
        self.description = description or "All validators must pass"

    async def validate(self, content: str, session: Optional[Session] = None) -> ValidationResult:
        failures: list[str] = []
        for validator in self.validators:
            result = await validator.validate(content, session)
            if not result.is_valid:
                failures.append(result.instruction)
        if failures:
            return ValidationResult.fail("\n".join(failures))
        return ValidationResult.ok()


class AnyValidator(Validator):
    """Logical OR. Stops at the first child that passes."""

    def __init__(self, validators: Sequence[Validator], description: str = ""):
        self.validators = list(validators)
        self.description = description or "At least one validator must pass"

    async def validate(self, content: str, session: Optional[Session] = None) -> ValidationResult:
        failures: list[str] = []
        for validator in self.validators:
            result = await validator.validate(content, session)
            if result.is_valid:
                return ValidationResult.ok()
            failures.append(result.instruction)
        return ValidationResult.fail("\n".join([ANY_PREAMBLE, *failures]))
