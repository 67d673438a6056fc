"""Content validators that only look at the text itself."""
from __future__ import annotations

import json
import re
from typing import Optional, Sequence, Union

from models.session import Session
from validators.base import ValidationResult, Validator


class RegexMatchValidator(Validator):
    def __init__(self, pattern: Union[str, re.Pattern], description: str = ""):
        self.regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        self.description = description or f"Result must match {self.regex.pattern}"

    async def validate(self, content: str, session: Optional[Session] = None) -> ValidationResult:
        if self.regex.search(content):
            return ValidationResult.ok()
        return ValidationResult.fail(self.description)


class RegexNoMatchValidator(Validator):
    def __init__(self, pattern: Union[str, re.Pattern], description: str = ""):
        self.regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        self.description = description or f"Result must not match {self.regex.pattern}"

    async def validate(self, content: str, session: Optional[Session] = None) -> ValidationResult:
        if self.regex.search(content):
            return ValidationResult.fail(self.description)
        return ValidationResult.ok()


class KeywordValidator(Validator):
    """Pass when content includes (or, in exclude mode, avoids) any of the keywords."""

    def __init__(
        self,
        keywords: Sequence[str],
        mode: str = "include",                   # "include" | "exclude"
        case_sensitive: bool = False,
        description: str = "",
    ):
        if mode not in ("include", "exclude"):
            raise ValueError(f"mode must be 'include' or 'exclude', got {mode!r}")
        self.keywords = list(keywords)
        self.mode = mode
        self.case_sensitive = case_sensitive
        action = "must include" if mode == "include" else "must not include"
        self.description = description or (
            f"Result {action} one of these keywords: {', '.join(self.keywords)}"
        )

    async def validate(self, content: str, session: Optional[Session] = None) -> ValidationResult:
        haystack = content if self.case_sensitive else content.lower()
        needles = self.keywords if self.case_sensitive else [k.lower() for k in self.keywords]
        found = any(k in haystack for k in needles)
        passed = found if self.mode == "include" else not found
        return ValidationResult.ok() if passed else ValidationResult.fail(self.description)


class LengthValidator(Validator):
    def __init__(self, min: Optional[int] = None, max: Optional[int] = None,
                 description: str = ""):
        if min is None and max is None:
            raise ValueError("LengthValidator needs min, max, or both")
        self.min = min
        self.max = max
        if min is not None and max is not None:
            constraint = f"between {min} and {max}"
        elif min is not None:
            constraint = f"at least {min}"
        else:
            constraint = f"at most {max}"
        self.description = description or f"Content length must be {constraint} characters"

    async def validate(self, content: str, session: Optional[Session] = None) -> ValidationResult:
        length = len(content)
        too_short = self.min is not None and length < self.min
        too_long = self.max is not None and length > self.max
        if too_short or too_long:
            return ValidationResult.fail(f"{self.description} (current: {length})")
        return ValidationResult.ok()


class JsonValidator(Validator):
    """Content must parse as a JSON object, optionally containing ``required_keys``."""

    def __init__(self, required_keys: Sequence[str] = (), description: str = ""):
        self.required_keys = list(required_keys)
        self.description = description or "Content must be valid JSON"

    async def validate(self, content: str, session: Optional[Session] = None) -> ValidationResult:
        try:
            data = json.loads(content)
        except ValueError as e:
            return ValidationResult.fail(f"Invalid JSON: {e}")
        if self.required_keys:
            if not isinstance(data, dict):
                return ValidationResult.fail("JSON content must be an object")
            missing = [k for k in self.required_keys if k not in data]
            if missing:
                return ValidationResult.fail(f"Missing required keys: {', '.join(missing)}")
        return ValidationResult.ok()
