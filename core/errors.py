"""
Error taxonomy for template execution.

  TemplateError            — base for everything the engine raises
  ├── ConfigurationError   — missing content source, bad option (never retried)
  ├── ValidationError      — retry bound exhausted with raise_error=True
  ├── StructuralError      — malformed template tree or session
  ├── SourceExhaustedError — sequential list source ran out
  │   └── EmptySourceError — looping list source has nothing to loop over
  ├── GenerationError      — model did not answer with an assistant message
  └── ToolExecutionError   — tool failed; contained at the Assistant boundary
"""
from __future__ import annotations

from typing import Optional


class TemplateError(Exception):
    """Base exception for all template operations."""

    def __init__(self, message: str, template: str = "", retryable: bool = False):
        self.template = template
        self.retryable = retryable
        super().__init__(message)


class ConfigurationError(TemplateError):
    pass


class ValidationError(TemplateError):
    """Content kept failing validation after every allowed attempt."""

    def __init__(self, instruction: str, attempts: int = 1, template: str = ""):
        self.instruction = instruction
        self.attempts = attempts
        super().__init__(
            f"Validation failed after {attempts} attempt(s): {instruction}",
            template,
        )


class StructuralError(TemplateError):
    pass


class SourceExhaustedError(TemplateError):
    def __init__(self, message: str = "No more content in the list source"):
        super().__init__(message)


class EmptySourceError(SourceExhaustedError):
    def __init__(self, message: str = "List source is empty"):
        super().__init__(message)


class GenerationError(TemplateError):
    def __init__(self, message: str, template: str = ""):
        super().__init__(message, template, retryable=True)


class ToolExecutionError(TemplateError):
    def __init__(self, tool_name: str, message: str, call_id: str = "",
                 cause: Optional[BaseException] = None):
        self.tool_name = tool_name
        self.call_id = call_id
        self.cause = cause
        super().__init__(f"Tool '{tool_name}' failed: {message}")
