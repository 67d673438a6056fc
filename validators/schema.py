"""Validate content against a pydantic model."""
from __future__ import annotations

from typing import Any, Optional, Type

import pydantic
from pydantic import BaseModel

from models.session import Session
from utils.extractors import extract_json_object
from validators.base import ValidationResult, Validator


def describe_errors(error: pydantic.ValidationError, limit: int = 5) -> str:
    parts = []
    for err in error.errors()[:limit]:
        loc = ".".join(str(p) for p in err.get("loc", ())) or "<root>"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


def check_schema(schema: Type[BaseModel], data: Any) -> tuple[Optional[dict[str, Any]], str]:
    """Return (validated dict, "") on success or (None, instruction) on mismatch."""
    try:
        record = schema.model_validate(data)
    except pydantic.ValidationError as e:
        return None, f"Output does not match the {schema.__name__} schema: {describe_errors(e)}"
    return record.model_dump(mode="json"), ""


class SchemaValidator(Validator):
    """Content must contain a JSON object accepted by ``schema``."""

    def __init__(self, schema: Type[BaseModel], description: str = ""):
        self.schema = schema
        self.description = description or f"Content must be JSON matching {schema.__name__}"

    async def validate(self, content: str, session: Optional[Session] = None) -> ValidationResult:
        data = extract_json_object(content)
        if data is None:
            return ValidationResult.fail(f"{self.description}; no JSON object found")
        _, problem = check_schema(self.schema, data)
        return ValidationResult.fail(problem) if problem else ValidationResult.ok()
