"""
Model-backed content sources.

LlmSource asks a Model for the next assistant turn; a failed validation
triggers a fresh generation. SchemaSource additionally requires the reply
to carry a structured tool call matching a pydantic model, and falls back
once to plain generation + JSON parsing when the model keeps missing.
"""
from __future__ import annotations

import json
import re
import structlog
from typing import Any, AsyncIterator, Optional, Type

from pydantic import BaseModel

from core.engine import GenerationOptions, Model, ToolSpec
from core.errors import GenerationError
from core.events import EngineObserver, emit
from core.tools import ToolRegistry
from models.schemas import AssistantMessage, BaseMessage, ModelOutput, SystemMessage
from models.session import Session
from sources.base import Attempt, ContentSource
from utils.extractors import extract_json_object
from validators.base import ValidationResult
from validators.schema import check_schema

logger = structlog.get_logger()


class LlmSource(ContentSource[ModelOutput]):
    """Generate the next assistant turn with an injected Model."""

    retry_on = (GenerationError,)

    def __init__(
        self,
        model: Model,
        options: Optional[GenerationOptions] = None,
        tools: Optional[ToolRegistry] = None,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.model = model
        self.options = options or GenerationOptions()
        self.tools = tools

    def request_options(self) -> GenerationOptions:
        if self.tools is not None and self.tools.count and not self.options.tools:
            return self.options.merged(tools=self.tools.specs())
        return self.options

    async def _send(self, session: Session, options: GenerationOptions) -> AssistantMessage:
        message = await self.model.send(session, options)
        if not isinstance(message, AssistantMessage):
            kind = getattr(message, "type", type(message).__name__)
            logger.warning("model_non_assistant_reply", source=self.name, got=str(kind))
            raise GenerationError(f"Expected an assistant message, got {kind}", self.name)
        return message

    async def produce(self, session: Session) -> ModelOutput:
        message = await self._send(session, self.request_options())
        return ModelOutput.from_message(message)

    async def stream(self, session: Session) -> AsyncIterator[BaseMessage]:
        """Pass through the model's incremental output. No validation is applied."""
        async for chunk in self.model.send_async(session, self.request_options()):
            yield chunk

    # ── Immutable reconfiguration ─────────────────────

    def with_options(self, **changes: Any) -> LlmSource:
        return self._replace(options=self.options.merged(**changes))

    def with_tools(self, tools: Optional[ToolRegistry]) -> LlmSource:
        return self._replace(tools=tools)


def _snake(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


class SchemaSource(LlmSource):
    """
    Structured output through a forced tool call.

    Each attempt offers a single tool whose parameters are the schema's
    JSON Schema. The reply must call it with arguments the schema accepts;
    the validated record becomes ``structured_output``. After
    ``max_attempts`` misses, one schema-less generation is tried and a JSON
    object is parsed out of the reply text.
    """

    def __init__(
        self,
        model: Model,
        schema: Type[BaseModel],
        function_name: str = "",
        description: str = "",
        **kwargs: Any,
    ):
        super().__init__(model, **kwargs)
        self.schema = schema
        self.spec = ToolSpec(
            name=function_name or _snake(schema.__name__),
            description=description or (schema.__doc__ or "").strip()
                        or f"Return a {schema.__name__} record",
            parameters=schema.model_json_schema(),
        )

    def request_options(self) -> GenerationOptions:
        return self.options.merged(tools=[self.spec], tool_choice=self.spec.name)

    def match(self, output: ModelOutput) -> tuple[Optional[dict[str, Any]], str]:
        call = next((c for c in output.tool_calls if c.name == self.spec.name), None)
        if call is None:
            return None, f"Respond by calling the '{self.spec.name}' tool"
        return check_schema(self.schema, call.arguments)

    async def produce(self, session: Session) -> ModelOutput:
        output = await super().produce(session)
        structured, _ = self.match(output)
        return output.model_copy(update={"structured_output": structured})

    def text_of(self, result: ModelOutput) -> str:
        if result.structured_output is not None:
            return json.dumps(result.structured_output)
        return result.content

    async def judge(self, result: ModelOutput, session: Session) -> ValidationResult:
        if result.structured_output is None:
            _, problem = self.match(result)
            return ValidationResult.fail(problem)
        return await self.validate_content(self.text_of(result), session)

    async def _fallback(self, session: Session) -> ModelOutput:
        hint = SystemMessage(
            content="Respond only with a JSON object matching this schema:\n"
                    + json.dumps(self.spec.parameters)
        )
        options = self.options.merged(tools=[], tool_choice=None)
        message = await self._send(session.add_message(hint), options)
        data = extract_json_object(message.content)
        structured = check_schema(self.schema, data)[0] if data is not None else None
        return ModelOutput(content=message.content, structured_output=structured,
                           metadata=dict(message.metadata))

    async def get_content(self, session: Session,
                          observer: Optional[EngineObserver] = None) -> ModelOutput:
        attempt = await self.run_attempts(session, observer)
        if attempt.verdict.is_valid or attempt.result.structured_output is not None:
            return self.settle(attempt, observer)

        emit(self.observer or observer, "schema_fallback", level="warning",
             template=self.name, attempts=attempt.number,
             instruction=attempt.verdict.instruction)
        output = await self._fallback(session)
        verdict = await self.judge(output, session)
        if not verdict.is_valid and output.structured_output is None:
            verdict = ValidationResult.fail(
                f"Could not obtain a {self.schema.__name__} record: {attempt.verdict.instruction}"
            )
        return self.settle(Attempt(output, self.text_of(output), verdict, attempt.number + 1),
                           observer)
