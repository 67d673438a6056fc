"""
Message templates — leaves of the template tree.

Each wraps one ContentSource. The construction-time source wins; without
one, the template uses the default source handed down by an enclosing
composite through the ExecutionContext. Neither present is a
ConfigurationError.

Side-channel output from the source (metadata, a structured record) is
merged into vars by every leaf.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence, Union

from core.errors import ConfigurationError, ToolExecutionError, ValidationError
from core.events import EngineObserver
from core.tools import ToolRegistry, serialize_result
from models.schemas import (
    AssistantMessage, ModelOutput, SystemMessage, ToolResultMessage, UserMessage,
)
from models.session import Session
from sources.base import ContentSource
from sources.text import StaticSource
from templates.base import ExecutionContext, Template, TemplateKind
from validators.base import Validator


ExtractConfig = Union[bool, Sequence[str], Mapping[str, str]]


class MessageTemplate(Template):
    """Shared source resolution for leaf templates."""

    def __init__(self, source: Optional[ContentSource] = None, name: str = "",
                 observer: Optional[EngineObserver] = None):
        super().__init__(name, observer)
        self.source = source

    def resolve_source(self, context: ExecutionContext) -> ContentSource:
        source = self.source or self._inherited_source(context)
        if source is None:
            raise ConfigurationError(f"{self.name} has no content source", self.name)
        return source

    def _inherited_source(self, context: ExecutionContext) -> Optional[ContentSource]:
        return None

    async def produce(self, source: ContentSource, session: Session,
                      context: ExecutionContext) -> ModelOutput:
        """Fetch content from ``source``; plain text is wrapped as a ModelOutput."""
        produced = await source.get_content(session, context.observer)
        if isinstance(produced, ModelOutput):
            return produced
        return ModelOutput(content=source.text_of(produced))

    def merge_side_channel(self, session: Session, output: ModelOutput) -> Session:
        """Merge metadata and ``structured_output`` of ``output`` into vars."""
        updates: dict[str, Any] = dict(output.metadata)
        if output.structured_output is not None:
            updates["structured_output"] = output.structured_output
            updates.update(self._extracted(output.structured_output))
        return session.update_vars(updates) if updates else session

    def _extracted(self, data: Mapping[str, Any]) -> dict[str, Any]:
        return {}


# ──────────────────────────────────────────────────────────────
#  System
# ──────────────────────────────────────────────────────────────

class SystemTemplate(MessageTemplate):
    kind = TemplateKind.SYSTEM

    @classmethod
    def from_text(cls, content: str, **kwargs: Any) -> SystemTemplate:
        return cls(StaticSource(content), **kwargs)

    async def _run(self, session: Session, context: ExecutionContext) -> Session:
        output = await self.produce(self.resolve_source(context), session, context)
        session = session.add_message(SystemMessage(content=output.content,
                                                    metadata=dict(output.metadata)))
        return self.merge_side_channel(session, output)


# ──────────────────────────────────────────────────────────────
#  User
# ──────────────────────────────────────────────────────────────

class UserTemplate(MessageTemplate):
    """
    Append user input. On validation failure, re-prompt: add a system
    message describing the failure, fetch new input, add a new user
    message, up to ``max_attempts`` user messages in total.

    The validator is the template's own or, failing that, the source's.
    ``max_attempts`` and ``raise_error`` default to the source's.
    """

    kind = TemplateKind.USER

    def __init__(
        self,
        source: Optional[ContentSource] = None,
        validator: Optional[Validator] = None,
        max_attempts: Optional[int] = None,
        raise_error: Optional[bool] = None,
        name: str = "",
        observer: Optional[EngineObserver] = None,
    ):
        super().__init__(source, name, observer)
        if max_attempts is not None and max_attempts < 1:
            raise ConfigurationError(f"max_attempts must be >= 1, got {max_attempts}", self.name)
        self.validator = validator
        self.max_attempts = max_attempts
        self.raise_error = raise_error

    @classmethod
    def from_text(cls, content: str, **kwargs: Any) -> UserTemplate:
        return cls(StaticSource(content), **kwargs)

    def _inherited_source(self, context: ExecutionContext) -> Optional[ContentSource]:
        return context.user_source

    async def _run(self, session: Session, context: ExecutionContext) -> Session:
        source = self.resolve_source(context)
        validator = self.validator or source.validator
        bound = self.max_attempts or source.max_attempts
        raise_error = self.raise_error if self.raise_error is not None else source.raise_error

        session, content = await self._ask(source, session, context)
        if validator is None:
            return session

        attempts = 1
        result = await validator.validate(content, session)
        while not result.is_valid:
            if attempts >= bound:
                if raise_error:
                    raise ValidationError(result.instruction, attempts, self.name)
                self.emit(context, "user_validation_exhausted", level="warning",
                          attempts=attempts, instruction=result.instruction)
                break
            self.emit(context, "user_reprompt", level="warning",
                      attempt=attempts, instruction=result.instruction)
            session = session.add_message(SystemMessage(
                content=f"Validation failed: {result.instruction}. Please try again."
            ))
            session, content = await self._ask(source, session, context)
            attempts += 1
            result = await validator.validate(content, session)
        return session

    async def _ask(self, source: ContentSource, session: Session,
                   context: ExecutionContext) -> tuple[Session, str]:
        output = await self.produce(source, session, context)
        session = session.add_message(UserMessage(content=output.content,
                                                  metadata=dict(output.metadata)))
        return self.merge_side_channel(session, output), output.content


# ──────────────────────────────────────────────────────────────
#  Assistant
# ──────────────────────────────────────────────────────────────

class AssistantTemplate(MessageTemplate):
    """
    Append an assistant turn.

    Side-channel output lands in vars: the source's metadata is merged in,
    ``structured_output`` is stored under that key, and ``extract_to_vars``
    copies structured fields out (True = all, list = selected fields,
    mapping = field → var name).

    With a ToolRegistry configured, every tool call on the reply is run
    and answered with one ToolResult message, in call order. Tool
    failures become error results; they never abort the session.
    """

    kind = TemplateKind.ASSISTANT

    def __init__(
        self,
        source: Optional[ContentSource] = None,
        tools: Optional[ToolRegistry] = None,
        extract_to_vars: ExtractConfig = False,
        name: str = "",
        observer: Optional[EngineObserver] = None,
    ):
        super().__init__(source, name, observer)
        self.tools = tools
        self.extract_to_vars = extract_to_vars

    @classmethod
    def from_text(cls, content: str, **kwargs: Any) -> AssistantTemplate:
        return cls(StaticSource(content), **kwargs)

    def _inherited_source(self, context: ExecutionContext) -> Optional[ContentSource]:
        return context.assistant_source

    async def _run(self, session: Session, context: ExecutionContext) -> Session:
        output = await self.produce(self.resolve_source(context), session, context)
        message = AssistantMessage(
            content=output.content,
            tool_calls=list(output.tool_calls),
            structured_output=output.structured_output,
            metadata=dict(output.metadata),
        )
        session = self.merge_side_channel(session.add_message(message), output)

        if message.tool_calls:
            session = await self._answer_tool_calls(session, message, context)
        return session

    def _extracted(self, data: Mapping[str, Any]) -> dict[str, Any]:
        config = self.extract_to_vars
        if config is True:
            return dict(data)
        if not config:
            return {}
        if isinstance(config, Mapping):
            return {var: data[field] for field, var in config.items() if field in data}
        return {field: data[field] for field in config if field in data}

    async def _answer_tool_calls(self, session: Session, message: AssistantMessage,
                                 context: ExecutionContext) -> Session:
        if self.tools is None:
            self.emit(context, "tool_calls_unhandled",
                      tools=[c.name for c in message.tool_calls])
            return session

        for call in message.tool_calls:
            try:
                content = await self.tools.execute(call)
                result = ToolResultMessage(content=content, tool_call_id=call.id,
                                           tool_name=call.name, result=content)
            except ToolExecutionError as e:
                self.emit(context, "tool_execution_failed", level="warning",
                          tool=call.name, call_id=call.id, error=str(e))
                result = ToolResultMessage(
                    content=serialize_result({"error": str(e)}),
                    tool_call_id=call.id, tool_name=call.name,
                    result={"error": str(e)}, is_error=True,
                )
            session = session.add_message(result)
        return session


# ──────────────────────────────────────────────────────────────
#  Tool result
# ──────────────────────────────────────────────────────────────

class ToolResultTemplate(MessageTemplate):
    """Append a tool result answering ``tool_call_id``."""

    kind = TemplateKind.TOOL_RESULT

    def __init__(self, source: Optional[ContentSource] = None, tool_call_id: str = "",
                 tool_name: str = "", name: str = "",
                 observer: Optional[EngineObserver] = None):
        super().__init__(source, name, observer)
        self.tool_call_id = tool_call_id
        self.tool_name = tool_name

    @classmethod
    def from_text(cls, content: str, tool_call_id: str, **kwargs: Any) -> ToolResultTemplate:
        return cls(StaticSource(content), tool_call_id=tool_call_id, **kwargs)

    async def _run(self, session: Session, context: ExecutionContext) -> Session:
        output = await self.produce(self.resolve_source(context), session, context)
        session = session.add_message(ToolResultMessage(
            content=output.content, tool_call_id=self.tool_call_id,
            tool_name=self.tool_name, result=output.content,
            metadata=dict(output.metadata),
        ))
        return self.merge_side_channel(session, output)
