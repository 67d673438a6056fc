"""
Model capability — the seam between templates and an LLM provider.

Templates never talk to a provider SDK. They receive something that
satisfies the Model protocol:

    await model.send(session, options)        → AssistantMessage
    model.send_async(session, options)        → async iterator of AssistantMessage deltas

CallableModel adapts a plain async function over provider-neutral chat
messages, which is how most applications plug in their own client.
"""
from __future__ import annotations

import inspect
import json
import structlog
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Protocol, Union, runtime_checkable

from pydantic import BaseModel

from core.errors import GenerationError
from models.schemas import AssistantMessage, BaseMessage, ToolResultMessage
from models.session import Session

logger = structlog.get_logger()


class ToolSpec(BaseModel):
    """A tool advertised to the model."""
    name: str
    description: str = ""
    parameters: dict[str, Any] = {}               # JSON Schema for arguments


class GenerationOptions(BaseModel):
    """Per-request generation knobs, passed through to the provider adapter."""
    model: str = ""
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    tools: list[ToolSpec] = []
    tool_choice: Optional[str] = None             # "auto" | "required" | "none" | a tool name
    extra: dict[str, Any] = {}

    def merged(self, **changes: Any) -> GenerationOptions:
        return self.model_copy(update=changes)


@runtime_checkable
class Model(Protocol):
    async def send(self, session: Session,
                   options: Optional[GenerationOptions] = None) -> BaseMessage: ...

    def send_async(self, session: Session,
                   options: Optional[GenerationOptions] = None) -> AsyncIterator[BaseMessage]: ...


def to_chat_messages(session: Session) -> list[dict[str, Any]]:
    """Flatten a session into provider-neutral role/content dicts."""
    out: list[dict[str, Any]] = []
    for msg in session.messages:
        if isinstance(msg, ToolResultMessage):
            out.append({"role": "tool", "content": msg.content,
                        "tool_call_id": msg.tool_call_id})
        elif isinstance(msg, AssistantMessage) and msg.tool_calls:
            out.append({
                "role": "assistant",
                "content": msg.content,
                "tool_calls": [
                    {"id": c.id, "name": c.name, "arguments": json.dumps(c.arguments)}
                    for c in msg.tool_calls
                ],
            })
        else:
            out.append({"role": msg.type.value, "content": msg.content})
    return out


GenerateFn = Callable[[list[dict[str, Any]], GenerationOptions],
                      Union[Awaitable[Union[str, AssistantMessage]], str, AssistantMessage]]


class CallableModel:
    """
    Model backed by a user function.

    Args:
        generate: fn(chat_messages, options) → str | AssistantMessage (sync or async)
        name:     label used in log lines
    """

    def __init__(self, generate: GenerateFn, name: str = "callable"):
        self._generate = generate
        self.name = name

    async def send(self, session: Session,
                   options: Optional[GenerationOptions] = None) -> AssistantMessage:
        options = options or GenerationOptions()
        result = self._generate(to_chat_messages(session), options)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, str):
            return AssistantMessage(content=result)
        if isinstance(result, AssistantMessage):
            return result
        logger.error("model_bad_response", model=self.name, got=type(result).__name__)
        raise GenerationError(f"Model '{self.name}' returned {type(result).__name__}")

    async def send_async(self, session: Session,
                         options: Optional[GenerationOptions] = None) -> AsyncIterator[AssistantMessage]:
        yield await self.send(session, options)
