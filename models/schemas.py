"""
Core data models for ConvoWeave.

Messages are a closed set of frozen records discriminated by ``type``.
Each message instance gets its own ``id``; sessions and subroutines use
that id (not structural equality) to tell messages apart.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ──────────────────────────────────────────────────────────────
#  Enums
# ──────────────────────────────────────────────────────────────

class MessageType(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL_RESULT = "tool_result"


# ──────────────────────────────────────────────────────────────
#  Tool calls
# ──────────────────────────────────────────────────────────────

class ToolCall(BaseModel):
    """A model's request to run a tool."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"call_{uuid.uuid4().hex[:12]}")
    name: str
    arguments: dict[str, Any] = {}


# ──────────────────────────────────────────────────────────────
#  Messages
# ──────────────────────────────────────────────────────────────

class BaseMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    content: str
    metadata: dict[str, Any] = {}
    created_at: datetime = Field(default_factory=_utcnow)


class SystemMessage(BaseMessage):
    type: Literal[MessageType.SYSTEM] = MessageType.SYSTEM


class UserMessage(BaseMessage):
    type: Literal[MessageType.USER] = MessageType.USER


class AssistantMessage(BaseMessage):
    type: Literal[MessageType.ASSISTANT] = MessageType.ASSISTANT
    tool_calls: list[ToolCall] = []
    structured_output: Optional[dict[str, Any]] = None

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


class ToolResultMessage(BaseMessage):
    type: Literal[MessageType.TOOL_RESULT] = MessageType.TOOL_RESULT
    tool_call_id: str = ""
    tool_name: str = ""
    result: Any = None
    is_error: bool = False


Message = Annotated[
    Union[SystemMessage, UserMessage, AssistantMessage, ToolResultMessage],
    Field(discriminator="type"),
]

MESSAGE_LIST_ADAPTER: TypeAdapter = TypeAdapter(list[Message])


# ──────────────────────────────────────────────────────────────
#  Model output: what generative sources hand to templates
# ──────────────────────────────────────────────────────────────

class ModelOutput(BaseModel):
    content: str = ""
    tool_calls: list[ToolCall] = []
    structured_output: Optional[dict[str, Any]] = None
    metadata: dict[str, Any] = {}

    @classmethod
    def from_message(cls, message: AssistantMessage) -> ModelOutput:
        return cls(
            content=message.content,
            tool_calls=list(message.tool_calls),
            structured_output=message.structured_output,
            metadata=dict(message.metadata),
        )
