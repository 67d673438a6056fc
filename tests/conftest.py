"""Shared test fixtures for ConvoWeave."""
import pytest
from typing import Any, Optional

from config.settings import reset_settings
from core.engine import GenerationOptions
from core.events import RecordingObserver
from core.tools import ToolRegistry
from models.schemas import AssistantMessage, BaseMessage
from models.session import Session


class ScriptedModel:
    """Model double that replays canned replies and records every request."""

    def __init__(self, replies: list[Any] = None):
        self.replies = list(replies or [])
        self.calls: list[tuple[Session, Optional[GenerationOptions]]] = []

    async def send(self, session: Session, options: Optional[GenerationOptions] = None) -> BaseMessage:
        self.calls.append((session, options))
        if not self.replies:
            raise AssertionError("ScriptedModel ran out of replies")
        reply = self.replies.pop(0)
        if isinstance(reply, str):
            return AssistantMessage(content=reply)
        return reply

    async def send_async(self, session: Session, options: Optional[GenerationOptions] = None):
        message = await self.send(session, options)
        for word in message.content.split(" "):
            yield AssistantMessage(content=word)

    @property
    def call_count(self) -> int:
        return len(self.calls)


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    """Every test starts from the shipped settings.yaml."""
    monkeypatch.delenv("CONVOWEAVE_CONFIG", raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def scripted_model():
    def _make(*replies: Any) -> ScriptedModel:
        return ScriptedModel(list(replies))
    return _make


@pytest.fixture
def tool_registry() -> ToolRegistry:
    registry = ToolRegistry()

    def add(a: int, b: int) -> int:
        """Add two integers."""
        return a + b

    async def lookup_user(user_id: str) -> dict:
        return {"id": user_id, "name": "Alice"}

    def explode() -> None:
        raise ValueError("boom")

    registry.register_function(
        "add", add,
        parameters={"type": "object",
                    "properties": {"a": {"type": "integer"}, "b": {"type": "integer"}}},
    )
    registry.register_function("lookup_user", lookup_user, "Fetch a user record")
    registry.register_function("explode", explode, "Always fails")
    return registry
