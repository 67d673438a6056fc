"""
Session — the immutable conversation state a template tree folds over.

A Session holds an ordered tuple of messages and a read-only vars mapping.
Every operation that "changes" a session returns a new instance; the
receiver stays valid and untouched, so a template can always diff against
the session it was handed.
"""
from __future__ import annotations

import json
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional, Union

from core.errors import StructuralError
from models.schemas import BaseMessage, MESSAGE_LIST_ADAPTER, MessageType


class Session:
    __slots__ = ("_messages", "_vars")

    def __init__(
        self,
        messages: Iterable[BaseMessage] = (),
        vars: Optional[Mapping[str, Any]] = None,
    ):
        self._messages: tuple[BaseMessage, ...] = tuple(messages)
        self._vars = MappingProxyType(dict(vars or {}))

    def __setattr__(self, name, value):
        if hasattr(self, "_vars"):
            raise AttributeError("Session is immutable")
        object.__setattr__(self, name, value)

    # ── Read access ───────────────────────────────────

    @property
    def messages(self) -> tuple[BaseMessage, ...]:
        return self._messages

    @property
    def vars(self) -> Mapping[str, Any]:
        return self._vars

    def get_var(self, key: str, default: Any = None) -> Any:
        return self._vars.get(key, default)

    def get_vars_object(self) -> dict[str, Any]:
        """A plain-dict copy of vars; mutating it does not touch the session."""
        return dict(self._vars)

    def get_last_message(self) -> Optional[BaseMessage]:
        return self._messages[-1] if self._messages else None

    def get_messages_by_type(self, kind: Union[MessageType, str]) -> list[BaseMessage]:
        kind = MessageType(kind)
        return [m for m in self._messages if m.type == kind]

    @property
    def message_ids(self) -> frozenset[str]:
        return frozenset(m.id for m in self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __repr__(self) -> str:
        return f"Session(messages={len(self._messages)}, vars={sorted(self._vars)})"

    # ── Derivation (always a new instance) ────────────

    def add_message(self, message: BaseMessage) -> Session:
        return Session(self._messages + (message,), self._vars)

    def add_messages(self, messages: Iterable[BaseMessage]) -> Session:
        return Session(self._messages + tuple(messages), self._vars)

    def update_vars(self, partial: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> Session:
        """Shallow-merge ``partial`` and ``kwargs`` over the current vars."""
        merged = dict(self._vars)
        merged.update(partial or {})
        merged.update(kwargs)
        return Session(self._messages, merged)

    def set_var(self, key: str, value: Any) -> Session:
        return self.update_vars({key: value})

    # ── Structure check ───────────────────────────────

    def validate_structure(self) -> None:
        """
        Raise StructuralError unless the transcript is well formed:
        at least one message, no empty content, and at most one system
        message which must come first.
        """
        if not self._messages:
            raise StructuralError("Session must have at least one message")
        if any(not m.content for m in self._messages):
            raise StructuralError("Empty messages are not allowed")
        system_positions = [i for i, m in enumerate(self._messages)
                            if m.type == MessageType.SYSTEM]
        if len(system_positions) > 1:
            raise StructuralError("Only one system message is allowed")
        if system_positions and system_positions[0] != 0:
            raise StructuralError("System message must be at the beginning")

    # ── Serialization ─────────────────────────────────

    def to_json(self) -> dict[str, Any]:
        return {
            "messages": [m.model_dump(mode="json") for m in self._messages],
            "vars": json.loads(json.dumps(dict(self._vars), default=str)),
        }

    @classmethod
    def from_json(cls, data: Union[str, Mapping[str, Any]]) -> Session:
        if isinstance(data, str):
            data = json.loads(data)
        messages = MESSAGE_LIST_ADAPTER.validate_python(data.get("messages", []))
        return cls(messages, data.get("vars", {}))

    def __str__(self) -> str:
        return json.dumps(self.to_json(), indent=2)


def create_session(
    messages: Iterable[BaseMessage] = (),
    vars: Optional[Mapping[str, Any]] = None,
) -> Session:
    """Create a session, optionally seeded with messages and vars."""
    return Session(messages, vars)
