"""
Template base class and execution context.

A template is one node of a conversation plan. Executing it takes a
Session and returns a new Session; composites fold the session through
their children, leaves append messages.

The ExecutionContext travels from parent to child during execute(). It
carries the observer and the default user/assistant sources that leaf
templates without their own source fall back on.
"""
from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, ClassVar, Optional

from core.events import EngineObserver, emit
from models.session import Session, create_session
from sources.base import ContentSource


class TemplateKind(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL_RESULT = "tool_result"
    SEQUENCE = "sequence"
    CONDITIONAL = "conditional"
    LOOP = "loop"
    SUBROUTINE = "subroutine"
    TRANSFORM = "transform"


@dataclass(frozen=True)
class ExecutionContext:
    observer: Optional[EngineObserver] = None
    user_source: Optional[ContentSource] = None
    assistant_source: Optional[ContentSource] = None
    depth: int = 0

    def descend(
        self,
        user_source: Optional[ContentSource] = None,
        assistant_source: Optional[ContentSource] = None,
    ) -> ExecutionContext:
        """Context for a child; the nearest composite's defaults win."""
        return replace(
            self,
            user_source=user_source or self.user_source,
            assistant_source=assistant_source or self.assistant_source,
            depth=self.depth + 1,
        )


async def maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class Template(ABC):
    kind: ClassVar[TemplateKind]

    def __init__(self, name: str = "", observer: Optional[EngineObserver] = None):
        self.name = name or type(self).__name__
        self.observer = observer

    async def execute(
        self,
        session: Optional[Session] = None,
        context: Optional[ExecutionContext] = None,
    ) -> Session:
        """Run this template. A missing session starts an empty one."""
        session = session if session is not None else create_session()
        context = context or ExecutionContext()
        if self.observer is not None:
            context = replace(context, observer=self.observer)
        return await self._run(session, context)

    @abstractmethod
    async def _run(self, session: Session, context: ExecutionContext) -> Session:
        ...

    def emit(self, context: ExecutionContext, name: str, level: str = "info", **fields: Any) -> None:
        emit(context.observer, name, level=level, template=self.name, depth=context.depth, **fields)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
