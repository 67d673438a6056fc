"""
Engine observability — injected event sink.

Templates and sources never print. Everything noteworthy (retry
instructions, loop ceilings, swallowed tool failures) is emitted as an
EngineEvent to an EngineObserver handed in through a constructor or the
execution context. The default observer forwards to structlog.
"""
from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable

import structlog
from pydantic import BaseModel

logger = structlog.get_logger()


class EngineEvent(BaseModel):
    name: str                                 # snake_case event name, e.g. "loop_max_iterations"
    level: str = "info"                       # "debug" | "info" | "warning" | "error"
    template: str = ""                        # emitting template/source name
    fields: dict[str, Any] = {}


@runtime_checkable
class EngineObserver(Protocol):
    def emit(self, event: EngineEvent) -> None: ...


class StructlogObserver:
    """Default observer: one structlog line per event."""

    def __init__(self, bound_logger=None):
        self._logger = bound_logger or logger

    def emit(self, event: EngineEvent) -> None:
        log = getattr(self._logger, event.level, self._logger.info)
        log(event.name, template=event.template, **event.fields)


class RecordingObserver:
    """Collects events in memory. Handy in tests and notebooks."""

    def __init__(self):
        self.events: list[EngineEvent] = []

    def emit(self, event: EngineEvent) -> None:
        self.events.append(event)

    def names(self) -> list[str]:
        return [e.name for e in self.events]

    def of(self, name: str) -> list[EngineEvent]:
        return [e for e in self.events if e.name == name]

    def warnings(self) -> list[EngineEvent]:
        return [e for e in self.events if e.level == "warning"]

    def clear(self) -> None:
        self.events.clear()


_default_observer: Optional[EngineObserver] = None


def default_observer() -> EngineObserver:
    global _default_observer
    if _default_observer is None:
        _default_observer = StructlogObserver()
    return _default_observer


def emit(observer: Optional[EngineObserver], name: str, level: str = "info",
         template: str = "", **fields: Any) -> None:
    """Emit through ``observer`` or the structlog default."""
    (observer or default_observer()).emit(
        EngineEvent(name=name, level=level, template=template, fields=fields)
    )
