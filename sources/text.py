"""Text content sources: fixed, scripted, random, callback and interactive."""
from __future__ import annotations

import asyncio
import inspect
import random
from typing import Any, Awaitable, Callable, Optional, Sequence, Union

from config.settings import get_settings
from core.errors import ConfigurationError, EmptySourceError, SourceExhaustedError
from models.session import Session
from sources.base import ContentSource
from utils.interpolation import interpolate


class StaticSource(ContentSource[str]):
    """Fixed text with ``${dotted.path}`` interpolation against session vars."""

    def __init__(self, content: str, **kwargs: Any):
        super().__init__(**kwargs)
        self.content = content

    async def produce(self, session: Session) -> str:
        return interpolate(self.content, session.vars)


class ListSource(ContentSource[str]):
    """
    Hands out items in order, one per produce() call.

    Without ``loop`` an exhausted list raises SourceExhaustedError.
    With ``loop`` it wraps around; only an empty list is an error.
    Items are interpolated like StaticSource.
    """

    def __init__(self, items: Sequence[str], loop: bool = False, **kwargs: Any):
        super().__init__(**kwargs)
        self.items = list(items)
        self.loop = loop
        self.index = 0

    async def produce(self, session: Session) -> str:
        if not self.items:
            if self.loop:
                raise EmptySourceError()
            raise SourceExhaustedError()
        if self.index >= len(self.items):
            if not self.loop:
                raise SourceExhaustedError()
            self.index = 0
        item = self.items[self.index]
        self.index += 1
        return interpolate(item, session.vars)

    @property
    def at_end(self) -> bool:
        return not self.loop and self.index >= len(self.items)

    def reset(self) -> None:
        self.index = 0


class RandomSource(ContentSource[str]):
    """Random pick from a fixed list."""

    def __init__(self, items: Sequence[str], rng: Optional[random.Random] = None, **kwargs: Any):
        super().__init__(**kwargs)
        if not items:
            raise ConfigurationError("RandomSource needs at least one item", self.name)
        self.items = list(items)
        self._rng = rng or random.Random()

    async def produce(self, session: Session) -> str:
        return interpolate(self._rng.choice(self.items), session.vars)


VarsCallback = Callable[[dict[str, Any]], Union[str, Awaitable[str]]]


class CallbackSource(ContentSource[str]):
    """Content from fn(vars) → str, sync or async. ``vars`` is a private copy."""

    def __init__(self, callback: VarsCallback, **kwargs: Any):
        super().__init__(**kwargs)
        self.callback = callback

    async def produce(self, session: Session) -> str:
        result = self.callback(session.get_vars_object())
        if inspect.isawaitable(result):
            result = await result
        return "" if result is None else str(result)


Reader = Callable[[str], Union[str, Awaitable[str]]]


class CLISource(ContentSource[str]):
    """
    Interactive terminal input. Empty input falls back to ``default``.

    The blocking ``input()`` runs in a worker thread so the event loop
    stays free; pass ``reader`` to read from somewhere else.
    """

    def __init__(self, prompt: Optional[str] = None, default: Optional[str] = None,
                 reader: Optional[Reader] = None, **kwargs: Any):
        super().__init__(**kwargs)
        defaults = get_settings().sources
        self.prompt = prompt if prompt is not None else defaults.cli_prompt
        self.default = default if default is not None else defaults.cli_default
        self._reader = reader

    async def produce(self, session: Session) -> str:
        prompt = interpolate(self.prompt, session.vars)
        if self._reader is None:
            line = await asyncio.to_thread(input, prompt)
        else:
            line = self._reader(prompt)
            if inspect.isawaitable(line):
                line = await line
        line = (line or "").strip()
        return line or self.default
