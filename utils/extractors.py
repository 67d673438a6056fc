"""
Session extractors and text helpers.

extract_pattern / extract_code_block build session → session functions
meant for Transform templates: they scan messages in order and copy
what they find into vars.
"""
from __future__ import annotations

import json
import re
from typing import Any, Callable, Iterable, Optional, Union

from models.schemas import MessageType
from models.session import Session

_FENCE = re.compile(r"```([\w+-]*)[ \t]*\n(.*?)```", re.DOTALL)
_JSON_FENCE = re.compile(r"```(?:json)?\s*\n?(.*?)```", re.DOTALL | re.IGNORECASE)
_BRACES = re.compile(r"\{.*\}", re.DOTALL)


def extract_json_object(text: str) -> Optional[dict[str, Any]]:
    """
    Pull a JSON object out of free text: a fenced ```json block first,
    then the outermost {...} span. Returns None when nothing parses.
    """
    candidates = [m.group(1).strip() for m in _JSON_FENCE.finditer(text)]
    brace = _BRACES.search(text)
    if brace:
        candidates.append(brace.group(0))
    candidates.append(text.strip())
    for raw in candidates:
        try:
            data = json.loads(raw)
        except (ValueError, TypeError):
            continue
        if isinstance(data, dict):
            return data
    return None


def _types(message_types: Iterable[Union[MessageType, str]]) -> set[MessageType]:
    return {MessageType(t) for t in message_types}


def extract_pattern(
    pattern: Union[str, re.Pattern],
    key: str,
    message_types: Iterable[Union[MessageType, str]] = (MessageType.ASSISTANT,),
    transform: Optional[Callable[[str], Any]] = None,
    default: Any = None,
) -> Callable[[Session], Session]:
    """
    Store the first match of ``pattern`` (group 1 if present, else the whole
    match) from the first matching message into ``vars[key]``.
    """
    regex = re.compile(pattern) if isinstance(pattern, str) else pattern
    kinds = _types(message_types)

    def extractor(session: Session) -> Session:
        for msg in session.messages:
            if msg.type not in kinds:
                continue
            match = regex.search(msg.content)
            if match:
                value = match.group(1) if regex.groups else match.group(0)
                return session.set_var(key, transform(value) if transform else value)
        if default is not None:
            return session.set_var(key, default)
        return session

    return extractor


def extract_code_block(
    key: str,
    language: Optional[str] = None,
    message_types: Iterable[Union[MessageType, str]] = (MessageType.ASSISTANT,),
    default: Any = None,
) -> Callable[[Session], Session]:
    """Store the body of the first fenced code block (optionally of ``language``) in ``vars[key]``."""
    kinds = _types(message_types)

    def extractor(session: Session) -> Session:
        for msg in session.messages:
            if msg.type not in kinds:
                continue
            for match in _FENCE.finditer(msg.content):
                if language is None or match.group(1).lower() == language.lower():
                    return session.set_var(key, match.group(2).strip())
        if default is not None:
            return session.set_var(key, default)
        return session

    return extractor
