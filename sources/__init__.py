"""
Content sources — where message content comes from.

Every source shares the bounded produce→validate retry protocol defined in
sources.base; the variants differ only in how one piece of content is
produced.
"""
from sources.base import Attempt, ContentSource
from sources.text import (
    StaticSource, ListSource, RandomSource, CallbackSource, CLISource,
)
from sources.model import LlmSource, SchemaSource
