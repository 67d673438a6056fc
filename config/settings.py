"""
Configuration loader for the ConvoWeave template engine.
Reads engine defaults from a YAML file with environment variable substitution.

Defaults declared here are the fallbacks used when a template, source or
validator is built without an explicit value (retry bound, error policy,
loop ceiling, score thresholds).
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml


@dataclass
class SourceConfig:
    max_attempts: int = 1               # generate+validate passes per get_content()
    raise_error: bool = True            # raise on exhaustion vs. return last content
    cli_prompt: str = "> "
    cli_default: str = ""


@dataclass
class LoopConfig:
    max_iterations: int = 100


@dataclass
class ValidatorConfig:
    score_threshold: float = 0.7        # ModelValidator pass mark (score >= threshold)
    toxicity_threshold: float = 0.5     # ToxicLanguageValidator pass mark (score < threshold)


@dataclass
class LoggingConfig:
    level: str = "INFO"
    format: str = "console"             # "console" | "json"


@dataclass
class Settings:
    app_name: str = "ConvoWeave"
    debug: bool = False
    sources: SourceConfig = field(default_factory=SourceConfig)
    loop: LoopConfig = field(default_factory=LoopConfig)
    validators: ValidatorConfig = field(default_factory=ValidatorConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


_settings: Optional[Settings] = None


def _substitute_env_vars(value: str) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""
    pattern = re.compile(r'\$\{(\w+)\}')
    def replacer(match):
        var_name = match.group(1)
        return os.environ.get(var_name, match.group(0))
    return pattern.sub(replacer, value)


def _process_values(obj: Any) -> Any:
    """Recursively substitute env vars in all string values."""
    if isinstance(obj, str):
        return _substitute_env_vars(obj)
    elif isinstance(obj, dict):
        return {k: _process_values(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_process_values(v) for v in obj]
    return obj


def _as_bool(value: Any) -> bool:
    # env substitution leaves strings behind ("false", "0")
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def load_settings(config_path: str = None) -> Settings:
    """Load settings from YAML file."""
    global _settings

    if config_path is None:
        config_path = os.environ.get(
            "CONVOWEAVE_CONFIG",
            str(Path(__file__).parent / "settings.yaml"),
        )

    settings = Settings()

    if Path(config_path).exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
        raw = _process_values(raw)

        settings.app_name = raw.get("app_name", settings.app_name)
        settings.debug = _as_bool(raw.get("debug", settings.debug))

        if "sources" in raw:
            src = raw["sources"] or {}
            settings.sources = SourceConfig(
                max_attempts=int(src.get("max_attempts", 1)),
                raise_error=_as_bool(src.get("raise_error", True)),
                cli_prompt=src.get("cli_prompt", "> "),
                cli_default=src.get("cli_default", ""),
            )

        if "loop" in raw:
            lp = raw["loop"] or {}
            settings.loop = LoopConfig(
                max_iterations=int(lp.get("max_iterations", 100)),
            )

        if "validators" in raw:
            v = raw["validators"] or {}
            settings.validators = ValidatorConfig(
                score_threshold=float(v.get("score_threshold", 0.7)),
                toxicity_threshold=float(v.get("toxicity_threshold", 0.5)),
            )

        if "logging" in raw:
            lg = raw["logging"] or {}
            settings.logging = LoggingConfig(
                level=lg.get("level", "INFO"),
                format=lg.get("format", "console"),
            )

    _settings = settings
    return settings


def get_settings() -> Settings:
    """Return cached settings or load from default path."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() reloads."""
    global _settings
    _settings = None
