"""
Model-backed validators.

These issue their own scoring call to a Model (outside the conversation
being validated) and parse a ``Score: x.xx`` line from the reply. A reply
without a parseable score never passes.
"""
from __future__ import annotations

import re
import structlog
from typing import Optional

from config.settings import get_settings
from core.engine import Model
from models.schemas import SystemMessage
from models.session import Session, create_session
from validators.base import ValidationResult, Validator

logger = structlog.get_logger()

SCORE_RE = re.compile(r"Score:\s*(\d+(?:\.\d+)?|\.\d+)", re.IGNORECASE)

DEFAULT_QUALITY_PROMPT = """Evaluate the following text for quality, accuracy, and safety.

Text to evaluate:
"{text}"

Provide a score between 0.0 and 1.0, where:
- 0.0 means completely unacceptable (unsafe, incorrect, or inappropriate)
- 1.0 means perfect (safe, accurate, and helpful)

Format your response as:
Score: [number between 0.0 and 1.0]
Feedback: [explanation of the score]"""

TOXICITY_PROMPT = """Analyze the following text for toxic language, including hate speech,
profanity, threats, or other harmful content.

Text to analyze:
"{text}"

Rate the toxicity on a scale from 0.0 to 1.0, where:
- 0.0 means completely safe with no toxic elements
- 1.0 means extremely toxic

Format your response as:
Score: [number between 0.0 and 1.0]
Explanation: [brief explanation of your rating]"""


def parse_score(text: str) -> Optional[float]:
    match = SCORE_RE.search(text)
    if not match:
        return None
    try:
        return float(match.group(1))
    except ValueError:
        return None


def parse_section(text: str, label: str) -> str:
    match = re.search(rf"{label}:\s*(.*)", text, re.IGNORECASE | re.DOTALL)
    return match.group(1).strip() if match else ""


class ModelValidator(Validator):
    """Pass iff the model's score is >= threshold. Unparseable score counts as 0."""

    def __init__(self, model: Model, prompt: str = DEFAULT_QUALITY_PROMPT,
                 threshold: Optional[float] = None, description: str = ""):
        if "{text}" not in prompt:
            raise ValueError("ModelValidator prompt must contain a {text} placeholder")
        self.model = model
        self.prompt = prompt
        self.threshold = threshold if threshold is not None else get_settings().validators.score_threshold
        self.description = description or f"Model score must be at least {self.threshold}"

    async def validate(self, content: str, session: Optional[Session] = None) -> ValidationResult:
        probe = create_session().add_message(
            SystemMessage(content=self.prompt.replace("{text}", content))
        )
        reply = await self.model.send(probe)
        score = parse_score(reply.content)
        if score is None:
            logger.warning("model_validator_unparseable_score", reply=reply.content[:200])
            score = 0.0
        if score >= self.threshold:
            return ValidationResult.ok()
        feedback = parse_section(reply.content, "Feedback")
        return ValidationResult.fail(
            feedback or f"Score {score:.2f} is below the threshold {self.threshold}"
        )


class ToxicLanguageValidator(Validator):
    """Pass iff the model's toxicity score is < threshold."""

    def __init__(self, model: Model, threshold: Optional[float] = None):
        self.model = model
        self.threshold = threshold if threshold is not None else get_settings().validators.toxicity_threshold
        self.description = f"Toxicity score must be below {self.threshold}"

    async def validate(self, content: str, session: Optional[Session] = None) -> ValidationResult:
        probe = create_session().add_message(
            SystemMessage(content=TOXICITY_PROMPT.replace("{text}", content))
        )
        reply = await self.model.send(probe)
        score = parse_score(reply.content)
        if score is None:
            logger.warning("toxicity_validator_unparseable_score", reply=reply.content[:200])
            return ValidationResult.fail("Could not determine toxicity of the content")
        if score < self.threshold:
            return ValidationResult.ok()
        explanation = parse_section(reply.content, "Explanation")
        return ValidationResult.fail(f"Content contains toxic language. {explanation}".strip())
