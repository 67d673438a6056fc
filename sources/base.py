"""
ContentSource — supplier of message content with bounded validation retry.

get_content() runs up to ``max_attempts`` produce→validate passes:

    produce content ─► validator? ─► valid ─────────────► return
                            │
                            └► invalid, attempts left ──► emit instruction, produce again
                            └► invalid, exhausted ──────► raise ValidationError  (raise_error)
                                                          or warn + return last (otherwise)

Exceptions raised while producing propagate untouched unless the source
lists them in ``retry_on``; those are retried within the same bound.
"""
from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
)

from config.settings import get_settings
from core.errors import ConfigurationError, ValidationError
from core.events import EngineObserver, emit
from models.schemas import ModelOutput
from models.session import Session
from validators.base import ValidationResult, Validator

T = TypeVar("T")


@dataclass(frozen=True)
class Attempt(Generic[T]):
    """One produce→validate pass."""
    result: T
    content: str
    verdict: ValidationResult
    number: int = 1


class ContentSource(ABC, Generic[T]):
    """Base for every content supplier."""

    retry_on: tuple[type[BaseException], ...] = ()

    def __init__(
        self,
        validator: Optional[Validator] = None,
        max_attempts: Optional[int] = None,
        raise_error: Optional[bool] = None,
        observer: Optional[EngineObserver] = None,
        name: str = "",
    ):
        defaults = get_settings().sources
        self.validator = validator
        self.max_attempts = max_attempts if max_attempts is not None else defaults.max_attempts
        self.raise_error = raise_error if raise_error is not None else defaults.raise_error
        self.observer = observer
        self.name = name or type(self).__name__
        if self.max_attempts < 1:
            raise ConfigurationError(
                f"max_attempts must be >= 1, got {self.max_attempts}", self.name
            )

    # ── Subclass hooks ────────────────────────────────

    @abstractmethod
    async def produce(self, session: Session) -> T:
        """Obtain one raw piece of content."""

    def text_of(self, result: T) -> str:
        if isinstance(result, ModelOutput):
            return result.content
        return str(result)

    async def judge(self, result: T, session: Session) -> ValidationResult:
        return await self.validate_content(self.text_of(result), session)

    # ── Protocol ──────────────────────────────────────

    @property
    def has_validator(self) -> bool:
        return self.validator is not None

    async def validate_content(self, content: str, session: Session) -> ValidationResult:
        if self.validator is None:
            return ValidationResult.ok()
        return await self.validator.validate(content, session)

    async def run_attempts(self, session: Session,
                           observer: Optional[EngineObserver] = None) -> Attempt[T]:
        """Run the bounded produce→validate loop and return the last attempt."""
        observer = self.observer or observer
        attempt_no = 0

        async def attempt_once() -> Attempt[T]:
            nonlocal attempt_no
            attempt_no += 1
            result = await self.produce(session)
            verdict = await self.judge(result, session)
            return Attempt(result, self.text_of(result), verdict, attempt_no)

        def before_retry(state: RetryCallState) -> None:
            outcome = state.outcome
            if outcome.failed:
                detail = {"error": repr(outcome.exception())}
            else:
                detail = {"instruction": outcome.result().verdict.instruction}
            emit(observer, "source_validation_retry", level="warning", template=self.name,
                 attempt=state.attempt_number, max_attempts=self.max_attempts, **detail)

        def on_exhausted(state: RetryCallState) -> Attempt[T]:
            # re-raises when the last pass failed with a retryable exception
            return state.outcome.result()

        retry = retry_if_result(lambda a: not a.verdict.is_valid)
        if self.retry_on:
            retry = retry | retry_if_exception_type(self.retry_on)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            retry=retry,
            before_sleep=before_retry,
            retry_error_callback=on_exhausted,
        )
        return await retrying(attempt_once)

    def settle(self, attempt: Attempt[T], observer: Optional[EngineObserver] = None) -> T:
        """Apply the exhaustion policy to a final attempt."""
        if attempt.verdict.is_valid:
            return attempt.result
        if self.raise_error:
            raise ValidationError(attempt.verdict.instruction, attempt.number, self.name)
        emit(self.observer or observer, "source_validation_exhausted", level="warning",
             template=self.name, attempts=attempt.number,
             instruction=attempt.verdict.instruction)
        return attempt.result

    async def get_content(self, session: Session,
                          observer: Optional[EngineObserver] = None) -> T:
        attempt = await self.run_attempts(session, observer)
        return self.settle(attempt, observer)

    # ── Immutable reconfiguration ─────────────────────

    def _replace(self, **changes: Any):
        clone = copy.copy(self)
        for key, value in changes.items():
            setattr(clone, key, value)
        return clone

    def with_validator(self, validator: Optional[Validator]):
        return self._replace(validator=validator)

    def with_max_attempts(self, max_attempts: int):
        if max_attempts < 1:
            raise ConfigurationError(f"max_attempts must be >= 1, got {max_attempts}", self.name)
        return self._replace(max_attempts=max_attempts)

    def with_raise_error(self, raise_error: bool):
        return self._replace(raise_error=raise_error)

    def with_observer(self, observer: Optional[EngineObserver]):
        return self._replace(observer=observer)

    def __repr__(self) -> str:
        return (f"{type(self).__name__}(max_attempts={self.max_attempts}, "
                f"raise_error={self.raise_error}, validator={self.validator!r})")
