"""
Composite templates — control flow over owned children.

  Sequence     run children in order
  Conditional  pick a branch from a predicate on the current session
  Loop         check-then-execute until an exit predicate holds or a ceiling is hit
  Subroutine   run children on a derived session, then squash results back
  Transform    apply pure session → session functions

Composites may carry default user/assistant sources; leaf descendants
without their own source pick them up through the ExecutionContext.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Sequence as SequenceOf, Union

from config.settings import get_settings
from core.errors import ConfigurationError, StructuralError
from core.events import EngineObserver
from models.session import Session, create_session
from sources.base import ContentSource
from templates.base import ExecutionContext, Template, TemplateKind, maybe_await

Predicate = Callable[[Session], Union[bool, Awaitable[bool]]]
SessionFn = Callable[[Session], Union[Session, Awaitable[Session]]]
InitFn = Callable[[Session], Union[Session, Awaitable[Session]]]
SquashFn = Callable[[Session, Session], Union[Session, Awaitable[Session]]]


class CompositeTemplate(Template):
    def __init__(
        self,
        name: str = "",
        observer: Optional[EngineObserver] = None,
        user_source: Optional[ContentSource] = None,
        assistant_source: Optional[ContentSource] = None,
    ):
        super().__init__(name, observer)
        self.user_source = user_source
        self.assistant_source = assistant_source

    def child_context(self, context: ExecutionContext) -> ExecutionContext:
        return context.descend(self.user_source, self.assistant_source)


async def run_in_order(templates: SequenceOf[Template], session: Session,
                       context: ExecutionContext) -> Session:
    for template in templates:
        session = await template.execute(session, context)
    return session


def _owned(children: SequenceOf[Template], owner: str) -> tuple[Template, ...]:
    children = tuple(children)
    for child in children:
        if not isinstance(child, Template):
            raise StructuralError(
                f"{owner} children must be templates, got {type(child).__name__}", owner
            )
    return children


# ──────────────────────────────────────────────────────────────
#  Sequence
# ──────────────────────────────────────────────────────────────

class Sequence(CompositeTemplate):
    kind = TemplateKind.SEQUENCE

    def __init__(self, templates: SequenceOf[Template] = (), **kwargs: Any):
        super().__init__(**kwargs)
        self.templates = _owned(templates, self.name)

    def then(self, template: Template) -> Sequence:
        """A new Sequence with ``template`` appended; this one is unchanged."""
        return Sequence(
            self.templates + (template,), name=self.name, observer=self.observer,
            user_source=self.user_source, assistant_source=self.assistant_source,
        )

    def __len__(self) -> int:
        return len(self.templates)

    async def _run(self, session: Session, context: ExecutionContext) -> Session:
        return await run_in_order(self.templates, session, self.child_context(context))


# ──────────────────────────────────────────────────────────────
#  Conditional
# ──────────────────────────────────────────────────────────────

class Conditional(CompositeTemplate):
    """Evaluated against the session as it is when execution reaches this node."""

    kind = TemplateKind.CONDITIONAL

    def __init__(self, condition: Predicate, then: Template,
                 otherwise: Optional[Template] = None, **kwargs: Any):
        super().__init__(**kwargs)
        if not callable(condition):
            raise ConfigurationError("Conditional needs a callable condition", self.name)
        self.condition = condition
        self.then_template = _owned([then], self.name)[0]
        self.else_template = _owned([otherwise], self.name)[0] if otherwise is not None else None

    async def _run(self, session: Session, context: ExecutionContext) -> Session:
        branch = self.then_template if await maybe_await(self.condition(session)) else self.else_template
        if branch is None:
            return session
        return await branch.execute(session, self.child_context(context))


# ──────────────────────────────────────────────────────────────
#  Loop
# ──────────────────────────────────────────────────────────────

class LoopState(str, Enum):
    CHECKING = "checking"
    RUNNING = "running"
    EXITED_BY_CONDITION = "exited_by_condition"
    EXITED_BY_MAX_ITERATIONS = "exited_by_max_iterations"
    EXITED_NO_CONDITION = "exited_no_condition"


class Loop(CompositeTemplate):
    """
    Repeat the body until ``until(session)`` is true.

    The predicate is checked before every iteration, so the body may run
    zero times. Without a predicate the body runs exactly once. Reaching
    ``max_iterations`` stops the loop with a warning; every message
    produced so far is kept.
    """

    kind = TemplateKind.LOOP

    def __init__(
        self,
        body: Union[Template, SequenceOf[Template], None],
        until: Optional[Predicate] = None,
        max_iterations: Optional[int] = None,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        if body is None:
            raise StructuralError("Loop requires a body template", self.name)
        self.body = _owned([body] if isinstance(body, Template) else body, self.name)
        if not self.body:
            raise StructuralError("Loop requires a body template", self.name)
        self.until = until
        self.max_iterations = (max_iterations if max_iterations is not None
                               else get_settings().loop.max_iterations)
        if self.max_iterations < 1:
            raise ConfigurationError(
                f"max_iterations must be >= 1, got {self.max_iterations}", self.name
            )

    async def _run(self, session: Session, context: ExecutionContext) -> Session:
        ctx = self.child_context(context)

        if self.until is None:
            self.emit(context, "loop_without_exit_condition", level="warning")
            session = await run_in_order(self.body, session, ctx)
            self._finish(context, LoopState.EXITED_NO_CONDITION, 1)
            return session

        iterations = 0
        state = LoopState.CHECKING
        while True:
            if state == LoopState.CHECKING:
                if await maybe_await(self.until(session)):
                    state = LoopState.EXITED_BY_CONDITION
                elif iterations >= self.max_iterations:
                    self.emit(context, "loop_max_iterations", level="warning",
                              max_iterations=self.max_iterations)
                    state = LoopState.EXITED_BY_MAX_ITERATIONS
                else:
                    state = LoopState.RUNNING
            elif state == LoopState.RUNNING:
                session = await run_in_order(self.body, session, ctx)
                iterations += 1
                state = LoopState.CHECKING
            else:
                break

        self._finish(context, state, iterations)
        return session

    def _finish(self, context: ExecutionContext, state: LoopState, iterations: int) -> None:
        self.emit(context, "loop_exited", level="debug", state=state.value, iterations=iterations)


class LoopBuilder:
    """
    Incremental Loop construction. build() refuses to produce a Loop
    without a body.

        loop = LoopBuilder().body(ask).body(answer).until(done).max_iterations(5).build()
    """

    def __init__(self, name: str = ""):
        self._name = name
        self._body: list[Template] = []
        self._until: Optional[Predicate] = None
        self._max_iterations: Optional[int] = None
        self._kwargs: dict[str, Any] = {}

    def body(self, *templates: Template) -> LoopBuilder:
        self._body.extend(templates)
        return self

    def until(self, predicate: Predicate) -> LoopBuilder:
        self._until = predicate
        return self

    def max_iterations(self, n: int) -> LoopBuilder:
        self._max_iterations = n
        return self

    def defaults(self, user_source: Optional[ContentSource] = None,
                 assistant_source: Optional[ContentSource] = None) -> LoopBuilder:
        self._kwargs.update(user_source=user_source, assistant_source=assistant_source)
        return self

    def build(self) -> Loop:
        if not self._body:
            raise StructuralError("Loop requires a body template", self._name)
        return Loop(list(self._body), until=self._until,
                    max_iterations=self._max_iterations, name=self._name, **self._kwargs)


# ──────────────────────────────────────────────────────────────
#  Subroutine
# ──────────────────────────────────────────────────────────────

class Subroutine(CompositeTemplate):
    """
    Run children on a derived child session, then merge back.

    init:   default clones the parent (messages + vars); ``isolated_context``
            starts from an empty session instead.
    squash: default appends the child's messages that were not already in
            the parent (by message id) when ``retain_messages``, and, unless
            isolated, shallow-merges child vars over parent vars.
    Custom ``init_with`` / ``squash_with`` replace the defaults entirely.
    """

    kind = TemplateKind.SUBROUTINE

    def __init__(
        self,
        templates: SequenceOf[Template],
        init_with: Optional[InitFn] = None,
        squash_with: Optional[SquashFn] = None,
        isolated_context: bool = False,
        retain_messages: bool = True,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.templates = _owned(templates, self.name)
        self.init_with = init_with
        self.squash_with = squash_with
        self.isolated_context = isolated_context
        self.retain_messages = retain_messages

    def _default_init(self, parent: Session) -> Session:
        if self.isolated_context:
            return create_session()
        return create_session(parent.messages, parent.vars)

    def _default_squash(self, parent: Session, child: Session) -> Session:
        merged = parent
        if self.retain_messages:
            seen = parent.message_ids
            merged = merged.add_messages(m for m in child.messages if m.id not in seen)
        if not self.isolated_context:
            merged = merged.update_vars(child.vars)
        return merged

    async def _run(self, session: Session, context: ExecutionContext) -> Session:
        if self.init_with is not None:
            child = await maybe_await(self.init_with(session))
        else:
            child = self._default_init(session)
        if not isinstance(child, Session):
            raise StructuralError("Subroutine init must return a Session", self.name)

        child = await run_in_order(self.templates, child, self.child_context(context))

        if self.squash_with is not None:
            merged = await maybe_await(self.squash_with(session, child))
        else:
            merged = self._default_squash(session, child)
        if not isinstance(merged, Session):
            raise StructuralError("Subroutine squash must return a Session", self.name)
        return merged


# ──────────────────────────────────────────────────────────────
#  Transform
# ──────────────────────────────────────────────────────────────

class Transform(CompositeTemplate):
    """Apply one or more session → session functions (sync or async) in order."""

    kind = TemplateKind.TRANSFORM

    def __init__(self, transforms: Union[SessionFn, SequenceOf[SessionFn]], **kwargs: Any):
        super().__init__(**kwargs)
        fns = list(transforms) if isinstance(transforms, (list, tuple)) else [transforms]
        if not fns or not all(callable(fn) for fn in fns):
            raise ConfigurationError("Transform needs one or more callables", self.name)
        self.transforms = tuple(fns)

    async def _run(self, session: Session, context: ExecutionContext) -> Session:
        for fn in self.transforms:
            session = await maybe_await(fn(session))
            if not isinstance(session, Session):
                raise StructuralError(
                    f"Transform must return a Session, got {type(session).__name__}", self.name
                )
        return session
