"""
Composable conversation templates.

Templates are executable conversation plans — not static text.
A tree of templates is folded over an immutable Session:

  - Message templates (System, User, Assistant, ToolResult) append turns
    whose content comes from a ContentSource
  - Composite templates (Sequence, Conditional, Loop, Subroutine,
    Transform) decide which children run, how often, and on what session
"""
from templates.base import Template, TemplateKind, ExecutionContext
from templates.messages import (
    MessageTemplate, SystemTemplate, UserTemplate, AssistantTemplate, ToolResultTemplate,
)
from templates.composite import (
    CompositeTemplate, Sequence, Conditional, Loop, LoopBuilder, LoopState,
    Subroutine, Transform,
)
