"""
Tool Registry — the tools an Assistant template may run for the model.

Every tool has:
  - A name and description (for the LLM to understand purpose)
  - A JSON schema for input parameters
  - An async execute(args) that returns any JSON-serializable value

The registry is used to:
  - Advertise ToolSpecs to the model when generating
  - Run tool calls found on an assistant message
  - Build prompt text describing available capabilities
"""
from __future__ import annotations

import inspect
import json
import structlog
from typing import Any, Callable, Optional, Protocol, runtime_checkable

from core.engine import ToolSpec
from core.errors import ToolExecutionError
from models.schemas import ToolCall

logger = structlog.get_logger()


@runtime_checkable
class Tool(Protocol):
    name: str
    description: str
    parameters: dict[str, Any]

    async def execute(self, args: dict[str, Any]) -> Any: ...


class FunctionTool:
    """Wrap a plain (sync or async) function as a Tool."""

    def __init__(
        self,
        name: str,
        fn: Callable[..., Any],
        description: str = "",
        parameters: dict[str, Any] = None,
    ):
        self.name = name
        self.fn = fn
        self.description = description or (inspect.getdoc(fn) or "")
        self.parameters = parameters or {"type": "object", "properties": {}}

    async def execute(self, args: dict[str, Any]) -> Any:
        result = self.fn(**args)
        if inspect.isawaitable(result):
            result = await result
        return result

    def spec(self) -> ToolSpec:
        return ToolSpec(name=self.name, description=self.description,
                        parameters=self.parameters)


def serialize_result(result: Any) -> str:
    """Tool results are stored as strings; non-strings go through JSON."""
    if isinstance(result, str):
        return result
    return json.dumps(result, default=str)


class ToolRegistry:
    """Central catalog of tools available to Assistant templates."""

    def __init__(self, tools: list[Tool] = None):
        self._tools: dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    # ── Registration ──────────────────────────────────

    def register(self, tool: Tool) -> Tool:
        self._tools[tool.name] = tool
        logger.debug("tool_registered", name=tool.name)
        return tool

    def register_function(
        self,
        name: str,
        fn: Callable[..., Any],
        description: str = "",
        parameters: dict[str, Any] = None,
    ) -> Tool:
        """Convenience: register a plain function as a tool."""
        return self.register(FunctionTool(name, fn, description, parameters))

    # ── Lookup ────────────────────────────────────────

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def list_all(self) -> list[Tool]:
        return list(self._tools.values())

    def specs(self) -> list[ToolSpec]:
        return [
            ToolSpec(name=t.name, description=t.description, parameters=t.parameters)
            for t in self._tools.values()
        ]

    def describe_for_llm(self, max_tools: int = 20) -> str:
        """
        Build a human-readable description of available tools
        for inclusion in LLM prompts.
        """
        tools = self.list_all()[:max_tools]
        if not tools:
            return "No tools available."

        lines = ["Available tools:"]
        for t in tools:
            params = ""
            props = (t.parameters or {}).get("properties", {})
            if props:
                param_strs = [f"{k}: {v.get('type', 'any')}" for k, v in props.items()]
                params = f" ({', '.join(param_strs)})"
            lines.append(f"  • {t.name}{params}")
            if t.description:
                lines.append(f"    {t.description}")
        return "\n".join(lines)

    @property
    def count(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    # ── Execution ─────────────────────────────────────

    async def execute(self, call: ToolCall) -> str:
        """Run one tool call and return its serialized result."""
        tool = self._tools.get(call.name)
        if tool is None:
            raise ToolExecutionError(call.name, "unknown tool", call_id=call.id)
        try:
            result = await tool.execute(dict(call.arguments))
        except ToolExecutionError:
            raise
        except Exception as e:
            raise ToolExecutionError(call.name, str(e), call_id=call.id, cause=e) from e
        try:
            return serialize_result(result)
        except (TypeError, ValueError) as e:
            raise ToolExecutionError(call.name, f"result is not serializable: {e}",
                                     call_id=call.id, cause=e) from e
