"""Tests for the tool registry."""
import json
from datetime import date

import pytest

from core.errors import ToolExecutionError
from core.tools import FunctionTool, ToolRegistry, serialize_result
from models.schemas import ToolCall


class TestRegistration:
    def test_register_and_lookup(self, tool_registry):
        assert tool_registry.count == 3
        assert "add" in tool_registry
        assert "missing" not in tool_registry
        assert tool_registry.get("lookup_user").description == "Fetch a user record"
        assert tool_registry.get("missing") is None

    def test_description_falls_back_to_docstring(self, tool_registry):
        assert tool_registry.get("add").description == "Add two integers."

    def test_register_replaces_same_name(self):
        registry = ToolRegistry([FunctionTool("t", lambda: 1)])
        registry.register(FunctionTool("t", lambda: 2, "newer"))
        assert registry.count == 1
        assert registry.get("t").description == "newer"

    def test_specs(self, tool_registry):
        specs = tool_registry.specs()
        assert [s.name for s in specs] == ["add", "lookup_user", "explode"]
        assert specs[0].parameters["properties"]["a"] == {"type": "integer"}
        assert specs[1].parameters == {"type": "object", "properties": {}}


class TestDescribeForLlm:
    def test_empty(self):
        assert ToolRegistry().describe_for_llm() == "No tools available."

    def test_lists_params_and_descriptions(self, tool_registry):
        text = tool_registry.describe_for_llm()
        assert text.startswith("Available tools:")
        assert "add (a: integer, b: integer)" in text
        assert "Fetch a user record" in text

    def test_max_tools(self, tool_registry):
        text = tool_registry.describe_for_llm(max_tools=1)
        assert "add" in text
        assert "lookup_user" not in text


class TestExecute:
    @pytest.mark.asyncio
    async def test_sync_tool_result_serialized(self, tool_registry):
        out = await tool_registry.execute(ToolCall(name="add", arguments={"a": 2, "b": 2}))
        assert out == "4"

    @pytest.mark.asyncio
    async def test_async_tool(self, tool_registry):
        out = await tool_registry.execute(ToolCall(name="lookup_user", arguments={"user_id": "u1"}))
        assert json.loads(out) == {"id": "u1", "name": "Alice"}

    @pytest.mark.asyncio
    async def test_unknown_tool(self, tool_registry):
        with pytest.raises(ToolExecutionError, match="unknown tool") as exc_info:
            await tool_registry.execute(ToolCall(id="c9", name="nope"))
        assert exc_info.value.tool_name == "nope"
        assert exc_info.value.call_id == "c9"

    @pytest.mark.asyncio
    async def test_failure_wrapped_with_cause(self, tool_registry):
        with pytest.raises(ToolExecutionError) as exc_info:
            await tool_registry.execute(ToolCall(name="explode"))
        assert isinstance(exc_info.value.cause, ValueError)
        assert str(exc_info.value) == "Tool 'explode' failed: boom"

    @pytest.mark.asyncio
    async def test_unserializable_result_wrapped(self):
        circular: list = []
        circular.append(circular)
        registry = ToolRegistry([
            FunctionTool("tuple_keys", lambda: {(1, 2): "x"}),
            FunctionTool("circular", lambda: circular),
        ])
        for name in ("tuple_keys", "circular"):
            with pytest.raises(ToolExecutionError, match="not serializable") as exc_info:
                await registry.execute(ToolCall(name=name))
            assert exc_info.value.tool_name == name
            assert isinstance(exc_info.value.cause, (TypeError, ValueError))

    @pytest.mark.asyncio
    async def test_bad_arguments_wrapped(self, tool_registry):
        with pytest.raises(ToolExecutionError):
            await tool_registry.execute(ToolCall(name="add", arguments={"x": 1}))


class TestSerializeResult:
    def test_strings_pass_through(self):
        assert serialize_result("plain") == "plain"

    def test_non_json_values_stringified(self):
        assert json.loads(serialize_result({"day": date(2024, 1, 2)})) == {"day": "2024-01-02"}

    def test_none(self):
        assert serialize_result(None) == "null"
