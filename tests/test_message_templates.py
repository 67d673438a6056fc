"""Tests for System / User / Assistant / ToolResult templates."""
import json

import pytest

from core.errors import ConfigurationError, ValidationError
from models.schemas import (
    AssistantMessage, MessageType, SystemMessage, ToolCall, ToolResultMessage, UserMessage,
)
from models.session import create_session
from sources import CallbackSource, ListSource, LlmSource, StaticSource
from templates import (
    AssistantTemplate, ExecutionContext, Sequence, SystemTemplate, ToolResultTemplate,
    UserTemplate,
)
from validators import KeywordValidator


# ══════════════════════════════════════════════════════
#  SOURCE RESOLUTION
# ══════════════════════════════════════════════════════

class TestSourceResolution:
    @pytest.mark.asyncio
    async def test_missing_source_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            await UserTemplate().execute()

    @pytest.mark.asyncio
    async def test_context_default_source(self):
        ctx = ExecutionContext(user_source=StaticSource("from context"))
        s = await UserTemplate().execute(create_session(), ctx)
        assert s.get_last_message().content == "from context"

    @pytest.mark.asyncio
    async def test_construction_source_wins(self):
        ctx = ExecutionContext(user_source=StaticSource("from context"))
        s = await UserTemplate(StaticSource("own")).execute(create_session(), ctx)
        assert s.get_last_message().content == "own"

    @pytest.mark.asyncio
    async def test_execute_without_session_starts_empty(self):
        s = await SystemTemplate.from_text("sys").execute()
        assert len(s) == 1


# ══════════════════════════════════════════════════════
#  SYSTEM / TOOL RESULT
# ══════════════════════════════════════════════════════

class TestSystemTemplate:
    @pytest.mark.asyncio
    async def test_interpolated_system_message(self):
        s0 = create_session(vars={"persona": "pirate"})
        s1 = await SystemTemplate.from_text("You are a ${persona}.").execute(s0)
        assert isinstance(s1.messages[0], SystemMessage)
        assert s1.messages[0].content == "You are a pirate."
        assert len(s0) == 0


class TestToolResultTemplate:
    @pytest.mark.asyncio
    async def test_appends_tool_result(self):
        s = await ToolResultTemplate.from_text("42", tool_call_id="call_1").execute()
        msg = s.get_last_message()
        assert isinstance(msg, ToolResultMessage)
        assert msg.tool_call_id == "call_1"
        assert msg.content == "42"

    @pytest.mark.asyncio
    async def test_side_channel_merged_into_vars(self, scripted_model):
        model = scripted_model(AssistantMessage(content="ok", metadata={"latency_ms": 12},
                                                structured_output={"rows": 3}))
        s = await ToolResultTemplate(LlmSource(model), tool_call_id="call_1").execute()
        assert s.get_last_message().content == "ok"
        assert s.get_last_message().metadata == {"latency_ms": 12}
        assert s.get_var("latency_ms") == 12
        assert s.get_var("structured_output") == {"rows": 3}


class TestSideChannelOnOtherLeaves:
    @pytest.mark.asyncio
    async def test_system_merges_metadata(self, scripted_model):
        model = scripted_model(AssistantMessage(content="Be brief.", metadata={"persona": "terse"}))
        s = await SystemTemplate(LlmSource(model)).execute()
        assert s.messages[0].content == "Be brief."
        assert s.get_var("persona") == "terse"

    @pytest.mark.asyncio
    async def test_user_merges_metadata(self, scripted_model):
        model = scripted_model(AssistantMessage(content="hi", metadata={"channel": "sim"}))
        s = await UserTemplate(LlmSource(model)).execute()
        assert isinstance(s.get_last_message(), UserMessage)
        assert s.get_var("channel") == "sim"

    @pytest.mark.asyncio
    async def test_plain_text_sources_leave_vars_alone(self):
        s = await SystemTemplate.from_text("sys").execute(create_session(vars={"a": 1}))
        assert dict(s.vars) == {"a": 1}


# ══════════════════════════════════════════════════════
#  USER RE-PROMPT LOOP
# ══════════════════════════════════════════════════════

class TestUserTemplate:
    @pytest.mark.asyncio
    async def test_plain_user_message(self):
        s = await UserTemplate.from_text("hello").execute()
        assert isinstance(s.get_last_message(), UserMessage)

    @pytest.mark.asyncio
    async def test_reprompts_until_valid(self):
        template = UserTemplate(ListSource(["maybe", "yes"]),
                                validator=KeywordValidator(["yes"]), max_attempts=3)
        s = await template.execute()
        assert [m.type for m in s.messages] == [
            MessageType.USER, MessageType.SYSTEM, MessageType.USER,
        ]
        assert s.messages[1].content == (
            "Validation failed: Result must include one of these keywords: yes. Please try again."
        )
        assert s.messages[2].content == "yes"

    @pytest.mark.asyncio
    async def test_reprompt_exhaustion_raises(self):
        template = UserTemplate(ListSource(["a", "b"]), validator=KeywordValidator(["yes"]),
                                max_attempts=2)
        with pytest.raises(ValidationError) as exc_info:
            await template.execute()
        assert exc_info.value.attempts == 2

    @pytest.mark.asyncio
    async def test_reprompt_exhaustion_warns_when_not_raising(self, observer):
        template = UserTemplate(ListSource(["a", "b"]), validator=KeywordValidator(["yes"]),
                                max_attempts=2, raise_error=False, observer=observer)
        s = await template.execute()
        assert len(s.get_messages_by_type("user")) == 2
        assert observer.names() == ["user_reprompt", "user_validation_exhausted"]

    @pytest.mark.asyncio
    async def test_uses_source_validator_and_bound(self):
        src = ListSource(["no", "yes"], validator=KeywordValidator(["yes"]),
                         max_attempts=2, raise_error=False)
        s = await UserTemplate(src).execute()
        # the source's own retry already lands on "yes"
        assert [m.content for m in s.messages] == ["yes"]

    def test_invalid_bound(self):
        with pytest.raises(ConfigurationError):
            UserTemplate(StaticSource("x"), max_attempts=0)


# ══════════════════════════════════════════════════════
#  ASSISTANT
# ══════════════════════════════════════════════════════

class TestAssistantTemplate:
    @pytest.mark.asyncio
    async def test_static_text(self):
        s = await AssistantTemplate.from_text("Hi ${name}").execute(
            create_session(vars={"name": "Ann"})
        )
        msg = s.get_last_message()
        assert isinstance(msg, AssistantMessage)
        assert msg.content == "Hi Ann"

    @pytest.mark.asyncio
    async def test_metadata_merged_into_vars(self, scripted_model):
        model = scripted_model(AssistantMessage(content="ok", metadata={"finish": "stop"}))
        s = await AssistantTemplate(LlmSource(model)).execute()
        assert s.get_var("finish") == "stop"
        assert s.get_last_message().metadata == {"finish": "stop"}

    @pytest.mark.asyncio
    async def test_structured_output_lands_in_vars(self, scripted_model):
        model = scripted_model(AssistantMessage(content="", structured_output={"a": 1, "b": 2}))
        s = await AssistantTemplate(LlmSource(model)).execute()
        assert s.get_var("structured_output") == {"a": 1, "b": 2}
        assert s.get_var("a") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("config,expected", [
        (True, {"a": 1, "b": 2}),
        (["b"], {"b": 2}),
        ({"a": "alpha"}, {"alpha": 1}),
    ])
    async def test_extract_to_vars(self, scripted_model, config, expected):
        model = scripted_model(AssistantMessage(content="", structured_output={"a": 1, "b": 2}))
        s = await AssistantTemplate(LlmSource(model), extract_to_vars=config).execute()
        for key, value in expected.items():
            assert s.get_var(key) == value

    @pytest.mark.asyncio
    async def test_tool_calls_answered_in_order(self, scripted_model, tool_registry):
        calls = [
            ToolCall(id="c1", name="add", arguments={"a": 2, "b": 3}),
            ToolCall(id="c2", name="lookup_user", arguments={"user_id": "u7"}),
        ]
        model = scripted_model(AssistantMessage(content="", tool_calls=calls))
        s = await AssistantTemplate(LlmSource(model), tools=tool_registry).execute()
        results = s.get_messages_by_type("tool_result")
        assert [r.tool_call_id for r in results] == ["c1", "c2"]
        assert results[0].content == "5"
        assert json.loads(results[1].content) == {"id": "u7", "name": "Alice"}
        assert not any(r.is_error for r in results)

    @pytest.mark.asyncio
    async def test_tool_failures_become_error_results(self, scripted_model, tool_registry, observer):
        calls = [
            ToolCall(id="c1", name="explode"),
            ToolCall(id="c2", name="does_not_exist"),
            ToolCall(id="c3", name="add", arguments={"a": 1, "b": 1}),
        ]
        model = scripted_model(AssistantMessage(content="", tool_calls=calls))
        template = AssistantTemplate(LlmSource(model), tools=tool_registry, observer=observer)
        s = await template.execute()
        results = s.get_messages_by_type("tool_result")
        assert [r.is_error for r in results] == [True, True, False]
        assert "boom" in json.loads(results[0].content)["error"]
        assert "unknown tool" in json.loads(results[1].content)["error"]
        assert results[2].content == "2"
        assert observer.names().count("tool_execution_failed") == 2

    @pytest.mark.asyncio
    async def test_unserializable_tool_result_becomes_error_result(self, scripted_model,
                                                                   tool_registry, observer):
        tool_registry.register_function("tuple_keys", lambda: {(1, 2): "x"})
        calls = [
            ToolCall(id="c1", name="tuple_keys"),
            ToolCall(id="c2", name="add", arguments={"a": 1, "b": 2}),
        ]
        model = scripted_model(AssistantMessage(content="", tool_calls=calls))
        template = AssistantTemplate(LlmSource(model), tools=tool_registry, observer=observer)
        s = await template.execute()
        results = s.get_messages_by_type("tool_result")
        assert [r.is_error for r in results] == [True, False]
        assert "not serializable" in json.loads(results[0].content)["error"]
        assert results[1].content == "3"
        assert observer.names() == ["tool_execution_failed"]

    @pytest.mark.asyncio
    async def test_tool_calls_without_registry_are_left_alone(self, scripted_model, observer):
        model = scripted_model(AssistantMessage(content="", tool_calls=[ToolCall(name="add")]))
        s = await AssistantTemplate(LlmSource(model), observer=observer).execute()
        assert len(s) == 1
        assert observer.names() == ["tool_calls_unhandled"]

    @pytest.mark.asyncio
    async def test_text_source_output_wrapped(self):
        s = await AssistantTemplate(CallbackSource(lambda v: "computed")).execute()
        assert s.get_last_message().content == "computed"


class TestDefaultSourcesFromComposite:
    @pytest.mark.asyncio
    async def test_leaves_inherit_composite_sources(self):
        seq = Sequence(
            [UserTemplate(), AssistantTemplate(), UserTemplate()],
            user_source=ListSource(["q1", "q2"]),
            assistant_source=StaticSource("a"),
        )
        s = await seq.execute()
        assert [m.content for m in s.messages] == ["q1", "a", "q2"]

    @pytest.mark.asyncio
    async def test_nearest_composite_wins(self):
        inner = Sequence([UserTemplate()], user_source=StaticSource("inner"))
        outer = Sequence([UserTemplate(), inner], user_source=StaticSource("outer"))
        s = await outer.execute()
        assert [m.content for m in s.messages] == ["outer", "inner"]
