"""End-to-end conversations assembled with the template factory."""
import pytest
from pydantic import BaseModel

from core.errors import ValidationError
from models.schemas import AssistantMessage, MessageType, ToolCall
from sources import CallbackSource, ListSource
from templates import factory as tf
from templates import AssistantTemplate, Loop, Sequence, Subroutine, UserTemplate
from validators import KeywordValidator


class Ticket(BaseModel):
    """Support ticket triage."""
    category: str
    urgent: bool


class TestBasicConversation:
    @pytest.mark.asyncio
    async def test_system_user_assistant(self):
        seq = Sequence([
            tf.system("go"),
            tf.user("hi"),
            tf.assistant_from(CallbackSource(lambda v: "hello there")),
        ])
        s = await seq.execute()
        assert len(s) == 3
        assert [m.type for m in s.messages] == [
            MessageType.SYSTEM, MessageType.USER, MessageType.ASSISTANT,
        ]
        assert [m.content for m in s.messages] == ["go", "hi", "hello there"]

    @pytest.mark.asyncio
    async def test_generate_with_model(self, scripted_model):
        model = scripted_model("Bonjour!")
        s = await tf.sequence(
            tf.system("Translate to French."),
            tf.user("Hello"),
            tf.generate(model),
        ).execute()
        assert s.get_last_message().content == "Bonjour!"
        sent, _ = model.calls[0]
        assert [m.content for m in sent.messages] == ["Translate to French.", "Hello"]

    @pytest.mark.asyncio
    async def test_generate_with_validator_regenerates(self, scripted_model):
        model = scripted_model("I think so", "yes")
        s = await tf.generate(model, validator=KeywordValidator(["yes"]), max_attempts=2).execute()
        assert s.get_last_message().content == "yes"
        assert len(s) == 1

    @pytest.mark.asyncio
    async def test_generate_exhaustion_raises(self, scripted_model):
        model = scripted_model("no")
        with pytest.raises(ValidationError):
            await tf.generate(model, validator=KeywordValidator(["yes"])).execute()


class TestToolUse:
    @pytest.mark.asyncio
    async def test_model_tool_round_trip(self, scripted_model, tool_registry):
        model = scripted_model(
            AssistantMessage(content="", tool_calls=[
                ToolCall(id="c1", name="add", arguments={"a": 20, "b": 22}),
            ]),
            "The answer is 42.",
        )
        s = await tf.sequence(
            tf.user("What is 20 + 22?"),
            tf.generate(model, tools=tool_registry),
            tf.generate(model, tools=tool_registry),
        ).execute()
        assert [m.type for m in s.messages] == [
            MessageType.USER, MessageType.ASSISTANT, MessageType.TOOL_RESULT, MessageType.ASSISTANT,
        ]
        assert s.messages[2].content == "42"
        second_request, _ = model.calls[1]
        assert second_request.get_last_message().type == MessageType.TOOL_RESULT


class TestStructured:
    @pytest.mark.asyncio
    async def test_structured_extracts_fields(self, scripted_model):
        model = scripted_model(AssistantMessage(content="", tool_calls=[
            ToolCall(name="ticket", arguments={"category": "billing", "urgent": True}),
        ]))
        s = await tf.structured(model, Ticket, extract_to_vars=["category"]).execute()
        assert s.get_var("structured_output") == {"category": "billing", "urgent": True}
        assert s.get_var("category") == "billing"
        assert s.get_var("urgent") is None


class TestControlFlow:
    @pytest.mark.asyncio
    async def test_loop_until_var(self):
        chat = tf.loop(
            [tf.user_from(ListSource(["a", "b", "quit"])),
             tf.transform(lambda s: s.set_var("last", s.get_last_message().content))],
            until=tf.when("last", "eq", "quit"),
        )
        s = await chat.execute()
        assert [m.content for m in s.messages] == ["a", "b", "quit"]

    @pytest.mark.asyncio
    async def test_conditional_on_var(self):
        flow = tf.sequence(
            tf.set_vars(tier="gold"),
            tf.conditional(tf.when("tier", "in", ["gold", "platinum"]),
                           tf.assistant("Priority line"),
                           tf.assistant("Standard line")),
        )
        s = await flow.execute()
        assert s.get_last_message().content == "Priority line"

    @pytest.mark.asyncio
    async def test_subroutine_scratchpad(self):
        flow = tf.sequence(
            tf.system("main"),
            tf.subroutine(
                tf.assistant("thinking..."),
                tf.transform(lambda s: s.set_var("plan", "step 1")),
                retain_messages=False,
            ),
            tf.assistant("Plan: ${plan}"),
        )
        s = await flow.execute()
        assert [m.content for m in s.messages] == ["main", "Plan: step 1"]

    @pytest.mark.asyncio
    async def test_user_cli_with_reader(self):
        answers = iter(["what", "y"])
        template = tf.user_cli(prompt="> ", validator=KeywordValidator(["y", "n"]), max_attempts=2,
                               reader=lambda prompt: next(answers))
        s = await template.execute()
        assert [m.type for m in s.messages] == [
            MessageType.USER, MessageType.SYSTEM, MessageType.USER,
        ]

    def test_factory_returns_expected_types(self, scripted_model):
        assert isinstance(tf.user("x"), UserTemplate)
        assert isinstance(tf.generate(scripted_model()), AssistantTemplate)
        assert isinstance(tf.loop(tf.user("x")), Loop)
        assert isinstance(tf.subroutine(tf.user("x")), Subroutine)
