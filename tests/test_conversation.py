import re

import pytest

from turnloop.conversation import (
    TOOL_CALL_DENIED,
    AssistantMessage,
    ModelReply,
    SystemMessage,
    TextResult,
    ToolCallRequest,
    ToolCallResult,
    Turn,
    UserMessage,
    append_message,
    last_assistant_reply,
)
from turnloop.tools import qualified_tool_name, split_tool_name
from turnloop.utils import new_tool_call_id, parse_args, stringify_output


def _result(**kwargs) -> ToolCallResult:
    return ToolCallResult(server_name="fs", tool_name="readFile", args={"path": "a"}, tool_call_id="call_1", **kwargs)


class TestHistory:
    def test_append_returns_new_history(self):
        history = (UserMessage("hi"),)
        updated = append_message(history, SystemMessage("notice"))
        assert history == (UserMessage("hi"),)
        assert updated == (UserMessage("hi"), SystemMessage("notice"))

    def test_roles(self):
        assert UserMessage("x").role == "user"
        assert SystemMessage("x").role == "system"
        assert AssistantMessage(ModelReply()).role == "assistant"

    def test_last_assistant_reply(self):
        first, second = ModelReply(turns=(Turn(results=(TextResult("a"),)),)), ModelReply()
        history = (UserMessage("1"), AssistantMessage(first), UserMessage("2"), AssistantMessage(second))
        assert last_assistant_reply(history) is second
        assert last_assistant_reply(history[:3]) is first

    def test_last_assistant_reply_empty(self):
        assert last_assistant_reply((UserMessage("hi"),)) is None

    def test_messages_are_immutable(self):
        message = UserMessage("hi")
        with pytest.raises(AttributeError):
            message.text = "changed"


class TestModelReply:
    def test_complete_without_pending(self):
        assert ModelReply().is_complete
        assert ModelReply(pending_tool_calls=()).is_complete

    def test_incomplete_with_pending(self):
        reply = ModelReply(pending_tool_calls=(ToolCallRequest("fs", "readFile"),))
        assert not reply.is_complete

    def test_error_is_last_turn_error(self):
        reply = ModelReply(turns=(Turn(results=(TextResult("a"),)), Turn(error="boom")))
        assert reply.error == "boom"
        assert ModelReply().error is None

    def test_token_totals(self):
        reply = ModelReply(turns=(Turn(input_tokens=3, output_tokens=4), Turn(input_tokens=5), Turn(error="x")))
        assert reply.input_tokens == 8
        assert reply.output_tokens == 4

    def test_timestamp_is_epoch_ms(self):
        assert ModelReply().timestamp > 1_600_000_000_000


class TestTurn:
    def test_text_and_tool_calls_keep_order(self):
        call = _result(output="ok")
        turn = Turn(results=(TextResult("a"), call, TextResult("b")))
        assert turn.text == "ab"
        assert turn.tool_calls == [call]


class TestToolCallResult:
    def test_denied(self):
        denied = ToolCallResult.denied(ToolCallRequest("fs", "readFile", {"path": "a"}, "call_1"))
        assert denied.output == TOOL_CALL_DENIED
        assert denied.error == TOOL_CALL_DENIED
        assert denied.elapsed_time_ms == 0
        assert denied.tool_call_id == "call_1"

    def test_request_round_trip(self):
        assert _result(output="x").request() == ToolCallRequest("fs", "readFile", {"path": "a"}, "call_1")


class TestToolNames:
    def test_qualified(self):
        assert qualified_tool_name("fs", "readFile") == "fs_readFile"

    def test_split_at_first_underscore(self):
        assert split_tool_name("fs_readFile") == ("fs", "readFile")
        assert split_tool_name("fs_read_file") == ("fs", "read_file")

    @pytest.mark.parametrize("name", ["readFile", "_readFile", "fs_", ""])
    def test_invalid(self, name):
        with pytest.raises(ValueError, match="Invalid tool name"):
            split_tool_name(name)


class TestUtils:
    def test_tool_call_ids_are_unique(self):
        ids = {new_tool_call_id() for _ in range(200)}
        assert len(ids) == 200
        assert all(re.fullmatch(r"call_[0-9a-f]{24}", i) for i in ids)

    def test_parse_args(self):
        assert parse_args('{"a": 1}') == {"a": 1}
        assert parse_args({"a": 1}) == {"a": 1}
        assert parse_args(None) == {}
        assert parse_args("not json") == {}
        assert parse_args("[1, 2]") == {}

    def test_stringify_output(self):
        assert stringify_output("plain") == "plain"
        assert stringify_output({"a": 1}) == '{"a": 1}'
