from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Literal, TypeAlias

from turnloop.utils import epoch_ms

TOOL_CALL_DENIED = "Tool call denied"
MAX_TOOL_USES_REACHED = "Maximum number of tool uses reached"
MAX_TOKENS_REACHED = (
    "Maximum number of tokens reached for this response.  Increase the Maximum Output Tokens setting if desired."
)


class ToolCallDecision(StrEnum):
    ALLOW_ONCE = "allow-once"
    ALLOW_SESSION = "allow-session"
    DENY = "deny"


@dataclass(frozen=True)
class ToolCallRequest:
    server_name: str
    tool_name: str
    args: dict[str, Any] | None = None
    tool_call_id: str | None = None


@dataclass(frozen=True)
class ToolCallResult(ToolCallRequest):
    elapsed_time_ms: float = 0
    output: str = ""
    error: str | None = None

    @classmethod
    def denied(cls, request: ToolCallRequest) -> "ToolCallResult":
        return cls(
            server_name=request.server_name,
            tool_name=request.tool_name,
            args=request.args,
            tool_call_id=request.tool_call_id,
            elapsed_time_ms=0,
            output=TOOL_CALL_DENIED,
            error=TOOL_CALL_DENIED,
        )

    def request(self) -> ToolCallRequest:
        return ToolCallRequest(self.server_name, self.tool_name, self.args, self.tool_call_id)


@dataclass(frozen=True)
class ToolCallApproval:
    tool_call_id: str
    server_name: str
    tool_name: str
    decision: ToolCallDecision
    args: dict[str, Any] | None = None

    def request(self) -> ToolCallRequest:
        return ToolCallRequest(self.server_name, self.tool_name, self.args, self.tool_call_id)


@dataclass(frozen=True)
class TextResult:
    text: str


Result: TypeAlias = TextResult | ToolCallResult


@dataclass(frozen=True)
class Turn:
    results: tuple[Result, ...] = ()
    error: str | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None

    @property
    def tool_calls(self) -> list[ToolCallResult]:
        return [r for r in self.results if isinstance(r, ToolCallResult)]

    @property
    def text(self) -> str:
        return "".join(r.text for r in self.results if isinstance(r, TextResult))


@dataclass(frozen=True)
class ModelReply:
    turns: tuple[Turn, ...] = ()
    pending_tool_calls: tuple[ToolCallRequest, ...] | None = None
    timestamp: int = field(default_factory=epoch_ms)

    @property
    def is_complete(self) -> bool:
        return not self.pending_tool_calls

    @property
    def error(self) -> str | None:
        return self.turns[-1].error if self.turns else None

    @property
    def input_tokens(self) -> int:
        return sum(t.input_tokens or 0 for t in self.turns)

    @property
    def output_tokens(self) -> int:
        return sum(t.output_tokens or 0 for t in self.turns)


@dataclass(frozen=True)
class SystemMessage:
    text: str
    role: Literal["system"] = field(default="system", init=False)


@dataclass(frozen=True)
class UserMessage:
    text: str
    role: Literal["user"] = field(default="user", init=False)


@dataclass(frozen=True)
class AssistantMessage:
    reply: ModelReply
    role: Literal["assistant"] = field(default="assistant", init=False)


@dataclass(frozen=True)
class ApprovalMessage:
    approvals: tuple[ToolCallApproval, ...]
    role: Literal["approval"] = field(default="approval", init=False)


Message: TypeAlias = SystemMessage | UserMessage | AssistantMessage | ApprovalMessage

History: TypeAlias = tuple[Message, ...]


def append_message(history: History, message: Message) -> History:
    return (*history, message)


def last_assistant_reply(history: History) -> ModelReply | None:
    for message in reversed(history):
        if isinstance(message, AssistantMessage):
            return message.reply
    return None
