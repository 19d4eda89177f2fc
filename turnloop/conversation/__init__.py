"""Canonical, backend-independent conversation model."""

from turnloop.conversation.models import (
    MAX_TOKENS_REACHED,
    MAX_TOOL_USES_REACHED,
    TOOL_CALL_DENIED,
    ApprovalMessage,
    AssistantMessage,
    History,
    Message,
    ModelReply,
    Result,
    SystemMessage,
    TextResult,
    ToolCallApproval,
    ToolCallDecision,
    ToolCallRequest,
    ToolCallResult,
    Turn,
    UserMessage,
    append_message,
    last_assistant_reply,
)

__all__ = [
    "MAX_TOKENS_REACHED",
    "MAX_TOOL_USES_REACHED",
    "TOOL_CALL_DENIED",
    "ApprovalMessage",
    "AssistantMessage",
    "History",
    "Message",
    "ModelReply",
    "Result",
    "SystemMessage",
    "TextResult",
    "ToolCallApproval",
    "ToolCallDecision",
    "ToolCallRequest",
    "ToolCallResult",
    "Turn",
    "UserMessage",
    "append_message",
    "last_assistant_reply",
]
