import uuid
from collections.abc import Sequence
from dataclasses import dataclass, replace
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from turnloop.conversation import (
    ApprovalMessage,
    AssistantMessage,
    History,
    ModelReply,
    SystemMessage,
    ToolCallApproval,
    ToolCallDecision,
    ToolCallRequest,
    UserMessage,
    append_message,
)
from turnloop.errors import NoModelSelectedError, ProtocolViolationError, SessionBusyError
from turnloop.logging import get_logger
from turnloop.providers import ProviderAdapter, ProviderRegistry, ProviderType
from turnloop.tools import StaticToolPolicy, ToolPolicy, ToolProvider, ToolRegistry

_logger = get_logger(__name__)


class ToolPermission(StrEnum):
    ALWAYS = "always"
    NEVER = "never"
    # ask unless the tool or server configuration says otherwise
    TOOL = "tool"


class SessionStatus(StrEnum):
    NO_MODEL = "no-model"
    READY = "ready"
    AWAITING_APPROVAL = "awaiting-approval"


class SessionSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    max_chat_turns: int = Field(default=20, ge=1)
    max_output_tokens: int = Field(default=1000, ge=1)
    temperature: float = Field(default=0.5, ge=0, le=2)
    top_p: float = Field(default=0.5, ge=0, le=1)
    tool_permission: ToolPermission = ToolPermission.TOOL
    system_prompt: str | None = None

    @model_validator(mode="after")
    def _normalize_top_p(self) -> "SessionSettings":
        # with temperature at 0 a top_p of 0 would leave nothing to sample from
        if self.temperature == 0 and self.top_p < 0.01:
            self.top_p = 0.01
        return self


@dataclass(frozen=True)
class SessionSnapshot:
    id: str
    status: SessionStatus
    history: History
    settings: SessionSettings
    provider_type: ProviderType | None
    model_id: str | None
    approved_tools: frozenset[tuple[str, str]]
    pending_tool_calls: tuple[ToolCallRequest, ...]


class ChatSession:
    def __init__(
        self,
        providers: ProviderRegistry,
        tools: ToolProvider,
        policy: ToolPolicy,
        settings: SessionSettings | None = None,
        provider_type: ProviderType | str | None = None,
        model_id: str | None = None,
    ):
        self.id = uuid.uuid4().hex
        self.providers = providers
        self.tools = tools
        self.policy = policy
        self.settings = settings or SessionSettings()
        self.approved_tools: set[tuple[str, str]] = set()
        self.history: History = ()
        self.adapter: ProviderAdapter | None = None
        self._busy = False

        if provider_type is not None:
            self.adapter = providers.create(provider_type, model_id)
            description = (
                f"You are using the {self.adapter.provider_type} provider and the {self.adapter.model_id} model"
            )
        else:
            description = "No model selected"
        self._notice(f"Welcome to turnloop! {description}")
        _logger.info("Created chat session %s (%s)", self.id, description)

    @property
    def provider_type(self) -> ProviderType | None:
        return self.adapter.provider_type if self.adapter else None

    @property
    def model_id(self) -> str | None:
        return self.adapter.model_id if self.adapter else None

    @property
    def pending_tool_calls(self) -> tuple[ToolCallRequest, ...]:
        for message in reversed(self.history):
            match message:
                case SystemMessage():
                    continue
                case AssistantMessage(reply=reply):
                    return reply.pending_tool_calls or ()
                case _:
                    return ()
        return ()

    @property
    def status(self) -> SessionStatus:
        if self.adapter is None:
            return SessionStatus.NO_MODEL
        if self.pending_tool_calls:
            return SessionStatus.AWAITING_APPROVAL
        return SessionStatus.READY

    def _notice(self, text: str) -> None:
        self.history = append_message(self.history, SystemMessage(text))

    def _backend_history(self, history: History) -> History:
        # Notices are for the user; the backend only sees the configured system prompt
        conversation = tuple(m for m in history if not isinstance(m, SystemMessage))
        if self.settings.system_prompt:
            return (SystemMessage(self.settings.system_prompt), *conversation)
        return conversation

    async def handle_message(self, message: str | Sequence[ToolCallApproval]) -> ModelReply:
        if self._busy:
            raise SessionBusyError("Session is already handling a message")
        if self.adapter is None:
            raise NoModelSelectedError("No model selected; switch to a model before sending messages")

        pending = self.pending_tool_calls
        if isinstance(message, str):
            if pending:
                raise ProtocolViolationError(
                    f"{len(pending)} tool call(s) are awaiting approval; resolve them before sending text"
                )
            incoming = UserMessage(message)
        else:
            incoming = ApprovalMessage(self._match_approvals(list(message), pending))

        self._busy = True
        try:
            history = append_message(self.history, incoming)
            reply = await self.adapter.generate_reply(self, self._backend_history(history))
            self.history = append_message(history, AssistantMessage(reply))
        finally:
            self._busy = False

        if reply.error:
            _logger.warning("Reply ended with error: %s", reply.error)
        return reply

    def _match_approvals(
        self, approvals: list[ToolCallApproval], pending: tuple[ToolCallRequest, ...]
    ) -> tuple[ToolCallApproval, ...]:
        if not pending:
            raise ProtocolViolationError("Received tool call approvals but no tool calls are awaiting approval")
        if not approvals:
            raise ProtocolViolationError("Received an empty approval message")

        by_id = {request.tool_call_id: request for request in pending}
        matched: dict[str, ToolCallApproval] = {}
        for approval in approvals:
            request = by_id.get(approval.tool_call_id)
            if request is None:
                raise ProtocolViolationError(f"No pending tool call with id {approval.tool_call_id}")
            if approval.tool_call_id in matched:
                raise ProtocolViolationError(f"Duplicate approval for tool call {approval.tool_call_id}")
            if (approval.server_name, approval.tool_name) != (request.server_name, request.tool_name):
                raise ProtocolViolationError(
                    f"Approval for {approval.tool_call_id} names {approval.server_name}/{approval.tool_name}, "
                    f"pending call is {request.server_name}/{request.tool_name}"
                )
            try:
                decision = ToolCallDecision(approval.decision)
            except ValueError:
                raise ProtocolViolationError(f"Unknown decision: {approval.decision}") from None
            # run with the arguments the backend requested, not what the caller echoed back
            matched[approval.tool_call_id] = replace(approval, decision=decision, args=request.args)

        missing = [tool_call_id for tool_call_id in by_id if tool_call_id not in matched]
        if missing:
            raise ProtocolViolationError(f"Missing approval for tool call(s): {', '.join(missing)}")

        # keep the order the backend requested the calls in
        return tuple(matched[request.tool_call_id] for request in pending)

    def switch_model(self, provider_type: ProviderType | str, model_id: str | None = None) -> None:
        if self._busy:
            raise SessionBusyError("Cannot switch model while a message is being handled")
        # Construction errors propagate and leave the session unchanged
        adapter = self.providers.create(provider_type, model_id)
        self.adapter = adapter
        self._notice(f"Switched to the {adapter.provider_type} provider and the {adapter.model_id} model")
        _logger.info("Switched model to %s (%s)", adapter.provider_type, adapter.model_id)

    def clear_model(self) -> None:
        if self._busy:
            raise SessionBusyError("Cannot clear model while a message is being handled")
        self.adapter = None
        self._notice("Cleared model, no model currently active")
        _logger.info("Cleared model for session %s", self.id)

    def update_settings(self, **partial) -> SessionSettings:
        self.settings = SessionSettings.model_validate({**self.settings.model_dump(), **partial})
        _logger.info("Updated session settings: %s", sorted(partial))
        return self.settings

    def get_state(self) -> SessionSnapshot:
        return SessionSnapshot(
            id=self.id,
            status=self.status,
            history=self.history,
            settings=self.settings.model_copy(),
            provider_type=self.provider_type,
            model_id=self.model_id,
            approved_tools=frozenset(self.approved_tools),
            pending_tool_calls=self.pending_tool_calls,
        )

    async def close(self) -> None:
        if self.adapter is not None:
            await self.adapter.close()


def create_session(
    settings: SessionSettings | None = None,
    providers: ProviderRegistry | None = None,
    tools: ToolProvider | None = None,
    policy: ToolPolicy | None = None,
    provider_type: ProviderType | str | None = None,
    model_id: str | None = None,
) -> ChatSession:
    if providers is None or settings is None:
        from turnloop.config import get_config

        config = get_config()
        providers = providers or ProviderRegistry.from_config(config)
        settings = settings or config.session_settings()
        if provider_type is None and config.provider:
            provider_type, model_id = config.provider, model_id or config.model

    return ChatSession(
        providers=providers,
        tools=tools if tools is not None else ToolRegistry(),
        policy=policy if policy is not None else StaticToolPolicy(),
        settings=settings,
        provider_type=provider_type,
        model_id=model_id,
    )
