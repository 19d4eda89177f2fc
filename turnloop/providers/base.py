from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import replace
from typing import TYPE_CHECKING, Any, ClassVar

from pydantic import BaseModel

from turnloop.approval import is_approval_required, record_session_approval
from turnloop.conversation import (
    MAX_TOKENS_REACHED,
    MAX_TOOL_USES_REACHED,
    ApprovalMessage,
    AssistantMessage,
    History,
    ModelReply,
    SystemMessage,
    TextResult,
    ToolCallDecision,
    ToolCallRequest,
    ToolCallResult,
    Turn,
    UserMessage,
)
from turnloop.logging import get_logger
from turnloop.providers.retry import with_retry
from turnloop.providers.types import (
    Completion,
    NativeContext,
    ProviderInfo,
    ProviderModel,
    ProviderType,
    ToolUse,
)
from turnloop.tools import ToolSpec, split_tool_name
from turnloop.utils import ms_now, new_tool_call_id, stringify_output

if TYPE_CHECKING:
    from turnloop.session import ChatSession, SessionSettings

_logger = get_logger(__name__)


def as_dict(obj: Any) -> dict:
    """Normalize an SDK response object (or a plain mapping) to a dict."""
    if obj is None:
        return {}
    if isinstance(obj, Mapping):
        return dict(obj)
    return obj.model_dump()


class ProviderAdapter(ABC):
    """Drives one reply for a session against a single backend.

    Subclasses only translate: canonical turns into the backend's native
    messages, and native responses back into ordered parts. The turn loop,
    approval handling and tool execution live here.
    """

    provider_type: ClassVar[ProviderType]
    display_name: ClassVar[str]
    info: ClassVar[ProviderInfo]
    config_model: ClassVar[type[BaseModel]]
    default_model: ClassVar[str]
    # Backends with a dedicated system field take the leading system message out of the history
    lifts_system_prompt: ClassVar[bool] = False

    def __init__(self, config: BaseModel, model_id: str | None = None):
        self.config = config
        self.model_id = model_id or self.default_model

    # --- Backend hooks ---

    @abstractmethod
    async def list_models(self) -> list[ProviderModel]: ...

    @abstractmethod
    async def validate_connection(self) -> None:
        """Raise if the backend cannot be reached with this configuration."""

    @abstractmethod
    async def _create(self, ctx: NativeContext, tools: list, settings: "SessionSettings") -> Any: ...

    @abstractmethod
    def from_native(self, response: Any) -> Completion: ...

    @abstractmethod
    def _convert_tools(self, specs: list[ToolSpec]) -> list: ...

    @abstractmethod
    def _append_text(self, ctx: NativeContext, role: str, text: str) -> None: ...

    @abstractmethod
    def _append_turn(self, ctx: NativeContext, turn: Turn) -> None:
        """Append a turn's text, tool uses and tool results to the native context."""

    async def close(self) -> None:
        pass

    # --- Translation ---

    def to_native(self, history: History) -> NativeContext:
        ctx = NativeContext()
        messages = list(history)
        if self.lifts_system_prompt and messages and isinstance(messages[0], SystemMessage):
            ctx.system = messages.pop(0).text

        for message in messages:
            match message:
                case SystemMessage(text=text):
                    self._append_text(ctx, "system", text)
                case UserMessage(text=text):
                    self._append_text(ctx, "user", text)
                case AssistantMessage(reply=reply):
                    for turn in reply.turns:
                        # error-only turns carry nothing the backend produced
                        if turn.results:
                            self._append_turn(ctx, turn)
                case ApprovalMessage():
                    continue
        return ctx

    # --- Turn loop ---

    async def generate_reply(self, session: "ChatSession", history: History) -> ModelReply:
        turns: list[Turn] = []
        pending: list[ToolCallRequest] = []
        try:
            await self._run(session, history, turns, pending)
        except Exception as e:
            _logger.error("%s API error: %s", self.display_name, e, exc_info=True)
            pending.clear()
            message = str(e) or type(e).__name__
            _terminate(
                turns,
                f"Error: Failed to generate response from {self.display_name} - {message}",
                session.settings.max_chat_turns,
            )
        return ModelReply(turns=tuple(turns), pending_tool_calls=tuple(pending) or None)

    async def _run(
        self,
        session: "ChatSession",
        history: History,
        turns: list[Turn],
        pending: list[ToolCallRequest],
    ) -> None:
        settings = session.settings
        ctx = self.to_native(history)

        if history and isinstance(history[-1], ApprovalMessage):
            turn = await self._resolve_approvals(session, history[-1])
            turns.append(turn)
            self._append_turn(ctx, turn)

        tools = await self._list_tools(session)

        while len(turns) < settings.max_chat_turns:
            completion = await self._complete(ctx, tools, settings)
            turn, requests = await self._process(session, completion)
            turns.append(turn)

            if requests:
                _logger.info("%d tool call(s) awaiting approval", len(requests))
                pending.extend(requests)
                return
            if not completion.has_tool_use:
                _logger.info("%s response generated in %d turn(s)", self.display_name, len(turns))
                return
            self._append_turn(ctx, turn)

        # budget used up without a natural stop; the error lands on the last turn
        _logger.warning("Maximum number of tool uses reached (%d turns)", settings.max_chat_turns)
        _terminate(turns, MAX_TOOL_USES_REACHED, settings.max_chat_turns)

    async def _complete(self, ctx: NativeContext, tools: list, settings: "SessionSettings") -> Completion:
        response = await with_retry(self._create, ctx, tools, settings)
        return self.from_native(response)

    async def _list_tools(self, session: "ChatSession") -> list:
        specs = await session.tools.list_tools()
        enabled = [s for s in specs if session.policy.is_tool_enabled(s.server_name, s.tool_name)]
        return self._convert_tools(enabled) if enabled else []

    async def _process(
        self, session: "ChatSession", completion: Completion
    ) -> tuple[Turn, list[ToolCallRequest]]:
        results: list[TextResult | ToolCallResult] = []
        requests: list[ToolCallRequest] = []

        for part in completion.parts:
            match part:
                case TextResult():
                    results.append(part)
                case ToolUse(name=name, args=args, tool_call_id=tool_call_id):
                    tool_call_id = tool_call_id or new_tool_call_id()
                    try:
                        server_name, tool_name = split_tool_name(name)
                    except ValueError as e:
                        _logger.warning("Backend requested an invalid tool name: %s", name)
                        results.append(
                            ToolCallResult(
                                server_name="",
                                tool_name=name,
                                args=args,
                                tool_call_id=tool_call_id,
                                output=str(e),
                                error=str(e),
                            )
                        )
                        continue

                    request = ToolCallRequest(server_name, tool_name, args, tool_call_id)
                    _logger.info("Tool use detected: %s/%s (%s)", server_name, tool_name, tool_call_id)
                    if is_approval_required(session, server_name, tool_name):
                        requests.append(request)
                    else:
                        results.append(await self._execute(session, request))

        error = None
        if completion.truncated:
            _logger.warning("Maximum number of tokens reached for this response")
            error = MAX_TOKENS_REACHED

        turn = Turn(
            results=tuple(results),
            error=error,
            input_tokens=completion.input_tokens,
            output_tokens=completion.output_tokens,
        )
        return turn, requests

    async def _resolve_approvals(self, session: "ChatSession", message: ApprovalMessage) -> Turn:
        results: list[ToolCallResult] = []
        for approval in message.approvals:
            _logger.info(
                "Processing tool call approval %s for %s/%s: %s",
                approval.tool_call_id,
                approval.server_name,
                approval.tool_name,
                approval.decision,
            )
            request = approval.request()
            if approval.decision == ToolCallDecision.DENY:
                results.append(ToolCallResult.denied(request))
                continue
            if approval.decision == ToolCallDecision.ALLOW_SESSION:
                record_session_approval(session, approval.server_name, approval.tool_name)
            results.append(await self._execute(session, request))
        return Turn(results=tuple(results))

    async def _execute(self, session: "ChatSession", request: ToolCallRequest) -> ToolCallResult:
        start = ms_now()
        try:
            out = await session.tools.call_tool(request.server_name, request.tool_name, request.args)
        except Exception as e:
            _logger.warning("Tool %s/%s failed: %s", request.server_name, request.tool_name, e)
            error = str(e) or type(e).__name__
            return ToolCallResult(
                server_name=request.server_name,
                tool_name=request.tool_name,
                args=request.args,
                tool_call_id=request.tool_call_id,
                elapsed_time_ms=ms_now() - start,
                output=f"Error: {error}",
                error=error,
            )

        output = stringify_output(out.output) if out.output not in ("", None) else ""
        if out.error and not output:
            output = f"Error: {out.error}"
        return ToolCallResult(
            server_name=request.server_name,
            tool_name=request.tool_name,
            args=request.args,
            tool_call_id=request.tool_call_id,
            elapsed_time_ms=out.elapsed_time_ms or ms_now() - start,
            output=output,
            error=out.error,
        )


def _terminate(turns: list[Turn], error: str, max_turns: int) -> None:
    if len(turns) < max_turns:
        turns.append(Turn(error=error))
    else:
        turns[-1] = replace(turns[-1], error=error)
