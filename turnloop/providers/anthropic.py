import anthropic
from pydantic import BaseModel

from turnloop.conversation import TextResult, ToolCallResult, Turn
from turnloop.logging import get_logger
from turnloop.providers.base import ProviderAdapter, as_dict
from turnloop.providers.types import (
    Completion,
    ConfigValue,
    NativeContext,
    ProviderInfo,
    ProviderModel,
    ProviderType,
    ToolUse,
)
from turnloop.tools import ToolSpec, qualified_tool_name

_logger = get_logger(__name__)


class ClaudeConfig(BaseModel):
    api_key: str = "env://ANTHROPIC_API_KEY"


class ClaudeAdapter(ProviderAdapter):
    provider_type = ProviderType.CLAUDE
    display_name = "Claude"
    default_model = "claude-sonnet-4-5"
    lifts_system_prompt = True
    config_model = ClaudeConfig
    info = ProviderInfo(
        name="Anthropic Claude",
        description="Claude is a family of AI assistants created by Anthropic to be helpful, harmless, and honest",
        website="https://www.anthropic.com/claude",
        config_values=(
            ConfigValue(
                key="api_key",
                caption="Anthropic API key",
                secret=True,
                required=True,
                default="env://ANTHROPIC_API_KEY",
            ),
        ),
    )

    def __init__(self, config: ClaudeConfig, model_id: str | None = None):
        super().__init__(config, model_id)
        self._client = anthropic.AsyncAnthropic(api_key=config.api_key)

    async def close(self) -> None:
        await self._client.close()

    async def list_models(self) -> list[ProviderModel]:
        models = []
        async for model in self._client.models.list():
            models.append(
                ProviderModel(
                    provider=self.provider_type,
                    id=model.id,
                    name=model.display_name,
                    source="Anthropic",
                )
            )
        return models

    async def validate_connection(self) -> None:
        await self._client.models.list(limit=1)

    # --- Request building ---

    async def _create(self, ctx: NativeContext, tools: list, settings):
        return await self._client.messages.create(**self._build_request(ctx, tools, settings))

    def _build_request(self, ctx: NativeContext, tools: list, settings) -> dict:
        request: dict = {
            "model": self.model_id,
            "max_tokens": settings.max_output_tokens,
            "messages": ctx.messages,
        }
        if ctx.system:
            request["system"] = ctx.system
        if tools:
            request["tools"] = tools
        # Newer models reject temperature and top_p together
        if settings.temperature > 0:
            request["temperature"] = settings.temperature
        else:
            request["top_p"] = settings.top_p
        return request

    def _convert_tools(self, specs: list[ToolSpec]) -> list[dict]:
        return [
            {
                "name": spec.qualified_name,
                "description": spec.description,
                "input_schema": spec.parameters,
            }
            for spec in specs
        ]

    # --- Message conversion ---

    def _push(self, ctx: NativeContext, role: str, blocks: list[dict]) -> None:
        if not blocks:
            return
        # Consecutive messages of one role are merged into a single message
        if ctx.messages and ctx.messages[-1]["role"] == role:
            ctx.messages[-1]["content"].extend(blocks)
            return
        ctx.messages.append({"role": role, "content": list(blocks)})

    def _append_text(self, ctx: NativeContext, role: str, text: str) -> None:
        if not text:
            return
        native_role = "assistant" if role == "assistant" else "user"
        self._push(ctx, native_role, [{"type": "text", "text": text}])

    def _append_turn(self, ctx: NativeContext, turn: Turn) -> None:
        assistant_blocks: list[dict] = []
        result_blocks: list[dict] = []
        for result in turn.results:
            match result:
                case TextResult(text=text):
                    if text:
                        assistant_blocks.append({"type": "text", "text": text})
                case ToolCallResult():
                    assistant_blocks.append(
                        {
                            "type": "tool_use",
                            "id": result.tool_call_id,
                            "name": qualified_tool_name(result.server_name, result.tool_name),
                            "input": result.args or {},
                        }
                    )
                    block = {
                        "type": "tool_result",
                        "tool_use_id": result.tool_call_id,
                        "content": result.output,
                    }
                    if result.error:
                        block["is_error"] = True
                    result_blocks.append(block)
        self._push(ctx, "assistant", assistant_blocks)
        self._push(ctx, "user", result_blocks)

    # --- Response parsing ---

    def _parse_assistant(self, message) -> list:
        parts: list = []
        for block in as_dict(message).get("content") or []:
            block = as_dict(block)
            match block.get("type"):
                case "text":
                    parts.append(TextResult(block["text"]))
                case "tool_use":
                    parts.append(ToolUse(name=block["name"], args=block.get("input") or {}, tool_call_id=block["id"]))
        return parts

    def from_native(self, response) -> Completion:
        data = as_dict(response)
        usage = data.get("usage") or {}
        return Completion(
            parts=tuple(self._parse_assistant(data)),
            input_tokens=usage.get("input_tokens"),
            output_tokens=usage.get("output_tokens"),
            truncated=data.get("stop_reason") == "max_tokens",
        )
