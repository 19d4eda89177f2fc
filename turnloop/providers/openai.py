import json

import openai
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
from turnloop.utils import parse_args

_logger = get_logger(__name__)

# Models the chat endpoint cannot drive
_EXCLUDED_MODEL_WORDS = (
    "dall-e",
    "tts",
    "whisper",
    "embedding",
    "embed",
    "audio",
    "transcribe",
    "moderation",
    "babbage",
    "davinci",
)


class OpenAIConfig(BaseModel):
    api_key: str = "env://OPENAI_API_KEY"
    base_url: str | None = None


class OpenAIAdapter(ProviderAdapter):
    provider_type = ProviderType.OPENAI
    display_name = "OpenAI"
    default_model = "gpt-4o"
    config_model = OpenAIConfig
    info = ProviderInfo(
        name="OpenAI",
        description="OpenAI models including GPT-3.5, GPT-4, and other advanced language models",
        website="https://openai.com",
        config_values=(
            ConfigValue(
                key="api_key",
                caption="OpenAI API key",
                secret=True,
                required=True,
                default="env://OPENAI_API_KEY",
            ),
            ConfigValue(key="base_url", caption="OpenAI-compatible API base URL"),
        ),
    )

    def __init__(self, config: OpenAIConfig, model_id: str | None = None):
        super().__init__(config, model_id)
        self._client = openai.AsyncOpenAI(api_key=config.api_key, base_url=config.base_url)

    async def close(self) -> None:
        await self._client.close()

    async def list_models(self) -> list[ProviderModel]:
        models = []
        async for model in self._client.models.list():
            if any(word in model.id.lower() for word in _EXCLUDED_MODEL_WORDS):
                continue
            models.append(ProviderModel(provider=self.provider_type, id=model.id, name=model.id, source="OpenAI"))
        return models

    async def validate_connection(self) -> None:
        await self._client.models.list()

    async def _create(self, ctx: NativeContext, tools: list, settings):
        request: dict = {
            "model": self.model_id,
            "messages": ctx.messages,
            "max_tokens": settings.max_output_tokens,
            "temperature": settings.temperature,
            "top_p": settings.top_p,
        }
        if tools:
            request["tools"] = tools
        return await self._client.chat.completions.create(**request)

    def _convert_tools(self, specs: list[ToolSpec]) -> list[dict]:
        return [
            {
                "type": "function",
                "function": {
                    "name": spec.qualified_name,
                    "description": spec.description,
                    "parameters": spec.parameters,
                },
            }
            for spec in specs
        ]

    # --- Message conversion ---

    def _append_text(self, ctx: NativeContext, role: str, text: str) -> None:
        ctx.messages.append({"role": role, "content": text})

    def _append_turn(self, ctx: NativeContext, turn: Turn) -> None:
        # Each tool message must directly follow the assistant message that carries its call
        current: dict | None = None
        tool_messages: list[dict] = []

        def flush():
            nonlocal current, tool_messages
            if current is not None:
                ctx.messages.append(current)
                ctx.messages.extend(tool_messages)
            current, tool_messages = None, []

        for result in turn.results:
            match result:
                case TextResult(text=text):
                    flush()
                    current = {"role": "assistant", "content": text}
                case ToolCallResult():
                    if current is None:
                        current = {"role": "assistant", "content": None}
                    current.setdefault("tool_calls", []).append(
                        {
                            "id": result.tool_call_id,
                            "type": "function",
                            "function": {
                                "name": qualified_tool_name(result.server_name, result.tool_name),
                                "arguments": json.dumps(result.args or {}),
                            },
                        }
                    )
                    tool_messages.append(
                        {"role": "tool", "tool_call_id": result.tool_call_id, "content": result.output}
                    )
        flush()

    # --- Response parsing ---

    def _parse_assistant(self, message) -> list:
        message = as_dict(message)
        parts: list = []
        if content := message.get("content"):
            parts.append(TextResult(content))
        for tc in message.get("tool_calls") or []:
            fn = tc["function"]
            parts.append(ToolUse(name=fn["name"], args=parse_args(fn.get("arguments")), tool_call_id=tc.get("id")))
        return parts

    def from_native(self, response) -> Completion:
        data = as_dict(response)
        choice = data["choices"][0]
        usage = data.get("usage") or {}
        return Completion(
            parts=tuple(self._parse_assistant(choice["message"])),
            input_tokens=usage.get("prompt_tokens"),
            output_tokens=usage.get("completion_tokens"),
            truncated=choice.get("finish_reason") == "length",
        )
