import ollama
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


class OllamaConfig(BaseModel):
    host: str = "http://127.0.0.1:11434"


class OllamaAdapter(ProviderAdapter):
    """Ollama has no tool call ids; calls and results are correlated by order."""

    provider_type = ProviderType.OLLAMA
    display_name = "Ollama"
    default_model = "llama3.2"
    config_model = OllamaConfig
    info = ProviderInfo(
        name="Ollama",
        description="Run open-source large language models locally on your own hardware",
        website="https://ollama.ai/",
        config_values=(ConfigValue(key="host", caption="Ollama host", default="http://127.0.0.1:11434"),),
    )

    def __init__(self, config: OllamaConfig, model_id: str | None = None):
        super().__init__(config, model_id)
        self._client = ollama.AsyncClient(host=config.host)
        _logger.info("Ollama client initialized with host: %s", config.host)

    async def list_models(self) -> list[ProviderModel]:
        response = await self._client.list()
        models = []
        for model in response.models:
            if not model.model:
                continue
            family = model.details.family if model.details and model.details.family else "Unknown"
            models.append(ProviderModel(provider=self.provider_type, id=model.model, name=model.model, source=family))
        return models

    async def validate_connection(self) -> None:
        await self._client.list()

    async def _create(self, ctx: NativeContext, tools: list, settings):
        return await self._client.chat(
            model=self.model_id,
            messages=ctx.messages,
            tools=tools or None,
            options={
                "num_predict": settings.max_output_tokens,
                "temperature": settings.temperature,
                "top_p": settings.top_p,
            },
        )

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
        for result in turn.results:
            match result:
                case TextResult(text=text):
                    ctx.messages.append({"role": "assistant", "content": text})
                case ToolCallResult():
                    ctx.messages.append(
                        {
                            "role": "assistant",
                            "content": "",
                            "tool_calls": [
                                {
                                    "function": {
                                        "name": qualified_tool_name(result.server_name, result.tool_name),
                                        "arguments": result.args or {},
                                    }
                                }
                            ],
                        }
                    )
                    ctx.messages.append({"role": "tool", "content": result.output})

    # --- Response parsing ---

    def _parse_assistant(self, message) -> list:
        message = as_dict(message)
        parts: list = []
        if content := message.get("content"):
            parts.append(TextResult(content))
        for tc in message.get("tool_calls") or []:
            fn = as_dict(tc)["function"]
            parts.append(ToolUse(name=fn["name"], args=parse_args(fn.get("arguments"))))
        return parts

    def from_native(self, response) -> Completion:
        data = as_dict(response)
        return Completion(
            parts=tuple(self._parse_assistant(data.get("message"))),
            input_tokens=data.get("prompt_eval_count"),
            output_tokens=data.get("eval_count"),
            truncated=data.get("done_reason") == "length",
        )
