from pydantic import BaseModel

from turnloop.conversation import TextResult, ToolCallResult, Turn
from turnloop.providers.base import ProviderAdapter
from turnloop.providers.types import Completion, NativeContext, ProviderInfo, ProviderModel, ProviderType
from turnloop.tools import ToolSpec, qualified_tool_name


class FrostyConfig(BaseModel):
    pass


class FrostyAdapter(ProviderAdapter):
    """Offline backend that always wishes you a happy birthday."""

    provider_type = ProviderType.TEST
    display_name = "Test"
    default_model = "frosty1.0"
    config_model = FrostyConfig
    info = ProviderInfo(
        name="Test Provider",
        description="A simple mock provider implementation for testing purposes",
    )

    async def list_models(self) -> list[ProviderModel]:
        return [
            ProviderModel(
                provider=self.provider_type,
                id="frosty1.0",
                name="Frosty 1.0",
                description='Frosty is a simple mock provider that always responds with "Happy Birthday!"',
                source="Test",
            )
        ]

    async def validate_connection(self) -> None:
        pass

    async def _create(self, ctx: NativeContext, tools: list, settings) -> dict:
        text = (
            f"Happy Birthday! (maxChatTurns: {settings.max_chat_turns}, "
            f"maxOutputTokens: {settings.max_output_tokens}, "
            f"temperature: {settings.temperature:.2f}, topP: {settings.top_p:.2f})"
        )
        return {"text": text, "input_tokens": 420, "output_tokens": 69}

    def from_native(self, response: dict) -> Completion:
        return Completion(
            parts=(TextResult(response["text"]),),
            input_tokens=response["input_tokens"],
            output_tokens=response["output_tokens"],
        )

    def _convert_tools(self, specs: list[ToolSpec]) -> list:
        # Frosty never calls tools
        return []

    def _append_text(self, ctx: NativeContext, role: str, text: str) -> None:
        ctx.messages.append({"role": role, "content": text})

    def _append_turn(self, ctx: NativeContext, turn: Turn) -> None:
        for result in turn.results:
            match result:
                case TextResult(text=text):
                    ctx.messages.append({"role": "assistant", "content": text})
                case ToolCallResult():
                    name = qualified_tool_name(result.server_name, result.tool_name)
                    ctx.messages.append({"role": "tool", "name": name, "content": result.output})
