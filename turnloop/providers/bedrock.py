import asyncio

import boto3
from pydantic import BaseModel

from turnloop.conversation import TextResult, ToolCallResult, Turn
from turnloop.logging import get_logger
from turnloop.providers.base import ProviderAdapter
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

# Families that do not support the Converse API with tools
_EXCLUDED_MODEL_TERMS = (
    "titan",
    "instruct",
    "cohere.command-text",
    "cohere.command-light-text",
    "embed",
)


# Converse rejects blank text blocks
_EMPTY_TOOL_OUTPUT = "(no output)"


class BedrockConfig(BaseModel):
    access_key_id: str = "env://AWS_ACCESS_KEY_ID"
    secret_access_key: str = "env://AWS_SECRET_ACCESS_KEY"
    region: str = "us-east-1"


class BedrockAdapter(ProviderAdapter):
    provider_type = ProviderType.BEDROCK
    display_name = "Bedrock"
    default_model = "amazon.nova-pro-v1:0"
    lifts_system_prompt = True
    config_model = BedrockConfig
    info = ProviderInfo(
        name="Amazon Bedrock",
        description=(
            "Amazon Bedrock is a fully managed service that offers a choice of high-performing "
            "foundation models from leading AI companies."
        ),
        website="https://aws.amazon.com/bedrock/",
        config_values=(
            ConfigValue(
                key="access_key_id",
                caption="AWS API access key ID to use for Bedrock",
                required=True,
                default="env://AWS_ACCESS_KEY_ID",
            ),
            ConfigValue(
                key="secret_access_key",
                caption="AWS secret access key to use for Bedrock",
                secret=True,
                required=True,
                default="env://AWS_SECRET_ACCESS_KEY",
            ),
            ConfigValue(key="region", caption="AWS region", default="us-east-1"),
        ),
    )

    def __init__(self, config: BedrockConfig, model_id: str | None = None):
        super().__init__(config, model_id)
        self._runtime = self._boto_client("bedrock-runtime")

    def _boto_client(self, service: str):
        return boto3.client(
            service,
            region_name=self.config.region,
            aws_access_key_id=self.config.access_key_id,
            aws_secret_access_key=self.config.secret_access_key,
        )

    async def list_models(self) -> list[ProviderModel]:
        client = self._boto_client("bedrock")
        response = await asyncio.to_thread(client.list_foundation_models)
        models = []
        for summary in response.get("modelSummaries", []):
            model_id = summary.get("modelId", "")
            if summary.get("modelLifecycle", {}).get("status") != "ACTIVE":
                continue
            if "ON_DEMAND" not in summary.get("inferenceTypesSupported", []):
                continue
            if any(term in model_id.lower() for term in _EXCLUDED_MODEL_TERMS):
                continue
            models.append(
                ProviderModel(
                    provider=self.provider_type,
                    id=model_id,
                    name=summary.get("modelName") or model_id,
                    source=summary.get("providerName") or "Unknown",
                )
            )
        return models

    async def validate_connection(self) -> None:
        client = self._boto_client("bedrock")
        await asyncio.to_thread(client.list_foundation_models)

    async def _create(self, ctx: NativeContext, tools: list, settings):
        request: dict = {
            "modelId": self.model_id,
            "messages": ctx.messages,
            "inferenceConfig": {
                "maxTokens": settings.max_output_tokens,
                "temperature": settings.temperature,
                "topP": settings.top_p,
            },
        }
        if ctx.system:
            request["system"] = [{"text": ctx.system}]
        if tools:
            request["toolConfig"] = {"tools": tools}
        # boto3 is synchronous
        return await asyncio.to_thread(self._runtime.converse, **request)

    def _convert_tools(self, specs: list[ToolSpec]) -> list[dict]:
        return [
            {
                "toolSpec": {
                    "name": spec.qualified_name,
                    "description": spec.description or spec.qualified_name,
                    "inputSchema": {"json": spec.parameters},
                }
            }
            for spec in specs
        ]

    # --- Message conversion ---

    def _push(self, ctx: NativeContext, role: str, blocks: list[dict]) -> None:
        if not blocks:
            return
        # Converse requires strict user/assistant alternation
        if ctx.messages and ctx.messages[-1]["role"] == role:
            ctx.messages[-1]["content"].extend(blocks)
            return
        ctx.messages.append({"role": role, "content": list(blocks)})

    def _append_text(self, ctx: NativeContext, role: str, text: str) -> None:
        if not text:
            return
        native_role = "assistant" if role == "assistant" else "user"
        self._push(ctx, native_role, [{"text": text}])

    def _append_turn(self, ctx: NativeContext, turn: Turn) -> None:
        assistant_blocks: list[dict] = []
        result_blocks: list[dict] = []
        for result in turn.results:
            match result:
                case TextResult(text=text):
                    if text:
                        assistant_blocks.append({"text": text})
                case ToolCallResult():
                    assistant_blocks.append(
                        {
                            "toolUse": {
                                "toolUseId": result.tool_call_id,
                                "name": qualified_tool_name(result.server_name, result.tool_name),
                                "input": result.args or {},
                            }
                        }
                    )
                    tool_result = {
                        "toolUseId": result.tool_call_id,
                        "content": [{"text": result.output or _EMPTY_TOOL_OUTPUT}],
                    }
                    if result.error:
                        tool_result["status"] = "error"
                    result_blocks.append({"toolResult": tool_result})
        self._push(ctx, "assistant", assistant_blocks)
        self._push(ctx, "user", result_blocks)

    # --- Response parsing ---

    def _parse_assistant(self, message: dict) -> list:
        parts: list = []
        for block in (message or {}).get("content") or []:
            if "text" in block:
                parts.append(TextResult(block["text"]))
            elif tool_use := block.get("toolUse"):
                parts.append(
                    ToolUse(
                        name=tool_use["name"],
                        args=tool_use.get("input") or {},
                        tool_call_id=tool_use.get("toolUseId"),
                    )
                )
        return parts

    def from_native(self, response: dict) -> Completion:
        usage = response.get("usage") or {}
        message = (response.get("output") or {}).get("message")
        return Completion(
            parts=tuple(self._parse_assistant(message)),
            input_tokens=usage.get("inputTokens"),
            output_tokens=usage.get("outputTokens"),
            truncated=response.get("stopReason") == "max_tokens",
        )
