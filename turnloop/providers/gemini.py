import copy
import json

from google import genai
from google.genai import types
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


class GeminiConfig(BaseModel):
    api_key: str = "env://GOOGLE_API_KEY"


class GeminiAdapter(ProviderAdapter):
    provider_type = ProviderType.GEMINI
    display_name = "Gemini"
    default_model = "gemini-2.5-flash"
    lifts_system_prompt = True
    config_model = GeminiConfig
    info = ProviderInfo(
        name="Google Gemini",
        description=(
            "Google's Gemini models are multimodal AI systems that can understand and combine "
            "different types of information"
        ),
        website="https://deepmind.google/technologies/gemini/",
        config_values=(
            ConfigValue(
                key="api_key",
                caption="Google API key",
                secret=True,
                required=True,
                default="env://GOOGLE_API_KEY",
            ),
        ),
    )

    def __init__(self, config: GeminiConfig, model_id: str | None = None):
        super().__init__(config, model_id)
        self._client = genai.Client(api_key=config.api_key)

    async def list_models(self) -> list[ProviderModel]:
        models = []
        async for model in await self._client.aio.models.list():
            if "generateContent" not in (model.supported_actions or []):
                continue
            model_id = (model.name or "").removeprefix("models/")
            models.append(
                ProviderModel(
                    provider=self.provider_type,
                    id=model_id,
                    name=model.display_name or model_id,
                    description=model.description,
                    source="Google",
                )
            )
        return models

    async def validate_connection(self) -> None:
        await self._client.aio.models.list(config={"page_size": 1})

    async def _create(self, ctx: NativeContext, tools: list, settings):
        config = types.GenerateContentConfig(
            system_instruction=ctx.system,
            max_output_tokens=settings.max_output_tokens,
            temperature=settings.temperature,
            top_p=settings.top_p,
            tools=tools or None,
        )
        return await self._client.aio.models.generate_content(
            model=self.model_id,
            contents=ctx.messages,
            config=config,
        )

    # --- Tool schema ---

    def _convert_tools(self, specs: list[ToolSpec]) -> list[types.Tool]:
        declarations = [
            types.FunctionDeclaration(
                name=spec.qualified_name,
                description=spec.description,
                parameters=self._clean_schema(spec.parameters),
            )
            for spec in specs
        ]
        return [types.Tool(function_declarations=declarations)]

    def _clean_schema(self, schema: dict) -> dict:
        schema = copy.deepcopy(schema)
        self._clean_schema_recursive(schema)
        return schema

    def _clean_schema_recursive(self, schema: dict) -> None:
        for key in (
            "default",
            "exclusiveMaximum",
            "exclusiveMinimum",
            "additionalProperties",
            "$schema",
            "$defs",
            "title",
        ):
            schema.pop(key, None)

        if schema.get("type") == "string" and "format" in schema:
            if schema["format"] not in {"enum", "date-time"}:
                del schema["format"]

        for prop in (schema.get("properties") or {}).values():
            if isinstance(prop, dict):
                self._clean_schema_recursive(prop)

        if isinstance(schema.get("items"), dict):
            self._clean_schema_recursive(schema["items"])

        for key in ("anyOf", "allOf", "oneOf"):
            for item in schema.get(key) or []:
                if isinstance(item, dict):
                    self._clean_schema_recursive(item)

    # --- Message conversion ---

    def _push(self, ctx: NativeContext, role: str, parts: list[types.Part]) -> None:
        if not parts:
            return
        # Gemini requires strict user/model alternation
        if ctx.messages and ctx.messages[-1].role == role:
            ctx.messages[-1].parts.extend(parts)
            return
        ctx.messages.append(types.Content(role=role, parts=list(parts)))

    def _append_text(self, ctx: NativeContext, role: str, text: str) -> None:
        if not text:
            return
        native_role = "model" if role == "assistant" else "user"
        self._push(ctx, native_role, [types.Part(text=text)])

    def _append_turn(self, ctx: NativeContext, turn: Turn) -> None:
        model_parts: list[types.Part] = []
        response_parts: list[types.Part] = []
        for result in turn.results:
            match result:
                case TextResult(text=text):
                    if text:
                        model_parts.append(types.Part(text=text))
                case ToolCallResult():
                    name = qualified_tool_name(result.server_name, result.tool_name)
                    model_parts.append(types.Part(function_call=types.FunctionCall(name=name, args=result.args or {})))
                    response_parts.append(
                        types.Part(
                            function_response=types.FunctionResponse(
                                name=name,
                                response=self._response_payload(result),
                            )
                        )
                    )
        self._push(ctx, "model", model_parts)
        self._push(ctx, "user", response_parts)

    def _response_payload(self, result: ToolCallResult) -> dict:
        if result.error:
            return {"error": result.output}
        try:
            payload = json.loads(result.output)
        except (json.JSONDecodeError, TypeError):
            return {"result": result.output}
        return payload if isinstance(payload, dict) else {"result": payload}

    # --- Response parsing ---

    def _parse_assistant(self, content) -> list:
        parts: list = []
        for part in as_dict(content).get("parts") or []:
            part = as_dict(part)
            if part.get("thought"):
                continue
            if part.get("text") is not None:
                parts.append(TextResult(part["text"]))
            elif fc := part.get("function_call"):
                fc = as_dict(fc)
                parts.append(ToolUse(name=fc.get("name") or "", args=dict(fc.get("args") or {}), tool_call_id=fc.get("id")))
        return parts

    def from_native(self, response) -> Completion:
        data = as_dict(response)
        usage = data.get("usage_metadata") or {}
        candidates = data.get("candidates") or []
        if not candidates:
            _logger.warning("Gemini returned no candidates")
            parts, finish_reason = [], None
        else:
            candidate = as_dict(candidates[0])
            parts = self._parse_assistant(candidate.get("content"))
            finish_reason = candidate.get("finish_reason")
        return Completion(
            parts=tuple(parts),
            input_tokens=usage.get("prompt_token_count"),
            output_tokens=usage.get("candidates_token_count"),
            truncated=str(getattr(finish_reason, "value", finish_reason)) == "MAX_TOKENS",
        )
