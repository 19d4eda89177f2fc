from typing import Any, ClassVar

import pytest
from pydantic import BaseModel

from turnloop.conversation import TextResult, ToolCallResult, Turn
from turnloop.providers import (
    Completion,
    NativeContext,
    ProviderInfo,
    ProviderModel,
    ProviderRegistry,
    ProviderType,
    ToolUse,
)
from turnloop.providers.base import ProviderAdapter
from turnloop.session import ChatSession, SessionSettings
from turnloop.tools import StaticToolPolicy, ToolOutput, ToolSpec, qualified_tool_name


class FakeToolServer:
    """Tool provider that records every call instead of touching anything real."""

    def __init__(self, specs: list[ToolSpec] | None = None, fail: set[str] | None = None):
        self.specs = specs or [
            ToolSpec("fs", "readFile", "Read a file", {"properties": {"path": {"type": "string"}}, "required": ["path"]}),
            ToolSpec("fs", "writeFile", "Write a file"),
        ]
        self.fail = fail or set()
        self.calls: list[tuple[str, str, dict | None]] = []

    async def list_tools(self) -> list[ToolSpec]:
        return list(self.specs)

    async def call_tool(self, server_name: str, tool_name: str, args: dict[str, Any] | None) -> ToolOutput:
        self.calls.append((server_name, tool_name, args))
        if tool_name in self.fail:
            raise RuntimeError(f"{tool_name} exploded")
        return ToolOutput(output=f"contents of {(args or {}).get('path', '?')}", elapsed_time_ms=3)

    def call_count(self, tool_name: str | None = None) -> int:
        return sum(1 for _, name, _ in self.calls if tool_name is None or name == tool_name)


class ScriptedConfig(BaseModel):
    pass


class ScriptedAdapter(ProviderAdapter):
    """Backend that replays a fixed list of completions; the last one repeats."""

    provider_type = ProviderType.TEST
    display_name = "Scripted"
    default_model = "scripted-1"
    config_model = ScriptedConfig
    info = ProviderInfo(name="Scripted", description="Replays canned completions")
    script: ClassVar[list] = []

    def __init__(self, config: BaseModel, model_id: str | None = None):
        super().__init__(config, model_id)
        self.remaining = list(type(self).script)
        self.requests: list[dict] = []

    async def list_models(self) -> list[ProviderModel]:
        return [ProviderModel(provider=self.provider_type, id=self.default_model, name="Scripted 1")]

    async def validate_connection(self) -> None:
        pass

    async def _create(self, ctx: NativeContext, tools: list, settings) -> Any:
        self.requests.append({"system": ctx.system, "messages": list(ctx.messages), "tools": list(tools)})
        step = self.remaining.pop(0) if len(self.remaining) > 1 else self.remaining[0]
        if isinstance(step, Exception):
            raise step
        return step

    def from_native(self, response: Completion) -> Completion:
        return response

    def _convert_tools(self, specs: list[ToolSpec]) -> list:
        return [spec.qualified_name for spec in specs]

    def _append_text(self, ctx: NativeContext, role: str, text: str) -> None:
        ctx.messages.append((role, text))

    def _append_turn(self, ctx: NativeContext, turn: Turn) -> None:
        for result in turn.results:
            match result:
                case TextResult(text=text):
                    ctx.messages.append(("assistant", text))
                case ToolCallResult():
                    ctx.messages.append(("tool_use", qualified_tool_name(result.server_name, result.tool_name)))
                    ctx.messages.append(("tool_result", result.output))


def scripted(
    *steps, name: str = "Scripted", provider_type: ProviderType = ProviderType.TEST
) -> type[ScriptedAdapter]:
    return type(
        f"{name}Adapter",
        (ScriptedAdapter,),
        {"script": list(steps), "display_name": name, "provider_type": provider_type},
    )


def text(value: str, **kwargs) -> Completion:
    return Completion(parts=(TextResult(value),), input_tokens=10, output_tokens=5, **kwargs)


def tool_call(name: str = "fs_readFile", args: dict | None = None, tool_call_id: str | None = None, **kwargs) -> Completion:
    return Completion(
        parts=(ToolUse(name=name, args=args if args is not None else {"path": "file.txt"}, tool_call_id=tool_call_id),),
        input_tokens=10,
        output_tokens=5,
        **kwargs,
    )


def make_session(
    *steps,
    tools: FakeToolServer | None = None,
    policy: StaticToolPolicy | None = None,
    adapters: dict | None = None,
    **settings,
) -> ChatSession:
    registry = ProviderRegistry(adapters=adapters or {ProviderType.TEST: scripted(*steps)})
    return ChatSession(
        providers=registry,
        tools=tools if tools is not None else FakeToolServer(),
        policy=policy if policy is not None else StaticToolPolicy(),
        settings=SessionSettings(**settings),
        provider_type=ProviderType.TEST,
    )


@pytest.fixture
def tool_server() -> FakeToolServer:
    return FakeToolServer()
