from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar, Protocol

from pydantic import BaseModel

TOOL_NAME_SEPARATOR = "_"


def qualified_tool_name(server_name: str, tool_name: str) -> str:
    # results for names that could not be split carry no server
    if not server_name:
        return tool_name
    return f"{server_name}{TOOL_NAME_SEPARATOR}{tool_name}"


def split_tool_name(name: str) -> tuple[str, str]:
    """Split ``server_tool`` at the first separator into (server, tool)."""
    server_name, sep, tool_name = name.partition(TOOL_NAME_SEPARATOR)
    if not sep or not server_name or not tool_name:
        raise ValueError(f"Invalid tool name format: {name}. Expected format: serverName_toolName")
    return server_name, tool_name


def _inline_refs(schema: dict) -> dict:
    """Resolve $ref pointers by inlining definitions from $defs."""
    defs = schema.get("$defs", {})
    if not defs:
        return schema

    def _resolve(node: Any) -> Any:
        if isinstance(node, dict):
            if "$ref" in node:
                # "#/$defs/ModelName" -> "ModelName"
                ref_name = node["$ref"].rsplit("/", 1)[-1]
                if ref_name in defs:
                    return _resolve(defs[ref_name])
                return node
            return {k: _resolve(v) for k, v in node.items() if k != "$defs"}
        if isinstance(node, list):
            return [_resolve(item) for item in node]
        return node

    return _resolve(schema)


@dataclass(frozen=True)
class ToolSpec:
    server_name: str
    tool_name: str
    description: str = ""
    input_schema: dict | None = None

    @property
    def qualified_name(self) -> str:
        return qualified_tool_name(self.server_name, self.tool_name)

    @property
    def parameters(self) -> dict:
        schema = self.input_schema or {}
        return {
            "type": "object",
            "properties": schema.get("properties", {}),
            "required": schema.get("required", []),
        }


@dataclass(frozen=True)
class ToolOutput:
    output: str | dict | list
    elapsed_time_ms: float = 0
    error: str | None = None


class ToolProvider(Protocol):
    """Lists the tools a backend may call and executes them."""

    async def list_tools(self) -> list[ToolSpec]: ...

    async def call_tool(self, server_name: str, tool_name: str, args: dict[str, Any] | None) -> ToolOutput: ...


class Tool(ABC):
    name: str
    description: str
    input_model: ClassVar[type[BaseModel] | None] = None

    @abstractmethod
    async def execute(self, **kwargs: Any) -> str | dict | list: ...

    def input_schema(self) -> dict:
        if self.input_model is None:
            return {"type": "object", "properties": {}, "required": []}
        json_schema = _inline_refs(self.input_model.model_json_schema())
        return {
            "type": "object",
            "properties": json_schema.get("properties", {}),
            "required": json_schema.get("required", []),
        }

    def spec(self, server_name: str) -> ToolSpec:
        return ToolSpec(
            server_name=server_name,
            tool_name=self.name,
            description=self.description,
            input_schema=self.input_schema(),
        )
