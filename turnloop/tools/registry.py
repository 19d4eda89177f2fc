from typing import Any

from pydantic import ValidationError

from turnloop.logging import get_logger
from turnloop.tools.base import Tool, ToolOutput, ToolSpec
from turnloop.utils import ms_now

_logger = get_logger(__name__)


class ToolRegistry:
    """In-process tool provider. Tools are grouped under a server name."""

    def __init__(self):
        self._tools: dict[tuple[str, str], Tool] = {}

    def register(self, server_name: str, tool: Tool) -> None:
        self._tools[(server_name, tool.name)] = tool

    async def list_tools(self) -> list[ToolSpec]:
        return [tool.spec(server_name) for (server_name, _), tool in self._tools.items()]

    async def call_tool(self, server_name: str, tool_name: str, args: dict[str, Any] | None) -> ToolOutput:
        tool = self._tools.get((server_name, tool_name))
        if tool is None:
            return ToolOutput(output="", error=f"Unknown tool: {server_name}/{tool_name}")

        arguments = dict(args or {})
        if tool.input_model is not None:
            try:
                validated = tool.input_model(**arguments)
                arguments = validated.model_dump()
            except ValidationError as e:
                errors = "; ".join(
                    f"{'.'.join(str(l) for l in err['loc'])}: {err['msg']}" for err in e.errors() if err.get("loc")
                )
                return ToolOutput(output="", error=f"Invalid arguments: {errors}")

        start = ms_now()
        try:
            output = await tool.execute(**arguments)
        except Exception as e:
            _logger.warning("Tool %s/%s failed: %s", server_name, tool_name, e)
            return ToolOutput(output="", elapsed_time_ms=ms_now() - start, error=str(e) or type(e).__name__)
        return ToolOutput(output=output, elapsed_time_ms=ms_now() - start)

    def __contains__(self, key: tuple[str, str]) -> bool:
        return key in self._tools

    def __len__(self) -> int:
        return len(self._tools)
