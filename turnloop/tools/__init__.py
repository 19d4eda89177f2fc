from turnloop.tools.base import (
    Tool,
    ToolOutput,
    ToolProvider,
    ToolSpec,
    qualified_tool_name,
    split_tool_name,
)
from turnloop.tools.policy import ServerToolConfig, StaticToolPolicy, ToolPolicy
from turnloop.tools.registry import ToolRegistry

__all__ = [
    "ServerToolConfig",
    "StaticToolPolicy",
    "Tool",
    "ToolOutput",
    "ToolPolicy",
    "ToolProvider",
    "ToolRegistry",
    "ToolSpec",
    "qualified_tool_name",
    "split_tool_name",
]
