from typing import Protocol

from pydantic import BaseModel, Field


class ToolPolicy(Protocol):
    """Per-server and per-tool approval and visibility settings."""

    def tool_override(self, server_name: str, tool_name: str) -> bool | None: ...

    def server_default(self, server_name: str) -> bool | None: ...

    def is_tool_enabled(self, server_name: str, tool_name: str) -> bool: ...


class PermissionRequiredConfig(BaseModel):
    # None means the server has no opinion and the session setting decides
    server_default: bool | None = None
    tools: dict[str, bool] = Field(default_factory=dict)


class EnabledConfig(BaseModel):
    server_default: bool = True
    tools: dict[str, bool] = Field(default_factory=dict)


class ServerToolConfig(BaseModel):
    permission_required: PermissionRequiredConfig = Field(default_factory=PermissionRequiredConfig)
    enabled: EnabledConfig = Field(default_factory=EnabledConfig)

    def is_tool_enabled(self, tool_name: str) -> bool:
        return self.enabled.tools.get(tool_name, self.enabled.server_default)


class StaticToolPolicy:
    def __init__(self, servers: dict[str, ServerToolConfig] | None = None):
        self.servers = dict(servers or {})

    @classmethod
    def from_dict(cls, raw: dict[str, dict]) -> "StaticToolPolicy":
        return cls({name: ServerToolConfig.model_validate(cfg) for name, cfg in raw.items()})

    def tool_override(self, server_name: str, tool_name: str) -> bool | None:
        config = self.servers.get(server_name)
        if config is None:
            return None
        return config.permission_required.tools.get(tool_name)

    def server_default(self, server_name: str) -> bool | None:
        config = self.servers.get(server_name)
        return config.permission_required.server_default if config else None

    def is_tool_enabled(self, server_name: str, tool_name: str) -> bool:
        config = self.servers.get(server_name)
        return config.is_tool_enabled(tool_name) if config else True
