from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, TypeAlias

from turnloop.conversation import TextResult


class ProviderType(StrEnum):
    TEST = "test"
    CLAUDE = "claude"
    OPENAI = "openai"
    GEMINI = "gemini"
    OLLAMA = "ollama"
    BEDROCK = "bedrock"


@dataclass(frozen=True)
class ProviderModel:
    provider: ProviderType
    id: str
    name: str
    description: str | None = None
    source: str = "provider"


@dataclass(frozen=True)
class ConfigValue:
    key: str
    caption: str
    secret: bool = False
    required: bool = False
    default: str | None = None


@dataclass(frozen=True)
class ProviderInfo:
    name: str
    description: str
    website: str | None = None
    config_values: tuple[ConfigValue, ...] = ()


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    error: str | None = None


@dataclass(frozen=True)
class ToolUse:
    """A tool invocation as the backend emitted it, under its qualified name."""

    name: str
    args: dict[str, Any] = field(default_factory=dict)
    tool_call_id: str | None = None


Part: TypeAlias = TextResult | ToolUse


@dataclass(frozen=True)
class Completion:
    parts: tuple[Part, ...] = ()
    input_tokens: int | None = None
    output_tokens: int | None = None
    truncated: bool = False

    @property
    def has_tool_use(self) -> bool:
        return any(isinstance(p, ToolUse) for p in self.parts)


@dataclass
class NativeContext:
    """Backend-native conversation being assembled for one request."""

    system: str | None = None
    messages: list = field(default_factory=list)
