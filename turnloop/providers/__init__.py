from turnloop.providers.base import ProviderAdapter
from turnloop.providers.registry import ADAPTERS, ProviderRegistry
from turnloop.providers.types import (
    Completion,
    ConfigValue,
    NativeContext,
    ProviderInfo,
    ProviderModel,
    ProviderType,
    ToolUse,
    ValidationResult,
)

__all__ = [
    "ADAPTERS",
    "Completion",
    "ConfigValue",
    "NativeContext",
    "ProviderAdapter",
    "ProviderInfo",
    "ProviderModel",
    "ProviderRegistry",
    "ProviderType",
    "ToolUse",
    "ValidationResult",
]
