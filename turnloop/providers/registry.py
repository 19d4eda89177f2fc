from typing import TYPE_CHECKING

from pydantic import ValidationError

from turnloop.errors import ConfigurationError
from turnloop.logging import get_logger, obfuscate
from turnloop.providers.anthropic import ClaudeAdapter
from turnloop.providers.base import ProviderAdapter
from turnloop.providers.bedrock import BedrockAdapter
from turnloop.providers.gemini import GeminiAdapter
from turnloop.providers.mock import FrostyAdapter
from turnloop.providers.ollama import OllamaAdapter
from turnloop.providers.openai import OpenAIAdapter
from turnloop.providers.types import ProviderInfo, ProviderType, ValidationResult
from turnloop.secrets import resolve_secret

if TYPE_CHECKING:
    from turnloop.config import Config

_logger = get_logger(__name__)

ADAPTERS: dict[ProviderType, type[ProviderAdapter]] = {
    ProviderType.TEST: FrostyAdapter,
    ProviderType.CLAUDE: ClaudeAdapter,
    ProviderType.OPENAI: OpenAIAdapter,
    ProviderType.GEMINI: GeminiAdapter,
    ProviderType.OLLAMA: OllamaAdapter,
    ProviderType.BEDROCK: BedrockAdapter,
}


def _format_validation_error(e: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(l) for l in err['loc'])}: {err['msg']}" if err.get("loc") else err["msg"] for err in e.errors()
    )


class ProviderRegistry:
    """Builds backend adapters from per-backend configuration values."""

    def __init__(
        self,
        configs: dict[str, dict[str, str]] | None = None,
        adapters: dict[ProviderType, type[ProviderAdapter]] | None = None,
    ):
        self._configs = {str(k): dict(v) for k, v in (configs or {}).items()}
        self._adapters = dict(adapters or ADAPTERS)

    @classmethod
    def from_config(cls, config: "Config") -> "ProviderRegistry":
        return cls({provider_type.value: config.provider_config(provider_type.value) for provider_type in ProviderType})

    def available(self) -> list[ProviderType]:
        return list(self._adapters)

    def _adapter_class(self, provider_type: ProviderType | str) -> type[ProviderAdapter]:
        try:
            return self._adapters[ProviderType(provider_type)]
        except (ValueError, KeyError):
            raise ConfigurationError(f"Unknown provider: {provider_type}") from None

    def info(self, provider_type: ProviderType | str) -> ProviderInfo:
        return self._adapter_class(provider_type).info

    def _log_config(self, adapter_cls: type[ProviderAdapter], values: dict) -> None:
        secret_keys = {v.key for v in adapter_cls.info.config_values if v.secret}
        shown = {k: obfuscate(str(v)) if k in secret_keys and v else v for k, v in values.items()}
        _logger.debug("%s provider config: %s", adapter_cls.display_name, shown)

    def create(self, provider_type: ProviderType | str, model_id: str | None = None) -> ProviderAdapter:
        adapter_cls = self._adapter_class(provider_type)
        name = adapter_cls.info.name
        raw = self._configs.get(adapter_cls.provider_type.value, {})

        try:
            declared = adapter_cls.config_model.model_validate(raw)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid {name} configuration: {_format_validation_error(e)}") from e

        resolved = {
            key: resolve_secret(value) if isinstance(value, str) else value
            for key, value in declared.model_dump().items()
        }
        missing = [v.key for v in adapter_cls.info.config_values if v.required and not resolved.get(v.key)]
        if missing:
            raise ConfigurationError(f"Missing required {name} configuration: {', '.join(missing)}")
        try:
            config = adapter_cls.config_model.model_validate(resolved)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid {name} configuration: {_format_validation_error(e)}") from e

        self._log_config(adapter_cls, resolved)
        try:
            adapter = adapter_cls(config, model_id)
        except Exception as e:
            raise ConfigurationError(f"Failed to initialize {name}: {e}") from e
        _logger.info("%s provider initialized with model %s", name, adapter.model_id)
        return adapter

    async def validate(self, provider_type: ProviderType | str) -> ValidationResult:
        try:
            adapter = self.create(provider_type)
        except ConfigurationError as e:
            return ValidationResult(is_valid=False, error=str(e))

        try:
            await adapter.validate_connection()
        except Exception as e:
            _logger.warning("%s validation failed: %s", adapter.info.name, e)
            return ValidationResult(
                is_valid=False,
                error=f"Failed to validate {adapter.info.name} configuration: {e}",
            )
        finally:
            await adapter.close()
        return ValidationResult(is_valid=True)
