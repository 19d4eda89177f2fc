import json
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from turnloop.logging import get_logger

if TYPE_CHECKING:
    from turnloop.session import SessionSettings

TURNLOOP_DIR = Path.home() / ".turnloop"
SETTINGS_PATH = TURNLOOP_DIR / "settings.json"

_logger = get_logger(__name__)


def load_user_settings() -> dict:
    if not SETTINGS_PATH.exists():
        return {}
    try:
        settings = json.loads(SETTINGS_PATH.read_text())
    except (json.JSONDecodeError, OSError):
        _logger.warning("Failed to load user settings", exc_info=True)
        return {}
    if not isinstance(settings, dict):
        _logger.warning("Ignoring user settings: expected a JSON object, got %s", type(settings).__name__)
        return {}
    return settings


def save_user_settings(settings: dict) -> None:
    TURNLOOP_DIR.mkdir(exist_ok=True)
    SETTINGS_PATH.write_text(json.dumps(settings, indent=2))


class Config(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TURNLOOP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        validate_assignment=True,
        populate_by_name=True,
    )

    # Provider credentials - read from standard env vars via aliases
    anthropic_api_key: str | None = Field(default=None, alias="ANTHROPIC_API_KEY")
    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    openai_base_url: str | None = Field(default=None, alias="OPENAI_BASE_URL")
    gemini_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("gemini_api_key", "GOOGLE_API_KEY", "GEMINI_API_KEY"),
    )
    ollama_host: str | None = Field(default=None, alias="OLLAMA_HOST")
    aws_access_key_id: str | None = Field(default=None, alias="AWS_ACCESS_KEY_ID")
    aws_secret_access_key: str | None = Field(default=None, alias="AWS_SECRET_ACCESS_KEY")
    aws_region: str = Field(default="us-east-1", alias="AWS_REGION")

    # Per-provider overrides, e.g. {"claude": {"api_key": "env://MY_KEY"}}
    providers: dict[str, dict[str, str]] = Field(default_factory=dict)

    # Default model selection for new sessions
    provider: str | None = None
    model: str | None = None

    # Session defaults
    max_chat_turns: int = 20
    max_output_tokens: int = 1000
    temperature: float = 0.5
    top_p: float = 0.5
    tool_permission: str = "tool"
    system_prompt: str | None = None

    log_level: str = "INFO"

    @field_validator("provider", "model", "system_prompt", mode="before")
    @classmethod
    def _empty_to_none(cls, v: str | None) -> str | None:
        if v in ("", "none"):
            return None
        return v

    def provider_config(self, provider_type: str) -> dict[str, str]:
        match provider_type:
            case "claude":
                values = {"api_key": self.anthropic_api_key}
            case "openai":
                values = {"api_key": self.openai_api_key, "base_url": self.openai_base_url}
            case "gemini":
                values = {"api_key": self.gemini_api_key}
            case "ollama":
                values = {"host": self.ollama_host}
            case "bedrock":
                values = {
                    "access_key_id": self.aws_access_key_id,
                    "secret_access_key": self.aws_secret_access_key,
                    "region": self.aws_region,
                }
            case _:
                values = {}
        config = {k: v for k, v in values.items() if v is not None}
        config.update(self.providers.get(provider_type, {}))
        return config

    def session_settings(self) -> "SessionSettings":
        from turnloop.session import SessionSettings

        return SessionSettings(
            max_chat_turns=self.max_chat_turns,
            max_output_tokens=self.max_output_tokens,
            temperature=self.temperature,
            top_p=self.top_p,
            tool_permission=self.tool_permission,
            system_prompt=self.system_prompt,
        )


PERSIST_KEYS = frozenset(
    {
        "providers",
        "provider",
        "model",
        "max_chat_turns",
        "max_output_tokens",
        "temperature",
        "top_p",
        "tool_permission",
        "system_prompt",
        "log_level",
    }
)


def get_config() -> Config:
    settings = load_user_settings()
    # Build config: init args (settings.json) > env vars > defaults
    overrides = {k: settings[k] for k in PERSIST_KEYS if k in settings}
    return Config(**overrides)
