import json

import pytest
import structlog

from turnloop import config as config_module
from turnloop.config import Config, get_config, load_user_settings, save_user_settings
from turnloop.logging import configure_logging, get_logger, obfuscate
from turnloop.providers import ProviderRegistry
from turnloop.session import SessionStatus, ToolPermission, create_session

_CREDENTIAL_VARS = (
    "ANTHROPIC_API_KEY",
    "OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "GOOGLE_API_KEY",
    "GEMINI_API_KEY",
    "OLLAMA_HOST",
    "AWS_ACCESS_KEY_ID",
    "AWS_SECRET_ACCESS_KEY",
    "AWS_REGION",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in _CREDENTIAL_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(config_module, "TURNLOOP_DIR", tmp_path)
    monkeypatch.setattr(config_module, "SETTINGS_PATH", tmp_path / "settings.json")


class TestProviderConfig:
    def test_reads_standard_env_vars(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant")
        monkeypatch.setenv("OPENAI_BASE_URL", "http://localhost:8000/v1")
        config = Config(_env_file=None)

        assert config.provider_config("claude") == {"api_key": "sk-ant"}
        assert config.provider_config("openai") == {"base_url": "http://localhost:8000/v1"}

    def test_google_api_key_alias(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_API_KEY", "g-key")
        assert Config(_env_file=None).provider_config("gemini") == {"api_key": "g-key"}

    def test_bedrock_region_default(self):
        assert Config(_env_file=None).provider_config("bedrock") == {"region": "us-east-1"}

    def test_overrides_win(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant")
        config = Config(_env_file=None, providers={"claude": {"api_key": "env://TEAM_KEY"}})
        assert config.provider_config("claude") == {"api_key": "env://TEAM_KEY"}

    def test_unknown_provider_is_empty(self):
        assert Config(_env_file=None).provider_config("test") == {}

    def test_registry_from_config(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-from-env")
        registry = ProviderRegistry.from_config(Config(_env_file=None))
        assert registry.create("claude").config.api_key == "sk-ant-from-env"


class TestSessionDefaults:
    def test_prefixed_env_vars(self, monkeypatch):
        monkeypatch.setenv("TURNLOOP_MAX_CHAT_TURNS", "3")
        monkeypatch.setenv("TURNLOOP_TOOL_PERMISSION", "never")
        settings = Config(_env_file=None).session_settings()
        assert settings.max_chat_turns == 3
        assert settings.tool_permission == ToolPermission.NEVER

    def test_empty_system_prompt_is_none(self):
        assert Config(_env_file=None, system_prompt="").system_prompt is None

    def test_zero_temperature_raises_top_p(self):
        settings = Config(_env_file=None, temperature=0, top_p=0).session_settings()
        assert settings.top_p == 0.01


class TestUserSettings:
    def test_missing_file(self):
        assert load_user_settings() == {}

    @pytest.mark.parametrize("content", ["not json", "[1, 2]"])
    def test_unusable_file(self, content):
        config_module.SETTINGS_PATH.write_text(content)
        assert load_user_settings() == {}

    def test_save_then_load(self):
        save_user_settings({"provider": "ollama", "model": "llama3.2"})
        assert json.loads(config_module.SETTINGS_PATH.read_text())["provider"] == "ollama"
        assert load_user_settings() == {"provider": "ollama", "model": "llama3.2"}

    def test_get_config_applies_persisted_keys(self):
        save_user_settings({"max_chat_turns": 7, "provider": "test", "unrelated": True})
        config = get_config()
        assert config.max_chat_turns == 7
        assert config.provider == "test"


class TestObfuscate:
    def test_short(self):
        assert obfuscate("abc") == "***"

    def test_long(self):
        assert obfuscate("sk-ant-1234567890") == "sk-a*********7890"


class TestCreateSessionFromConfig:
    @pytest.mark.asyncio
    async def test_uses_persisted_defaults(self, monkeypatch):
        monkeypatch.delenv("TURNLOOP_PROVIDER", raising=False)
        save_user_settings({"provider": "test", "max_chat_turns": 4, "log_level": "info"})

        session = create_session()

        assert session.status == SessionStatus.READY
        assert session.model_id == "frosty1.0"
        assert session.settings.max_chat_turns == 4
        reply = await session.handle_message("hello")
        assert reply.turns[-1].text.startswith("Happy Birthday! (maxChatTurns: 4,")
        await session.close()

    def test_no_default_provider(self, monkeypatch):
        monkeypatch.delenv("TURNLOOP_PROVIDER", raising=False)
        session = create_session()
        assert session.status == SessionStatus.NO_MODEL


class TestConfigureLogging:
    @pytest.fixture(autouse=True)
    def reset_structlog(self):
        yield
        structlog.reset_defaults()

    def test_level_comes_from_config(self, capsys):
        configure_logging(Config(_env_file=None, log_level="warning"))
        logger = get_logger("turnloop.test")
        logger.info("quiet %s", "info")
        logger.warning("loud %s", "warning")

        err = capsys.readouterr().err
        assert "loud warning" in err
        assert "quiet info" not in err

    def test_defaults_to_persisted_config(self, capsys):
        save_user_settings({"log_level": "debug"})
        configure_logging()
        get_logger("turnloop.test").debug("visible %d", 1)
        assert "visible 1" in capsys.readouterr().err

    def test_creating_a_session_leaves_logging_alone(self, monkeypatch):
        monkeypatch.delenv("TURNLOOP_PROVIDER", raising=False)
        before = structlog.get_config()
        create_session()
        assert structlog.get_config() == before
