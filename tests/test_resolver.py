import pytest

from lumina.config import Settings, ENDPOINTS
from lumina.errors import MissingCredential
from lumina.resolver import DEFAULT_MODELS, parse_model_string, resolve_provider


def no_env(provider):
    return ""


class TestParseModelString:

    @pytest.mark.parametrize("value, expected", [
        ("groq:llama-3.3-70b-versatile", ("groq", "llama-3.3-70b-versatile")),
        ("openrouter:google/gemma-3-27b-it:free", ("openrouter", "google/gemma-3-27b-it:free")),
        ("gemini:gemini-2.5-flash", ("gemini", "gemini-2.5-flash")),
        ("gemini-2.5-flash", ("gemini", "gemini-2.5-flash")),
        ("groq", ("groq", "")),
        ("", ("gemini", "")),
    ])
    def test_parse(self, value, expected):
        assert parse_model_string(value) == expected


class TestResolveProvider:

    def test_settings_key_wins_over_env(self):
        settings = Settings(text_model="groq:llama-3.3-70b-versatile", groq_api_key="from-settings")
        config = resolve_provider(settings, "text", env_lookup=lambda p: "from-env")
        assert config.provider == "groq"
        assert config.api_key == "from-settings"
        assert config.endpoint_url == ENDPOINTS["groq"]

    def test_env_fallback(self):
        settings = Settings(text_model="openrouter:meta-llama/llama-3.3-70b-instruct:free")
        config = resolve_provider(settings, "json", env_lookup=lambda p: f"{p}-env-key")
        assert config.api_key == "openrouter-env-key"

    def test_env_fallback_reads_environment(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_API_KEY", "AIza-test")
        config = resolve_provider(Settings(), "text")
        assert config.provider == "gemini"
        assert config.api_key == "AIza-test"

    def test_missing_credential_names_provider(self):
        settings = Settings(text_model="groq:llama-3.3-70b-versatile")
        with pytest.raises(MissingCredential, match="Groq API key is missing") as exc_info:
            resolve_provider(settings, "text", env_lookup=no_env)
        assert exc_info.value.provider == "groq"

    def test_vision_uses_media_model(self):
        settings = Settings(
            text_model="groq:llama-3.3-70b-versatile",
            media_model="openrouter:google/gemma-3-27b-it:free",
            groq_api_key="g",
            openrouter_api_key="o",
        )
        config = resolve_provider(settings, "vision", env_lookup=no_env)
        assert config.provider == "openrouter"
        assert config.model_id == "google/gemma-3-27b-it:free"

    def test_vision_swaps_non_vision_model(self):
        settings = Settings(media_model="groq:llama-3.3-70b-versatile", groq_api_key="g")
        config = resolve_provider(settings, "vision", env_lookup=no_env)
        assert config.provider == "groq"
        assert config.model_id == DEFAULT_MODELS["groq"]["vision"]

    def test_bare_provider_gets_default_model(self):
        settings = Settings(text_model="groq", groq_api_key="g")
        config = resolve_provider(settings, "text", env_lookup=no_env)
        assert config.model_id == DEFAULT_MODELS["groq"]["text"]

    def test_api_key_hidden_from_repr(self):
        settings = Settings(gemini_api_key="super-secret")
        config = resolve_provider(settings, "text", env_lookup=no_env)
        assert "super-secret" not in repr(config)
