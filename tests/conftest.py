from typing import Callable

import pytest

from lumina.config import Settings, SettingsStore


@pytest.fixture(autouse=True)
def clear_env_keys(monkeypatch):
    """Keep real keys from the environment (or a .env file) out of tests."""
    for name in ("GEMINI_API_KEY", "GOOGLE_API_KEY", "GROQ_API_KEY", "OPENROUTER_API_KEY"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def make_store(tmp_path) -> Callable[..., SettingsStore]:
    """Create a SettingsStore in a temp dir, pre-populated with settings."""
    def _make(**overrides) -> SettingsStore:
        SettingsStore(tmp_path / "settings.json").save_settings(Settings(**overrides))
        return SettingsStore(tmp_path / "settings.json")
    return _make


@pytest.fixture
def groq_settings():
    return {"text_model": "groq:llama-3.3-70b-versatile", "groq_api_key": "gsk-test"}
