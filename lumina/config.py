"""
Settings persistence, environment keys and the Groq usage counter.
"""
import json
import logging
import os
import threading
from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Optional, Dict, Any, Callable, Union

import dotenv

from .types import Provider

# Load environment variables
dotenv.load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini:gemini-2.5-flash-lite"

# Cumulative Groq tokens after which the client-side counter starts over
GROQ_USAGE_THRESHOLD = 100_000

ENDPOINTS: Dict[str, str] = {
    "gemini": "https://generativelanguage.googleapis.com",
    "groq": "https://api.groq.com/openai/v1",
    "openrouter": "https://openrouter.ai/api/v1",
}

# Environment variables checked, in order, when settings hold no key
ENV_KEYS: Dict[str, tuple] = {
    "gemini": ("GEMINI_API_KEY", "GOOGLE_API_KEY"),
    "groq": ("GROQ_API_KEY",),
    "openrouter": ("OPENROUTER_API_KEY",),
}


def env_api_key(provider: Provider) -> str:
    """
    Return the environment-configured key for a provider, or "".
    """
    for name in ENV_KEYS.get(provider, ()):
        value = os.getenv(name)
        if value:
            return value
    return ""


def default_settings_path() -> Path:
    home = os.getenv("LUMINA_HOME")
    base = Path(home) if home else Path.home() / ".lumina"
    return base / "settings.json"


@dataclass
class Settings:
    """
    User settings the AI layer reads.

    Model strings use the `provider:modelId` format, e.g.
    `groq:llama-3.3-70b-versatile`.
    """
    name: str = "Student"
    academic_level: str = "High School"
    text_model: str = DEFAULT_MODEL
    media_model: str = DEFAULT_MODEL
    gemini_api_key: str = ""
    groq_api_key: str = ""
    openrouter_api_key: str = ""
    groq_usage: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def api_key_for(self, provider: Provider) -> str:
        return getattr(self, f"{provider}_api_key", "") or ""


class UsageCounter:
    """
    Thread-safe cumulative token counter with a reset threshold.

    Attributes:
        threshold: Total at which the counter resets to zero.
        on_change: Optional callback receiving the new total after each add.
    """

    def __init__(
        self,
        initial: int = 0,
        threshold: int = GROQ_USAGE_THRESHOLD,
        on_change: Optional[Callable[[int], None]] = None,
    ):
        self.threshold = threshold
        self.on_change = on_change
        self._value = initial
        self._lock = threading.Lock()

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def add(self, tokens: int) -> int:
        """
        Atomically add `tokens` and return the new total.
        """
        if tokens <= 0:
            return self.value
        with self._lock:
            self._value += tokens
            if self._value >= self.threshold:
                logger.info("Groq usage reached %d tokens, resetting counter", self._value)
                self._value = 0
            total = self._value
        if self.on_change:
            self.on_change(total)
        return total


class SettingsStore:
    """
    JSON-file backed settings persistence.

    The store is the single writer of the Groq usage counter: its `usage`
    counter persists every change back into the settings file.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path else default_settings_path()
        self._write_lock = threading.Lock()
        self.usage = UsageCounter(
            initial=self.get_settings().groq_usage,
            on_change=self._persist_usage,
        )

    def get_settings(self) -> Settings:
        """
        Load settings, falling back to defaults when the file is missing or unreadable.
        """
        if not self.path.exists():
            return Settings()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not read settings from %s: %s", self.path, e)
            return Settings()
        if not isinstance(data, dict):
            return Settings()
        return Settings.from_dict(data)

    def save_settings(self, settings: Settings) -> None:
        with self._write_lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(settings.to_dict(), indent=2), encoding="utf-8")

    def update_groq_usage(self, tokens: int) -> int:
        return self.usage.add(tokens)

    def _persist_usage(self, total: int) -> None:
        settings = self.get_settings()
        settings.groq_usage = total
        self.save_settings(settings)
