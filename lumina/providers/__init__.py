from typing import Optional

import httpx

from .base import BaseLLMProvider
from .gemini import GeminiProvider
from .groq import GroqProvider
from .openai_compat import OpenAICompatProvider
from .openrouter import OpenRouterProvider
from ..config import UsageCounter
from ..types import ProviderConfig


def create_provider(
    config: ProviderConfig,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
    usage: Optional[UsageCounter] = None,
) -> BaseLLMProvider:
    """
    Build the provider implementation for a resolved config.
    """
    match config.provider:
        case "gemini":
            return GeminiProvider(config)
        case "groq":
            return GroqProvider(config, http_client=http_client, usage=usage)
        case "openrouter":
            return OpenRouterProvider(config, http_client=http_client)
        case _:
            raise ValueError(f"Unknown provider: {config.provider}")


__all__ = [
    "BaseLLMProvider",
    "GeminiProvider",
    "GroqProvider",
    "OpenAICompatProvider",
    "OpenRouterProvider",
    "create_provider",
]
