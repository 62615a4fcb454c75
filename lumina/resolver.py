"""
Provider key resolution.

Turns user settings plus a requested capability into a `ProviderConfig`.
Pure selection: no network access and no writes.
"""
from typing import Tuple, Optional, Callable

from .config import Settings, ENDPOINTS, env_api_key
from .errors import MissingCredential
from .types import Capability, Provider, ProviderConfig

PROVIDERS: Tuple[Provider, ...] = ("gemini", "groq", "openrouter")

DEFAULT_MODELS = {
    "gemini": {
        "text": "gemini-2.5-flash-lite",
        "vision": "gemini-2.5-flash-lite",
    },
    "groq": {
        "text": "llama-3.3-70b-versatile",
        "vision": "meta-llama/llama-4-scout-17b-16e-instruct",
    },
    "openrouter": {
        "text": "meta-llama/llama-3.3-70b-instruct:free",
        "vision": "google/gemma-3-27b-it:free",
    },
}

# Substrings marking OpenAI-compatible models that accept image input
VISION_MODEL_MARKERS = ("vision", "llama-4", "gemma-3", "-vl", "gpt-4o", "gemini")


def is_vision_model(model_id: str) -> bool:
    lowered = model_id.lower()
    return any(marker in lowered for marker in VISION_MODEL_MARKERS)


def parse_model_string(value: Optional[str]) -> Tuple[Provider, str]:
    """
    Split a `provider:modelId` string.

    A bare model id (no known provider prefix) is treated as a Gemini model;
    a bare provider name yields an empty model id.

    Examples:
        >>> parse_model_string("groq:llama-3.3-70b-versatile")
        ('groq', 'llama-3.3-70b-versatile')
        >>> parse_model_string("openrouter:google/gemma-3-27b-it:free")
        ('openrouter', 'google/gemma-3-27b-it:free')
    """
    value = (value or "").strip()
    if not value:
        return "gemini", ""
    prefix, sep, rest = value.partition(":")
    if prefix.lower() in PROVIDERS:
        return prefix.lower(), rest.strip() if sep else ""
    return "gemini", value


def resolve_provider(
    settings: Settings,
    capability: Capability = "text",
    env_lookup: Callable[[Provider], str] = env_api_key,
) -> ProviderConfig:
    """
    Resolve the provider, model and key for one request.

    Provider choice is fixed by the selected model string (`media_model` for
    vision, `text_model` otherwise). Capability only influences the model id:
    vision requests on a non-vision OpenAI-compatible model fall back to the
    provider's default vision model.

    Args:
        settings: Current user settings.
        capability: "text", "vision" or "json".
        env_lookup: Environment fallback for keys.

    Returns:
        ProviderConfig: The resolved configuration.

    Raises:
        MissingCredential: Neither settings nor the environment hold a key.
    """
    model_string = settings.media_model if capability == "vision" else settings.text_model
    provider, model_id = parse_model_string(model_string)

    default_kind = "vision" if capability == "vision" else "text"
    if not model_id:
        model_id = DEFAULT_MODELS[provider][default_kind]
    elif capability == "vision" and provider != "gemini" and not is_vision_model(model_id):
        model_id = DEFAULT_MODELS[provider]["vision"]

    api_key = settings.api_key_for(provider) or env_lookup(provider)
    if not api_key:
        raise MissingCredential(provider)

    return ProviderConfig(
        provider=provider,
        model_id=model_id,
        api_key=api_key,
        endpoint_url=ENDPOINTS[provider],
    )
