from typing import Optional

import httpx

from .openai_compat import OpenAICompatProvider
from ..types import ProviderConfig

APP_TITLE = "Lumina Study"


class OpenRouterProvider(OpenAICompatProvider):
    """
    Provider for the OpenRouter API (OpenAI-compatible).
    """

    def __init__(
        self,
        config: ProviderConfig,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        # App attribution header shown on OpenRouter
        super().__init__(
            config,
            http_client=http_client,
            default_headers={"X-Title": APP_TITLE},
        )
