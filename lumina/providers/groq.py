from typing import Optional

import httpx

from .openai_compat import OpenAICompatProvider
from ..config import UsageCounter
from ..types import ProviderConfig


class GroqProvider(OpenAICompatProvider):
    """
    Provider for the Groq API (OpenAI-compatible).

    Successful responses feed the token usage counter, which the settings
    layer reads for client-side rate-limit awareness.
    """

    def __init__(
        self,
        config: ProviderConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        usage: Optional[UsageCounter] = None,
    ):
        super().__init__(config, http_client=http_client, usage=usage)
