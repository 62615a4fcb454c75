import json
from abc import ABC, abstractmethod
from typing import Dict, Any, List, AsyncIterator, Optional, Sequence

from ..types import CompletionRequest, Message, ProviderConfig, ToolDescriptor
from ..utils import CancelToken


def with_schema_instruction(prompt: str, schema: Optional[Dict[str, Any]]) -> str:
    """
    Embed a JSON output requirement in the prompt text itself.

    Used wherever the provider cannot enforce JSON output natively, so the
    requirement is never silently dropped.
    """
    instruction = "\n\nRespond ONLY with valid JSON. Do not wrap it in Markdown or add any commentary."
    if schema:
        instruction += "\nThe JSON must match this schema:\n" + json.dumps(schema, indent=2)
    return prompt + instruction


class BaseLLMProvider(ABC):
    """
    Abstract base class for AI providers.

    One instance serves one `ProviderConfig`. `stream` yields the public text
    and reasoning events plus two internal markers consumed by the chat
    orchestrator:

    - `{"type": "open"}` once the request was accepted and output is streaming.
    - `{"type": "tool_call", "id", "name", "arguments"}` at stream end, when
      the model asked for a tool.
    """

    name: str = ""

    def __init__(self, config: ProviderConfig):
        self.config = config

    @property
    def model(self) -> str:
        return self.config.model_id

    @abstractmethod
    async def complete(
        self,
        request: CompletionRequest,
        cancel: Optional[CancelToken] = None,
    ) -> str:
        """
        Run a single non-streaming completion.

        Args:
            request (CompletionRequest): Prompt, options and optional image.
            cancel (CancelToken, optional): Cancellation token.

        Returns:
            str: The response text.
        """
        pass

    @abstractmethod
    def stream(
        self,
        messages: List[Message],
        *,
        system: Optional[str] = None,
        tools: Optional[Sequence[ToolDescriptor]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> AsyncIterator[Dict[str, Any]]:
        """
        Stream a chat response.

        Args:
            messages (List[Message]): Normalized conversation history.
            system (str, optional): System instruction.
            tools (Sequence[ToolDescriptor], optional): Tools offered to the model.
            cancel (CancelToken, optional): Cancellation token.

        Yields:
            Dict[str, Any]: Stream events, in transport order.
        """
        pass

    def supports_tools(self) -> bool:
        """Whether tools should be offered to the configured model at all."""
        return True

    async def aclose(self) -> None:
        """Release network resources held by the provider."""
        pass
