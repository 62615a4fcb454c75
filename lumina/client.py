import logging
from typing import Optional, Dict, List, Any, AsyncIterator, Iterable, Mapping, Sequence, Tuple

import httpx

from .chat import ChatOrchestrator
from .config import Settings, SettingsStore, UsageCounter
from .json_repair import repair_json
from .prompts import context_prompt
from .providers import BaseLLMProvider, create_provider
from .resolver import resolve_provider
from .tools import ToolExecutor, TOOL_DESCRIPTORS
from .types import Capability, CompletionRequest, ImageInput, ProviderConfig, StreamEvent, ToolDescriptor
from .utils import CancelToken, check_cancelled

logger = logging.getLogger(__name__)


class StudyAIClient:
    """
    Single entry point to the AI providers for the study features.

    Settings are re-read on every call, so a key or model changed in the
    settings store applies to the next request. Provider instances are cached
    per resolved config.
    """

    def __init__(
        self,
        store: Optional[SettingsStore] = None,
        *,
        tool_executor: Optional[ToolExecutor] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        usage: Optional[UsageCounter] = None,
    ):
        """
        Args:
            store: Settings source. Defaults to the JSON store in LUMINA_HOME.
            tool_executor: Executor for chat tools.
            http_client: Shared HTTP client for OpenAI-compatible providers.
            usage: Groq usage counter. Defaults to the store's counter.
        """
        self.store = store or SettingsStore()
        self.tool_executor = tool_executor or ToolExecutor()
        self.http_client = http_client
        self.usage = usage or self.store.usage
        self._providers: Dict[ProviderConfig, BaseLLMProvider] = {}

    # ==========================================================================
    # Provider resolution
    # ==========================================================================

    def settings(self) -> Settings:
        return self.store.get_settings()

    def resolve(self, capability: Capability = "text") -> ProviderConfig:
        return resolve_provider(self.settings(), capability)

    def provider_for(self, config: ProviderConfig) -> BaseLLMProvider:
        provider = self._providers.get(config)
        if provider is None:
            provider = create_provider(config, http_client=self.http_client, usage=self.usage)
            self._providers[config] = provider
        return provider

    async def aclose(self) -> None:
        """
        Close every cached provider. The client stays usable; providers are
        recreated on the next call.
        """
        providers = list(self._providers.values())
        self._providers.clear()
        for provider in providers:
            await provider.aclose()

    async def __aenter__(self) -> "StudyAIClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ==========================================================================
    # Public API
    # ==========================================================================

    async def call_ai(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        image: Optional[ImageInput] = None,
        json: bool = False,
        schema: Optional[Dict[str, Any]] = None,
        tools: Sequence[ToolDescriptor] = (),
        search: bool = False,
        cancel: Optional[CancelToken] = None,
    ) -> str:
        """
        Send a single non-streaming request to the selected provider.

        Args:
            prompt (str): The user prompt.
            system (str, optional): System instruction.
            image (ImageInput, optional): Single inline image; selects the media model.
            json (bool): Request structured JSON output.
            schema (dict, optional): JSON schema for the output.
            tools (Sequence[ToolDescriptor]): Function declarations (Gemini only).
            search (bool): Enable grounded web search (Gemini only).
            cancel (CancelToken, optional): Cancellation token.

        Returns:
            str: Raw response text.

        Raises:
            MissingCredential: No key for the selected provider.
            TransportError: The provider call failed.
        """
        check_cancelled(cancel)
        capability: Capability = "vision" if image is not None else ("json" if json else "text")
        config = self.resolve(capability)
        request = CompletionRequest(
            prompt=prompt,
            system=system,
            image=image,
            response_format="json" if json else "text",
            json_schema=schema,
            tools=tuple(tools),
            search=search,
        )
        logger.debug("call_ai provider=%s model=%s capability=%s", config.provider, config.model_id, capability)
        return await self.provider_for(config).complete(request, cancel=cancel)

    async def stream_chat(
        self,
        history: Iterable[Mapping[str, Any]],
        message: str,
        *,
        system: Optional[str] = None,
        tools: Sequence[ToolDescriptor] = TOOL_DESCRIPTORS,
        cancel: Optional[CancelToken] = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Stream the tutor's reply to `message` given the prior `history`.

        The stream is finite and not restartable; call again to resend.

        Args:
            history: Prior turns, `{"role": "user"|"model", "text": ...}`.
            message: The new user message.
            system: System instruction. Defaults to the tutor context prompt.
            tools: Tools offered to the model.
            cancel: Cancellation token checked at every chunk and before tools run.

        Yields:
            StreamEvent: text, reasoning, tool and done_tool events.
        """
        settings = self.settings()
        config = resolve_provider(settings, "text")
        orchestrator = ChatOrchestrator(
            self.provider_for(config),
            self.tool_executor,
            system=system if system is not None else context_prompt(settings),
            tools=tools,
            cancel=cancel,
        )
        async for event in orchestrator.run(history, message):
            yield event

    async def generate_structured(
        self,
        prompt: str,
        schema: Optional[Dict[str, Any]] = None,
        **options: Any,
    ) -> Optional[Any]:
        """
        Request JSON output and parse it with repair.

        Returns:
            The parsed value, or None when the output is unrecoverable.
            Credential and transport errors still propagate.
        """
        text = await self.call_ai(prompt, json=True, schema=schema, **options)
        return repair_json(text)


async def collect_stream(events: AsyncIterator[StreamEvent]) -> Tuple[str, str, List[str]]:
    """
    Accumulate a chat stream into (text, reasoning, tool names).
    """
    text, reasoning, tools = [], [], []
    async for event in events:
        if event["type"] == "text":
            text.append(event["text"])
        elif event["type"] == "reasoning":
            reasoning.append(event["text"])
        elif event["type"] == "tool":
            tools.append(event["name"])
    return "".join(text), "".join(reasoning), tools
