import base64
import logging
from typing import Dict, Any, List, AsyncIterator, Optional, Sequence, Tuple

from google import genai
from google.genai import errors, types

from .base import BaseLLMProvider, with_schema_instruction
from ..errors import TransportError
from ..types import CompletionRequest, Message, ProviderConfig, ToolDescriptor
from ..utils import CancelToken, check_cancelled, parse_data_uri

logger = logging.getLogger(__name__)

# Error code set on TransportError when Gemini rejects the request's tools
TOOL_UNSUPPORTED = "tool_unsupported"


def _is_tool_rejection(exc: errors.APIError) -> bool:
    message = (exc.message or "").lower()
    return exc.code == 400 and ("tool" in message or "search" in message)


def _transport_error(exc: errors.APIError) -> TransportError:
    code = TOOL_UNSUPPORTED if _is_tool_rejection(exc) else exc.status
    return TransportError("gemini", exc.message or None, status=exc.code, code=code)


class GeminiProvider(BaseLLMProvider):
    """
    Provider for Google Gemini (using the google-genai SDK).
    """

    name = "gemini"

    def __init__(self, config: ProviderConfig):
        super().__init__(config)
        self.client = genai.Client(api_key=config.api_key)

    async def complete(
        self,
        request: CompletionRequest,
        cancel: Optional[CancelToken] = None,
    ) -> str:
        """
        Send a single generate_content request.

        Handles:
        - Optional inline image part (text part always last).
        - Native JSON output (`response_mime_type`) when no tools are set;
          Gemini rejects JSON mime type together with tools, so in that case
          the schema is embedded in the prompt text instead.
        - Function declarations and grounded Google Search.
        """
        check_cancelled(cancel)

        native_json = request.wants_json and not (request.tools or request.search)
        prompt = request.prompt
        if request.wants_json and not native_json:
            prompt = with_schema_instruction(prompt, request.json_schema)

        parts = []
        if request.image is not None:
            parts.append(types.Part.from_bytes(
                data=base64.b64decode(request.image.data),
                mime_type=request.image.mime_type,
            ))
        parts.append(types.Part.from_text(text=prompt))

        config_kwargs: Dict[str, Any] = {}
        if request.system:
            config_kwargs["system_instruction"] = request.system
        if native_json:
            config_kwargs["response_mime_type"] = "application/json"
            if request.json_schema:
                config_kwargs["response_schema"] = request.json_schema
        tools = self._convert_tools(request.tools, search=request.search)
        if tools:
            config_kwargs["tools"] = tools

        logger.debug("Gemini generate_content model=%s json=%s tools=%d", self.model, native_json, len(tools))
        try:
            resp = await self.client.aio.models.generate_content(
                model=self.model,
                contents=[types.Content(role="user", parts=parts)],
                config=types.GenerateContentConfig(**config_kwargs),
            )
        except errors.APIError as e:
            raise _transport_error(e) from e

        try:
            return resp.text or ""
        except ValueError:
            return ""

    async def stream(
        self,
        messages: List[Message],
        *,
        system: Optional[str] = None,
        tools: Optional[Sequence[ToolDescriptor]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> AsyncIterator[Dict[str, Any]]:
        """
        Stream a chat response from Gemini.

        When tools are requested Gemini's own grounded Google Search is
        enabled instead of client-side function calling. If Gemini rejects
        the tool, the request is retried once without it.
        """
        check_cancelled(cancel)
        contents = self._convert_messages(messages)
        use_search = bool(tools)

        try:
            first, iterator = await self._open(contents, system, use_search)
        except TransportError as e:
            if not (use_search and e.code == TOOL_UNSUPPORTED):
                raise
            logger.warning("Gemini rejected search tool for %s, retrying without tools: %s", self.model, e)
            first, iterator = await self._open(contents, system, False)

        yield {"type": "open"}
        if first is None:
            return

        chunk = first
        while True:
            check_cancelled(cancel)
            text = self._chunk_text(chunk)
            if text:
                yield {"type": "text", "text": text}
            try:
                chunk = await iterator.__anext__()
            except StopAsyncIteration:
                break
            except errors.APIError as e:
                raise _transport_error(e) from e

    async def _open(
        self,
        contents: List[types.Content],
        system: Optional[str],
        use_search: bool,
    ) -> Tuple[Optional[Any], Any]:
        """
        Start a stream and pull its first chunk.

        The SDK only performs the HTTP request when iteration starts, so the
        first chunk is where request-level failures surface.
        """
        config_kwargs: Dict[str, Any] = {}
        if system:
            config_kwargs["system_instruction"] = system
        if use_search:
            config_kwargs["tools"] = [types.Tool(google_search=types.GoogleSearch())]

        logger.debug("Gemini stream model=%s search=%s", self.model, use_search)
        try:
            iterator = await self.client.aio.models.generate_content_stream(
                model=self.model,
                contents=contents,
                config=types.GenerateContentConfig(**config_kwargs),
            )
            first = await iterator.__anext__()
        except StopAsyncIteration:
            return None, None
        except errors.APIError as e:
            raise _transport_error(e) from e
        return first, iterator

    @staticmethod
    def _chunk_text(chunk: Any) -> str:
        try:
            return chunk.text or ""
        except ValueError:
            return ""

    @staticmethod
    def _convert_messages(messages: List[Message]) -> List[types.Content]:
        """
        Convert history to Gemini contents.

        Role mapping: assistant -> model. Tool turns and assistant turns that
        only carry tool calls have no Gemini counterpart and are skipped.
        """
        contents = []
        for msg in messages:
            role = msg.get("role", "user")
            content = msg.get("content")
            if role in ("system", "tool") or not content:
                continue

            gemini_role = "model" if role == "assistant" else "user"
            parts = []
            if isinstance(content, str):
                parts.append(types.Part.from_text(text=content))
            else:
                for part in content:
                    if part.get("type") == "text":
                        parts.append(types.Part.from_text(text=part.get("text", "")))
                    elif part.get("type") == "image_url":
                        b64_data, mime_type = parse_data_uri(part.get("image_url", {}).get("url", ""))
                        parts.append(types.Part.from_bytes(
                            data=base64.b64decode(b64_data),
                            mime_type=mime_type,
                        ))
            if parts:
                contents.append(types.Content(role=gemini_role, parts=parts))
        return contents

    @staticmethod
    def _convert_tools(tools: Sequence[ToolDescriptor], search: bool = False) -> List[types.Tool]:
        """
        Convert tool descriptors to Gemini tools.
        """
        converted = []
        if tools:
            converted.append(types.Tool(function_declarations=[
                types.FunctionDeclaration(
                    name=tool.name,
                    description=tool.description,
                    parameters=tool.parameter_schema,
                )
                for tool in tools
            ]))
        if search:
            converted.append(types.Tool(google_search=types.GoogleSearch()))
        return converted
