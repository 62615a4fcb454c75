import asyncio
import json
import logging
from contextlib import AsyncExitStack
from typing import Dict, Any, List, AsyncIterator, Optional, Sequence, Tuple

import httpx
from openai import AsyncOpenAI, APIConnectionError, APIStatusError

from .base import BaseLLMProvider, with_schema_instruction
from ..config import UsageCounter
from ..errors import StreamProtocolError, TransportError
from ..resolver import is_vision_model
from ..types import CompletionRequest, Message, ProviderConfig, ToolCall, ToolDescriptor
from ..utils import CancelToken, check_cancelled, create_image_content, create_text_content

logger = logging.getLogger(__name__)

# Model-name substrings for which `response_format: json_object` is not sent
JSON_MODE_UNSUPPORTED = ("compound", "deepseek")

# Model-name substrings known not to handle function calling reliably
TOOLS_UNSUPPORTED = ("compound", "gemma", "deepseek-r1", "llama-3.1-8b", "allam")

# Provider error codes meaning "the model attempted and failed a function call"
TOOL_FAILURE_CODES = ("tool_use_failed",)


def supports_json_mode(model_id: str, has_image: bool = False) -> bool:
    lowered = model_id.lower()
    if any(marker in lowered for marker in JSON_MODE_UNSUPPORTED):
        return False
    if has_image and not is_vision_model(model_id):
        return False
    return True


def supports_function_calling(model_id: str) -> bool:
    lowered = model_id.lower()
    return not any(marker in lowered for marker in TOOLS_UNSUPPORTED)


async def iter_sse_payloads(lines: AsyncIterator[str], provider: str) -> AsyncIterator[Dict[str, Any]]:
    """
    Decode `data:` lines of a server-sent-event stream into JSON payloads.

    Stops at `data: [DONE]`. A payload carrying `error` ends the stream with
    StreamProtocolError; undecodable lines are skipped.
    """
    async for line in lines:
        line = line.strip()
        if not line.startswith("data:"):
            continue
        data = line[len("data:"):].strip()
        if data == "[DONE]":
            return
        try:
            payload = json.loads(data)
        except ValueError:
            logger.debug("Skipping undecodable SSE line from %s: %r", provider, data)
            continue
        if not isinstance(payload, dict):
            continue
        error = payload.get("error")
        if error:
            if isinstance(error, dict):
                raise StreamProtocolError(provider, error.get("message"), code=error.get("code"))
            raise StreamProtocolError(provider, str(error))
        yield payload


class OpenAICompatProvider(BaseLLMProvider):
    """
    Provider for OpenAI-compatible chat-completions APIs (Groq, OpenRouter).
    """

    name = "openai-compat"

    def __init__(
        self,
        config: ProviderConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        usage: Optional[UsageCounter] = None,
        default_headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(config)
        self.name = config.provider
        self.usage = usage
        self._owns_http_client = http_client is None
        # No SDK retries: the only automatic retry is the tool-less one below
        self.client = AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.endpoint_url,
            max_retries=0,
            http_client=http_client,
            default_headers=default_headers,
        )

    def supports_tools(self) -> bool:
        return supports_function_calling(self.model)

    async def aclose(self) -> None:
        # An injected http client belongs to the caller
        if self._owns_http_client:
            await self.client.close()

    async def complete(
        self,
        request: CompletionRequest,
        cancel: Optional[CancelToken] = None,
    ) -> str:
        """
        Send a non-streaming chat completion.

        Handles:
        - `system` + `user` messages, image as an `image_url` data-URI part.
        - `response_format: json_object` when the model supports JSON mode.
          The schema always travels in the prompt text, since JSON mode
          constrains syntax only.
        - Token usage accounting.
        """
        check_cancelled(cancel)
        if request.tools or request.search:
            logger.debug("%s ignores tools for single-shot completions", self.name)

        has_image = request.image is not None
        json_mode = request.wants_json and supports_json_mode(self.model, has_image)
        prompt = request.prompt
        if request.wants_json:
            prompt = with_schema_instruction(prompt, request.json_schema)

        messages: List[Dict[str, Any]] = []
        if request.system:
            messages.append({"role": "system", "content": request.system})
        if has_image:
            messages.append({
                "role": "user",
                "content": [create_text_content(prompt), create_image_content(request.image)],
            })
        else:
            messages.append({"role": "user", "content": prompt})

        request_kwargs: Dict[str, Any] = {"model": self.model, "messages": messages}
        if json_mode:
            request_kwargs["response_format"] = {"type": "json_object"}

        logger.debug("%s completion model=%s json_mode=%s", self.name, self.model, json_mode)
        try:
            resp = await self.client.chat.completions.create(**request_kwargs)
        except APIStatusError as e:
            raise self._transport_error(e) from e
        except APIConnectionError as e:
            raise TransportError(self.name) from e

        if resp.usage is not None:
            await self._record_usage(resp.usage.total_tokens)

        if not resp.choices:
            return ""
        return resp.choices[0].message.content or ""

    async def stream(
        self,
        messages: List[Message],
        *,
        system: Optional[str] = None,
        tools: Optional[Sequence[ToolDescriptor]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> AsyncIterator[Dict[str, Any]]:
        """
        Stream a chat completion, parsing the SSE body line by line.

        Yields text/reasoning events as they arrive. Tool-call deltas are
        accumulated (id and name from the first fragment, argument fragments
        concatenated) and reported once as a `tool_call` event at stream end.
        Token usage is recorded once, when the stream completes.
        """
        check_cancelled(cancel)
        payload = self._chat_payload(messages, system=system, tools=tools)

        async with AsyncExitStack() as stack:
            buffered, payloads = await self._open(stack, payload)
            yield {"type": "open"}

            calls: Dict[int, ToolCall] = {}
            total_tokens = 0
            async for chunk in _chain(buffered, payloads):
                check_cancelled(cancel)
                total_tokens = _stream_usage(chunk) or total_tokens

                choices = chunk.get("choices") or []
                if not choices:
                    continue
                delta = choices[0].get("delta") or {}

                for fragment in delta.get("tool_calls") or []:
                    self._accumulate_tool_call(calls, fragment)

                reasoning = delta.get("reasoning") or delta.get("reasoning_content")
                if reasoning:
                    yield {"type": "reasoning", "text": reasoning}

                content = delta.get("content")
                if content:
                    yield {"type": "text", "text": content}

            await self._record_usage(total_tokens)

            if calls:
                first = calls[min(calls)]
                if len(calls) > 1:
                    logger.debug("%s requested %d tool calls, using the first", self.name, len(calls))
                yield {"type": "tool_call", **first}

    async def _open(
        self,
        stack: AsyncExitStack,
        payload: Dict[str, Any],
    ) -> Tuple[List[Dict[str, Any]], AsyncIterator[Dict[str, Any]]]:
        """
        Dispatch the streaming request and read ahead to its first output.

        If the model attempted and failed a function call, whether the
        provider rejected the request or reported it in-band before any
        output, the request is retried once with tools omitted.
        """
        try:
            return await self._start(stack, payload)
        except (TransportError, StreamProtocolError) as e:
            if "tools" not in payload or e.code not in TOOL_FAILURE_CODES:
                raise
            logger.warning("%s model %s failed a tool call, retrying without tools: %s", self.name, self.model, e)
            await stack.aclose()
            retry_payload = {k: v for k, v in payload.items() if k not in ("tools", "tool_choice")}
            return await self._start(stack, retry_payload)

    async def _start(
        self,
        stack: AsyncExitStack,
        payload: Dict[str, Any],
    ) -> Tuple[List[Dict[str, Any]], AsyncIterator[Dict[str, Any]]]:
        """
        Returns the payloads read up to and including the first one carrying
        output, plus the iterator over the rest of the stream.
        """
        response = await self._enter(stack, payload)
        payloads = iter_sse_payloads(response.iter_lines(), self.name)
        stack.push_async_callback(payloads.aclose)

        buffered: List[Dict[str, Any]] = []
        async for chunk in payloads:
            buffered.append(chunk)
            if _has_output(chunk):
                break
        return buffered, payloads

    async def _enter(self, stack: AsyncExitStack, payload: Dict[str, Any]):
        logger.debug("%s stream model=%s tools=%s", self.name, self.model, "tools" in payload)
        try:
            return await stack.enter_async_context(
                self.client.chat.completions.with_streaming_response.create(**payload)
            )
        except APIStatusError as e:
            raise self._transport_error(e) from e
        except APIConnectionError as e:
            raise TransportError(self.name) from e

    def _chat_payload(
        self,
        messages: List[Message],
        *,
        system: Optional[str],
        tools: Optional[Sequence[ToolDescriptor]],
    ) -> Dict[str, Any]:
        converted = self._convert_messages(messages)
        if system:
            converted.insert(0, {"role": "system", "content": system})
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": converted,
            "stream": True,
        }
        if tools and self.supports_tools():
            payload["tools"] = [tool.to_tool() for tool in tools]
            payload["tool_choice"] = "auto"
        return payload

    @staticmethod
    def _convert_messages(messages: List[Message]) -> List[Dict[str, Any]]:
        """
        Convert internal messages to OpenAI chat format.

        Assistant turns keep their `tool_calls`; tool turns keep their
        `tool_call_id`.
        """
        converted = []
        for msg in messages:
            role = msg.get("role", "user")
            content = msg.get("content")

            if role == "tool":
                converted.append({
                    "role": "tool",
                    "tool_call_id": msg.get("tool_call_id", ""),
                    "content": content if isinstance(content, str) else "",
                })
                continue

            if role == "assistant" and msg.get("tool_calls"):
                converted.append({
                    "role": "assistant",
                    "content": content if isinstance(content, str) and content else None,
                    "tool_calls": [
                        {
                            "id": tc["id"],
                            "type": "function",
                            "function": {
                                "name": tc["name"],
                                "arguments": tc.get("arguments") or "{}",
                            },
                        }
                        for tc in msg["tool_calls"]
                    ],
                })
                continue

            converted.append({"role": role, "content": content if content is not None else ""})
        return converted

    @staticmethod
    def _accumulate_tool_call(calls: Dict[int, ToolCall], fragment: Dict[str, Any]) -> None:
        index = fragment.get("index", 0)
        function = fragment.get("function") or {}
        call = calls.get(index)
        if call is None:
            call = calls[index] = {"id": "", "name": "", "arguments": ""}
        if fragment.get("id") and not call["id"]:
            call["id"] = fragment["id"]
        if function.get("name") and not call["name"]:
            call["name"] = function["name"]
        if function.get("arguments"):
            call["arguments"] += function["arguments"]

    def _transport_error(self, exc: APIStatusError) -> TransportError:
        body = exc.body
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            body = body["error"]
        message = body.get("message") if isinstance(body, dict) else None
        code = body.get("code") if isinstance(body, dict) else None
        return TransportError(
            self.name,
            message,
            status=exc.status_code,
            code=code or getattr(exc, "code", None),
        )

    async def _record_usage(self, total_tokens: Optional[int]) -> None:
        # The counter's change hook writes the settings file
        if self.usage is not None and total_tokens:
            await asyncio.to_thread(self.usage.add, total_tokens)


def _has_output(chunk: Dict[str, Any]) -> bool:
    choices = chunk.get("choices") or []
    if not choices:
        return False
    delta = choices[0].get("delta") or {}
    return bool(
        delta.get("content")
        or delta.get("reasoning")
        or delta.get("reasoning_content")
        or delta.get("tool_calls")
    )


def _stream_usage(chunk: Dict[str, Any]) -> Optional[int]:
    usage = chunk.get("usage") or (chunk.get("x_groq") or {}).get("usage")
    if isinstance(usage, dict):
        return usage.get("total_tokens")
    return None


async def _chain(
    buffered: List[Dict[str, Any]],
    rest: AsyncIterator[Dict[str, Any]],
) -> AsyncIterator[Dict[str, Any]]:
    for chunk in buffered:
        yield chunk
    async for chunk in rest:
        yield chunk
