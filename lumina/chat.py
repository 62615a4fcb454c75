"""
Streaming chat orchestration.

One `ChatOrchestrator.run` call drives one user turn through

    SENDING -> STREAMING_TEXT <-> TOOL_CALL_DETECTED -> EXECUTING_TOOL
            -> SENDING_FOLLOWUP -> STREAMING_FOLLOWUP_TEXT -> DONE

with FAILED as the terminal state for any error. At most one tool round-trip
happens per turn: the follow-up request is sent without tools.
"""
import enum
import logging
from typing import Any, AsyncIterator, Iterable, List, Mapping, Optional, Sequence

from .providers.base import BaseLLMProvider
from .tools import ToolExecutor, TOOL_DESCRIPTORS, parse_tool_arguments, tool_label
from .types import Message, StreamEvent, ToolCall, ToolDescriptor
from .utils import CancelToken, check_cancelled, create_assistant_message_with_tool_calls, create_tool_result

logger = logging.getLogger(__name__)


class ChatState(enum.Enum):
    SENDING = "sending"
    STREAMING_TEXT = "streaming_text"
    TOOL_CALL_DETECTED = "tool_call_detected"
    EXECUTING_TOOL = "executing_tool"
    SENDING_FOLLOWUP = "sending_followup"
    STREAMING_FOLLOWUP_TEXT = "streaming_followup_text"
    DONE = "done"
    FAILED = "failed"


def _turn_text(turn: Mapping[str, Any]) -> Optional[str]:
    text = turn.get("text")
    if text is None:
        text = turn.get("content")
    if text is None and turn.get("parts"):
        text = turn["parts"][0].get("text")
    return text if isinstance(text, str) else None


def normalize_history(history: Iterable[Mapping[str, Any]], message: str) -> List[Message]:
    """
    Build the message list for a new user turn.

    Turns without text are dropped, a leading assistant turn is dropped (a
    conversation must open with the user), `model` is mapped to `assistant`,
    and `message` is appended as the trailing user turn.

    Examples:
        >>> normalize_history([{"role": "model", "text": "hi"}, {"role": "user", "text": "x"}], "y")
        [{'role': 'user', 'content': 'x'}, {'role': 'user', 'content': 'y'}]
    """
    messages: List[Message] = []
    for turn in history:
        text = _turn_text(turn)
        if not text:
            continue
        role = turn.get("role", "user")
        role = "assistant" if role in ("model", "assistant") else "user"
        messages.append({"role": role, "content": text})

    if messages and messages[0]["role"] == "assistant":
        messages.pop(0)

    messages.append({"role": "user", "content": message})
    return messages


class ChatOrchestrator:
    """
    Drives one streaming chat turn, including a single tool round-trip.

    Attributes:
        provider: Provider bound to the resolved config.
        tool_executor: Runs tools requested by the model.
        system: System instruction for both requests.
        tools: Tools offered on the first request.
        state: Current ChatState.
    """

    def __init__(
        self,
        provider: BaseLLMProvider,
        tool_executor: ToolExecutor,
        *,
        system: Optional[str] = None,
        tools: Sequence[ToolDescriptor] = TOOL_DESCRIPTORS,
        cancel: Optional[CancelToken] = None,
    ):
        self.provider = provider
        self.tool_executor = tool_executor
        self.system = system
        self.tools = tuple(tools) if provider.supports_tools() else ()
        self.cancel = cancel
        self.state = ChatState.SENDING

    def _transition(self, state: ChatState) -> None:
        logger.debug("chat %s -> %s", self.state.value, state.value)
        self.state = state

    async def run(self, history: Iterable[Mapping[str, Any]], message: str) -> AsyncIterator[StreamEvent]:
        """
        Stream one user turn.

        Yields:
            StreamEvent: text/reasoning events in transport order, with one
            `tool`/`done_tool` pair around a tool execution.

        Raises:
            AIError: Any credential, transport or protocol failure. The
            orchestrator is then in the FAILED state.
        """
        messages = normalize_history(history, message)
        self._transition(ChatState.SENDING)
        try:
            tool_call: Optional[ToolCall] = None
            first_text: List[str] = []
            async for event in self.provider.stream(
                messages, system=self.system, tools=self.tools or None, cancel=self.cancel
            ):
                if event["type"] == "open":
                    self._transition(ChatState.STREAMING_TEXT)
                elif event["type"] == "tool_call":
                    tool_call = {
                        "id": event["id"] or f"call_{event['name']}",
                        "name": event["name"],
                        "arguments": event["arguments"],
                    }
                    self._transition(ChatState.TOOL_CALL_DETECTED)
                else:
                    if event["type"] == "text":
                        first_text.append(event["text"])
                    yield event

            if tool_call is None:
                self._transition(ChatState.DONE)
                return

            name = tool_call["name"]
            yield {"type": "tool", "name": name, "label": tool_label(name)}

            self._transition(ChatState.EXECUTING_TOOL)
            check_cancelled(self.cancel)
            result = await self.tool_executor.execute(
                name, parse_tool_arguments(tool_call["arguments"]), cancel=self.cancel
            )

            preamble = "".join(first_text) or None
            messages.append(create_assistant_message_with_tool_calls(preamble, [tool_call]))
            messages.append(create_tool_result(tool_call["id"], result))

            self._transition(ChatState.SENDING_FOLLOWUP)
            async for event in self.provider.stream(messages, system=self.system, tools=None, cancel=self.cancel):
                if event["type"] == "open":
                    self._transition(ChatState.STREAMING_FOLLOWUP_TEXT)
                    yield {"type": "done_tool"}
                elif event["type"] == "tool_call":
                    logger.debug("Ignoring chained tool call %s", event.get("name"))
                else:
                    yield event

            self._transition(ChatState.DONE)
        except Exception:
            self._transition(ChatState.FAILED)
            raise
