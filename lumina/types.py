from dataclasses import dataclass, field
from typing import Literal, List, Dict, Any, Union, TypedDict, Optional, Tuple

# =============================================================================
# Type Definitions
# =============================================================================

# Supported AI providers
Provider = Literal["gemini", "groq", "openrouter"]

# Capability class a caller asks the resolver for
Capability = Literal["text", "vision", "json"]

ResponseFormat = Literal["text", "json"]


class TextContent(TypedDict, total=False):
    """
    Text content part for multimodal messages.
    """
    type: Literal["text"]
    text: str


class ImageUrlDetail(TypedDict, total=False):
    """
    Image URL specification (OpenAI-compatible format).
    """
    url: str


class ImageContent(TypedDict, total=False):
    """
    Image content part for multimodal messages (OpenAI-compatible format).
    """
    type: Literal["image_url"]
    image_url: ImageUrlDetail


# Content can be a simple string or a list of content parts (text + images)
ContentPart = Union[TextContent, ImageContent]
MessageContent = Union[str, List[ContentPart], None]


# =============================================================================
# Tool Calling Type Definitions
# =============================================================================

class FunctionParameters(TypedDict, total=False):
    """
    JSON Schema for function parameters.
    """
    type: Literal["object"]
    properties: Dict[str, Any]
    required: List[str]


class FunctionDefinition(TypedDict, total=False):
    """
    Function definition for tools.
    """
    name: str
    description: str
    parameters: FunctionParameters


class Tool(TypedDict):
    """
    Tool definition in OpenAI format.
    """
    type: Literal["function"]
    function: FunctionDefinition


class ToolCall(TypedDict, total=False):
    """
    Tool call from a model response.

    `arguments` keeps the raw concatenated argument string exactly as the
    model streamed it; it is parsed only when the tool is executed.
    """
    id: str
    name: str
    arguments: str


# =============================================================================
# Message Type (ChatTurn)
# =============================================================================

class Message(TypedDict, total=False):
    """
    Chat message in the conversation history.

    Roles:
    - "system": System prompt / instructions
    - "user": User message
    - "assistant": Model response (may carry tool calls and no content)
    - "tool": Tool execution result
    """
    role: Literal["system", "user", "assistant", "tool"]
    content: MessageContent
    tool_call_id: str  # For tool result messages
    tool_calls: List[ToolCall]  # For assistant messages with tool calls


# =============================================================================
# Stream Events
# =============================================================================

class TextEvent(TypedDict):
    type: Literal["text"]
    text: str


class ReasoningEvent(TypedDict):
    type: Literal["reasoning"]
    text: str


class ToolEvent(TypedDict):
    type: Literal["tool"]
    name: str
    label: str


class DoneToolEvent(TypedDict):
    type: Literal["done_tool"]


# What `stream_chat` yields to callers. `tool` and `done_tool` bracket a
# tool execution; text and reasoning are independent accumulators.
StreamEvent = Union[TextEvent, ReasoningEvent, ToolEvent, DoneToolEvent]


# =============================================================================
# Request-scoped value objects
# =============================================================================

@dataclass(frozen=True)
class ProviderConfig:
    """
    Resolved provider, model and credential for a single request.
    """
    provider: Provider
    model_id: str
    api_key: str = field(repr=False)
    endpoint_url: str


@dataclass(frozen=True)
class ImageInput:
    """
    A single inline image, base64 encoded.
    """
    data: str
    mime_type: str = "image/jpeg"

    def to_data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


@dataclass(frozen=True)
class ToolDescriptor:
    """
    Declares a callable capability to the model.
    """
    name: str
    description: str
    parameter_schema: Dict[str, Any]
    label: str = ""

    def to_tool(self) -> Tool:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameter_schema,
            },
        }


@dataclass(frozen=True)
class CompletionRequest:
    """
    Single-shot completion request, built fresh for each `call_ai`.
    """
    prompt: str
    system: Optional[str] = None
    image: Optional[ImageInput] = None
    response_format: ResponseFormat = "text"
    json_schema: Optional[Dict[str, Any]] = None
    tools: Tuple[ToolDescriptor, ...] = ()
    search: bool = False

    @property
    def wants_json(self) -> bool:
        return self.response_format == "json"
