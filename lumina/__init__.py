from .client import StudyAIClient, collect_stream
from .config import Settings, SettingsStore, UsageCounter
from .errors import AIError, MissingCredential, TransportError, StreamProtocolError, RequestCancelled
from .json_repair import repair_json
from .printer import RichStreamPrinter
from .resolver import resolve_provider
from .study import Flashcard, StudyAssistant
from .tools import ToolExecutor, TOOL_DESCRIPTORS
from .types import Message, StreamEvent, ProviderConfig, CompletionRequest, ImageInput, ToolDescriptor
from .utils import CancelToken

__all__ = [
    "StudyAIClient",
    "collect_stream",
    "Settings",
    "SettingsStore",
    "UsageCounter",
    "AIError",
    "MissingCredential",
    "TransportError",
    "StreamProtocolError",
    "RequestCancelled",
    "repair_json",
    "RichStreamPrinter",
    "resolve_provider",
    "Flashcard",
    "StudyAssistant",
    "ToolExecutor",
    "TOOL_DESCRIPTORS",
    "Message",
    "StreamEvent",
    "ProviderConfig",
    "CompletionRequest",
    "ImageInput",
    "ToolDescriptor",
    "CancelToken",
]
