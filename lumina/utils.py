import asyncio
import base64
import re
from pathlib import Path
from typing import Union, List, Optional, Tuple

from .errors import RequestCancelled
from .types import Message, TextContent, ImageContent, ImageInput, ToolCall

# =============================================================================
# Image Helpers
# =============================================================================

def encode_image_file(image_path: Union[str, Path]) -> ImageInput:
    """
    Encode a local image file to base64 for vision requests.

    Args:
        image_path (Union[str, Path]): Path to the image file.

    Returns:
        ImageInput: base64 data plus a MIME type guessed from the extension.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    path = Path(image_path)
    if not path.exists():
        raise FileNotFoundError(f"Image file not found: {image_path}")

    # Map file extensions to MIME types
    mime_types = {
        ".jpg": "image/jpeg",
        ".jpeg": "image/jpeg",
        ".png": "image/png",
        ".gif": "image/gif",
        ".webp": "image/webp",
        ".bmp": "image/bmp",
    }
    mime_type = mime_types.get(path.suffix.lower(), "image/jpeg")

    with open(path, "rb") as f:
        b64_data = base64.b64encode(f.read()).decode("utf-8")

    return ImageInput(data=b64_data, mime_type=mime_type)


def parse_data_uri(uri: str) -> Tuple[str, str]:
    """
    Split a data URI into (base64_data, mime_type).
    """
    # data:[<mediatype>][;base64],<data>
    header, data = uri.split(",", 1)
    mime_type = header.split(":")[1].split(";")[0]
    return data, mime_type


def create_image_content(image: ImageInput) -> ImageContent:
    """
    Create an OpenAI-style image part carrying the image as a data URI.
    """
    return {"type": "image_url", "image_url": {"url": image.to_data_uri()}}


def create_text_content(text: str) -> TextContent:
    return {"type": "text", "text": text}


# =============================================================================
# Tool Calling Helpers
# =============================================================================

def create_tool_result(tool_call_id: str, content: str) -> Message:
    """
    Create the `tool` turn that carries a tool's output back to the model.
    """
    return {
        "role": "tool",
        "tool_call_id": tool_call_id,
        "content": content,
    }


def create_assistant_message_with_tool_calls(
    content: Optional[str],
    tool_calls: List[ToolCall],
) -> Message:
    """
    Create the `assistant` turn that records the model's tool request.
    """
    return {
        "role": "assistant",
        "content": content,
        "tool_calls": tool_calls,
    }


# =============================================================================
# Text Helpers
# =============================================================================

_FENCE_RE = re.compile(r"```[A-Za-z0-9_-]*")


def strip_code_fences(text: str) -> str:
    """
    Remove Markdown code-fence markers (```json, ```mermaid, ```).
    """
    return _FENCE_RE.sub("", text).strip()


# =============================================================================
# Cancellation
# =============================================================================

class CancelToken:
    """
    Cooperative cancellation flag for an in-flight request.

    The token is checked at every suspension point of a request (before
    dispatch, at each received chunk, before a tool runs).
    """

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RequestCancelled("Request was cancelled.")


def check_cancelled(cancel: Optional[CancelToken]) -> None:
    if cancel is not None:
        cancel.raise_if_cancelled()
