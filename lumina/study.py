"""
Study features built on the AI client: flashcards, diagrams, notes and the
problem solver.
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional

from .client import StudyAIClient
from .errors import TransportError
from .prompts import (
    DIAGRAM_PROMPT,
    ENHANCE_NOTE_PROMPT,
    FLASHCARD_SCHEMA,
    IMAGE_TO_NOTE_PROMPT,
    NOTE_SCHEMA,
    context_prompt,
    flashcard_prompt,
)
from .types import ImageInput
from .utils import strip_code_fences

logger = logging.getLogger(__name__)

FlashcardSource = Literal["topic", "image", "youtube"]

FALLBACK_DIAGRAM = 'graph TD\nA["Error"] --> B["Could not generate diagram"]'


def generate_id() -> str:
    return uuid.uuid4().hex[:9]


@dataclass
class Flashcard:
    front: str
    back: str
    id: str = field(default_factory=generate_id)
    mastered: bool = False


class StudyAssistant:
    """
    Feature-level calls used by the flashcard, notes, diagram and solver views.

    Credential errors always propagate so the caller can point the user to
    Settings.
    """

    def __init__(self, client: StudyAIClient):
        self.client = client

    async def generate_flashcards(
        self,
        source: FlashcardSource,
        payload: str,
        mime_type: Optional[str] = None,
        count: int = 8,
    ) -> List[Flashcard]:
        """
        Generate `count` flashcards from a topic, an image or a YouTube link.

        Args:
            source: "topic", "image" (payload is base64 image data) or "youtube".
            payload: Topic text, base64 image data or video URL.
            mime_type: Image MIME type for the image source.
            count: Number of cards to ask for.

        Returns:
            List[Flashcard]: Empty when the model output is unrecoverable.
        """
        context = context_prompt(self.client.settings())
        prompt = flashcard_prompt(source, payload, count, context)
        image = ImageInput(payload, mime_type or "image/jpeg") if source == "image" else None

        data = await self.client.generate_structured(
            prompt,
            FLASHCARD_SCHEMA,
            image=image,
            search=source == "youtube",
        )
        if isinstance(data, dict):
            # Some models wrap the array, e.g. {"flashcards": [...]}
            data = next((v for v in data.values() if isinstance(v, list)), [])
        if not isinstance(data, list):
            return []

        cards = []
        for item in data:
            if not isinstance(item, dict) or not item.get("front") or not item.get("back"):
                continue
            cards.append(Flashcard(front=str(item["front"]), back=str(item["back"])))
        return cards

    async def generate_diagram_code(self, prompt: str) -> str:
        """
        Mermaid code for `prompt`, fences removed.
        """
        try:
            code = await self.client.call_ai(DIAGRAM_PROMPT.format(prompt=prompt))
        except TransportError as e:
            logger.warning("Diagram generation failed: %s", e)
            return FALLBACK_DIAGRAM
        return strip_code_fences(code)

    async def enhance_note_content(self, content: str) -> str:
        if not content:
            return ""
        enhanced = await self.client.call_ai(ENHANCE_NOTE_PROMPT.format(content=content))
        return enhanced.strip() or content

    async def process_image_to_note(self, data: str, mime_type: str) -> Dict[str, str]:
        note = await self.client.generate_structured(
            IMAGE_TO_NOTE_PROMPT,
            NOTE_SCHEMA,
            image=ImageInput(data, mime_type),
        )
        if not isinstance(note, dict) or "content" not in note:
            return {"title": "Error", "content": "Failed."}
        return {"title": str(note.get("title") or "Untitled"), "content": str(note["content"])}

    async def solve_problem_from_image(self, data: str, mime_type: str, context: Optional[str] = None) -> str:
        answer = await self.client.call_ai(
            f"Academic problem solver context: {context or ''}",
            image=ImageInput(data, mime_type),
        )
        return answer or "Couldn't solve."
