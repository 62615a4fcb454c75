"""
Prompt templates for the study tutor.
"""
from datetime import datetime
from typing import Optional

from .config import Settings

FLASHCARD_SCHEMA = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "front": {"type": "string", "description": "The question or term on the front of the card"},
            "back": {"type": "string", "description": "The answer or definition on the back of the card"},
        },
        "required": ["front", "back"],
    },
}

NOTE_SCHEMA = {
    "type": "object",
    "properties": {
        "title": {"type": "string"},
        "content": {"type": "string"},
    },
    "required": ["title", "content"],
}

FLASHCARD_RULES = """STRICT RULES:
- LENGTH: Keep it SHORT and PUNCHY. Max 15 words for the front, max 30 words for the back.
- FRONT: A single clear concept, question, or term. Use 1-2 relevant emojis. {emoji}
- BACK: The core answer only. Use bullet points or bold text for key terms. No fluff. ✨
- FORMATTING: Use Markdown and LaTeX ($...$) for formulas.
- GOAL: Fit perfectly on a mobile flashcard without scrolling."""

DIAGRAM_PROMPT = """Generate Mermaid.js diagram code for: "{prompt}".

STRICT SYNTAX RULES:
1. Use 'graph TD' for flowcharts or 'mindmap' for concept maps.
2. ALL node labels MUST be wrapped in double quotes and square brackets, e.g., A["My Label"].
3. Do NOT use parentheses () or curly braces {{}} in labels unless they are inside double quotes.
4. Node IDs should be simple alphanumeric strings (e.g., Node1, StepA).
5. Avoid using special characters like +, -, *, /, (, ), [, ], {{, }} in node IDs.
6. Return ONLY the raw Mermaid code. No markdown blocks."""

ENHANCE_NOTE_PROMPT = """You are MUKTI AI, an elite study material designer. Your task is to transform the provided raw notes into a "Visual Study Guide" that is eye-catching, highly structured, and easy to memorize.
STRICT RULE: Return ONLY the enhanced, structured content. Do NOT include any conversational text, introductions, or conclusions.

Raw Notes to Enhance:
{content}"""

IMAGE_TO_NOTE_PROMPT = "Extract the text from this image and format it as structured study notes with a title and content."


def context_prompt(settings: Settings, now: Optional[datetime] = None) -> str:
    """
    System instruction with the user's local time and the tutor persona.
    """
    now = (now or datetime.now()).astimezone()
    timezone = now.tzname() or "UTC"
    date_str = now.strftime("%A, %B %d, %Y").replace(" 0", " ")
    time_str = now.strftime("%I:%M:%S %p").lstrip("0")

    return f"""SYSTEM CONTEXT:
- User's Local Time: {time_str} {timezone}
- User's Date: {date_str}
- User's Timezone: {timezone}

IDENTITY:
You are MUKTI AI, the user's cozy, super-intelligent study bestie. 🌟
Your student is {settings.name} ({settings.academic_level}).

RULES & PERSONALITY:
1. COZY & WARM: Use a friendly, conversational tone. You aren't a cold robot; you're a supportive mentor. ☕️✨
2. INTERACTIVE: Don't just lecture. Ask the student questions like "Does that make sense?" or "Want to try an example together?" 🙋
3. EMOJIS: Use emojis naturally to keep the mood light and encouraging! 🚀📚🎨
4. TIME AWARENESS: Use the user's exact local time (provided above) for any time or date question.
5. REAL-TIME KNOWLEDGE: Use the available search tools for current events or dynamic info. 🔍
6. FORMATTING: Use Markdown for structure. Use LaTeX for math expressions (e.g. $E=mc^2$).
7. CONCISE BUT RICH: Keep answers easy to read but high-value.
"""


def flashcard_prompt(source: str, payload: str, count: int, context: str) -> str:
    if source == "image":
        intro = f"Analyze this image and generate {count} bite-sized study flashcards based on its content."
        emoji = "📸"
    elif source == "youtube":
        intro = (
            f"Search for the content of the following YouTube video and generate "
            f"{count} bite-sized study flashcards: {payload}."
        )
        emoji = "🎥"
    else:
        intro = f'Generate {count} bite-sized, high-impact study flashcards about "{payload}".'
        emoji = "🧠"
    return f"{intro}\n\n{FLASHCARD_RULES.format(emoji=emoji)}\n\n{context}"
