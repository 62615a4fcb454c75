"""
Best-effort recovery of malformed JSON emitted by language models.

Small and free models routinely return JSON wrapped in Markdown fences,
truncated mid-array, or with raw newlines inside string values. `repair_json`
turns such text into a parsed value, or `None` when nothing usable remains.
"""
import json
import logging
from typing import Any, List, Optional, Tuple

from .utils import strip_code_fences

logger = logging.getLogger(__name__)

_CLOSERS = {"[": "]", "{": "}"}

# Raw control characters that are illegal inside JSON strings
_CONTROL_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t"}

# Upper bound on how many truncation points are tried before giving up
MAX_REPAIR_ATTEMPTS = 64


def _extract_candidate(text: str) -> Optional[str]:
    """
    Slice from the first opening bracket to the last matching closer.

    When no matching closer follows the opening bracket the input was
    truncated, and everything from the opening bracket on is kept for repair.
    """
    starts = [i for i in (text.find("["), text.find("{")) if i >= 0]
    if not starts:
        return None
    start = min(starts)
    end = text.rfind(_CLOSERS[text[start]])
    if end > start:
        return text[start:end + 1]
    return text[start:]


def _closers(stack: Tuple[str, ...]) -> str:
    return "".join(_CLOSERS[opener] for opener in reversed(stack))


def _scan(candidate: str) -> Tuple[List[str], bool, Tuple[str, ...], List[Tuple[int, Tuple[str, ...]]]]:
    """
    Walk the candidate once, tracking string state and open structures.

    Returns the output pieces (control characters inside strings escaped),
    whether input ended inside a string, the open-structure stack, and the
    truncation points usable as fallbacks: just after each opener and just
    before each structural comma, with the stack as it was there.
    """
    out: List[str] = []
    stack: List[str] = []
    cuts: List[Tuple[int, Tuple[str, ...]]] = []
    in_string = False
    escaped = False

    for ch in candidate:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            elif ch in _CONTROL_ESCAPES:
                out.append(_CONTROL_ESCAPES[ch])
                continue
            out.append(ch)
            continue

        if ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            out.append(ch)
            stack.append(ch)
            cuts.append((len(out), tuple(stack)))
            continue
        elif ch in "]}":
            if stack and _CLOSERS[stack[-1]] == ch:
                stack.pop()
        elif ch == ",":
            cuts.append((len(out), tuple(stack)))
        out.append(ch)

    # A dangling backslash would escape the closing quote we add
    if in_string and escaped:
        out.pop()

    return out, in_string, tuple(stack), cuts


def _repair_attempts(candidate: str):
    """
    Yield repaired texts, most faithful first.
    """
    out, in_string, stack, cuts = _scan(candidate)
    yield "".join(out) + ('"' if in_string else "") + _closers(stack)

    for index, snapshot in reversed(cuts[-MAX_REPAIR_ATTEMPTS:]):
        yield "".join(out[:index]).rstrip() + _closers(snapshot)


def repair_json(text: Optional[str]) -> Optional[Any]:
    """
    Parse model output as JSON, repairing it when necessary.

    Steps: strip code fences, slice the outermost bracketed region, close an
    unterminated string and every unclosed structure, escape raw control
    characters inside strings, then parse. If the closed text still does not
    parse, trailing incomplete members are dropped back to the nearest comma
    or opener until something parses; that partial recovery is logged at
    WARNING with the original text.

    Args:
        text: Raw model output.

    Returns:
        The parsed value, or None when the input is unrecoverable. Never raises.
    """
    if not text:
        logger.warning("Unrecoverable JSON from model: empty response")
        return None

    candidate = _extract_candidate(strip_code_fences(text))
    if candidate is None:
        logger.warning("Unrecoverable JSON from model (no JSON structure): %r", text)
        return None

    for index, attempt in enumerate(_repair_attempts(candidate)):
        try:
            value = json.loads(attempt)
        except ValueError:
            continue
        if index:
            logger.warning("Partially recovered JSON from model, trailing content dropped: %r", text)
        return value

    logger.warning("Unrecoverable JSON from model: %r", text)
    return None
