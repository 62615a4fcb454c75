"""
Tools the chat model may invoke, and the executor that runs them.

The executor never raises: every failure becomes a short explanatory string
so the conversation can always continue with the model.
"""
import json
import logging
import re
from html.parser import HTMLParser
from typing import Any, Dict, List, Optional
from urllib.parse import quote, quote_plus

import httpx

from .errors import ToolExecutionError
from .types import ToolDescriptor
from .utils import CancelToken, check_cancelled

logger = logging.getLogger(__name__)

PROXY_URL = "https://api.allorigins.win/get?url="
SEARCH_URL = "https://html.duckduckgo.com/html/?q="

MAX_SEARCH_RESULTS = 5
MAX_PAGE_CHARS = 2000

SEARCH_FAILED = "Search failed."
VISIT_FAILED = "Failed to visit webpage."

# Placeholders: no sandbox or math backend is wired up yet
EXECUTE_CODE_PLACEHOLDER = (
    "[Simulated result] Code execution is not available yet, so the code was not run. "
    "Reason about the expected output instead."
)
WOLFRAM_PLACEHOLDER = (
    "[Simulated result] Wolfram Alpha is not connected yet, so no query was made. "
    "Work the calculation out step by step instead."
)


def _schema(properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    return {"type": "object", "properties": properties, "required": required}


WEB_SEARCH = ToolDescriptor(
    name="web_search",
    description="Search the web for current information. Returns short result snippets.",
    parameter_schema=_schema({"query": {"type": "string", "description": "The search query"}}, ["query"]),
    label="Searching the web 🔍",
)

VISIT_WEBPAGE = ToolDescriptor(
    name="visit_webpage",
    description="Fetch a webpage and return its visible text.",
    parameter_schema=_schema({"url": {"type": "string", "description": "Absolute URL to read"}}, ["url"]),
    label="Reading webpage 📄",
)

EXECUTE_CODE = ToolDescriptor(
    name="execute_code",
    description="Run a short Python snippet and return its output.",
    parameter_schema=_schema({"code": {"type": "string", "description": "Python source to run"}}, ["code"]),
    label="Running code 💻",
)

WOLFRAM_ALPHA = ToolDescriptor(
    name="wolfram_alpha",
    description="Answer a math or science query with Wolfram Alpha.",
    parameter_schema=_schema({"query": {"type": "string", "description": "The math query"}}, ["query"]),
    label="Asking Wolfram Alpha 🧮",
)

TOOL_DESCRIPTORS = (WEB_SEARCH, VISIT_WEBPAGE, EXECUTE_CODE, WOLFRAM_ALPHA)
TOOLS_BY_NAME = {tool.name: tool for tool in TOOL_DESCRIPTORS}


def tool_label(name: str) -> str:
    """Human-readable status label for a tool name."""
    tool = TOOLS_BY_NAME.get(name)
    return tool.label if tool else f"Using {name}"


def parse_tool_arguments(raw: Optional[str]) -> Dict[str, Any]:
    """
    Parse a concatenated argument string, falling back to {}.
    """
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError:
        logger.warning("Could not parse tool arguments: %r", raw)
        return {}
    return parsed if isinstance(parsed, dict) else {}


# =============================================================================
# HTML helpers
# =============================================================================

class _TextExtractor(HTMLParser):
    """Collects visible text, skipping script/style/noscript content."""

    SKIP = {"script", "style", "noscript", "head", "svg"}

    def __init__(self):
        super().__init__()
        self._skip_depth = 0
        self.parts: List[str] = []

    def handle_starttag(self, tag, attrs):
        if tag in self.SKIP:
            self._skip_depth += 1

    def handle_endtag(self, tag):
        if tag in self.SKIP and self._skip_depth:
            self._skip_depth -= 1

    def handle_data(self, data):
        if not self._skip_depth:
            self.parts.append(data)


class _SnippetExtractor(HTMLParser):
    """Collects the text of elements whose class contains `result__snippet`."""

    def __init__(self):
        super().__init__()
        self._depth = 0
        self._current: List[str] = []
        self.snippets: List[str] = []

    def handle_starttag(self, tag, attrs):
        if self._depth:
            self._depth += 1
            return
        classes = dict(attrs).get("class") or ""
        if "result__snippet" in classes.split():
            self._depth = 1
            self._current = []

    def handle_endtag(self, tag):
        if not self._depth:
            return
        self._depth -= 1
        if not self._depth:
            snippet = _collapse_whitespace("".join(self._current))
            if snippet:
                self.snippets.append(snippet)

    def handle_data(self, data):
        if self._depth:
            self._current.append(data)


def _collapse_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def html_to_text(html: str) -> str:
    parser = _TextExtractor()
    parser.feed(html)
    parser.close()
    return _collapse_whitespace(" ".join(parser.parts))


def extract_snippets(html: str) -> List[str]:
    parser = _SnippetExtractor()
    parser.feed(html)
    parser.close()
    return parser.snippets


# =============================================================================
# Executor
# =============================================================================

class ToolExecutor:
    """
    Runs the fixed set of chat tools.

    Web access goes through a CORS-style proxy (`api.allorigins.win`) that
    returns `{"contents": "<raw html>"}`.
    """

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None, timeout: float = 15.0):
        self._http_client = http_client
        self.timeout = timeout

    async def execute(
        self,
        name: str,
        arguments: Dict[str, Any],
        cancel: Optional[CancelToken] = None,
    ) -> str:
        """
        Execute a tool and return its plain-text result.

        Raises:
            RequestCancelled: Only if the caller cancelled before execution.
        """
        check_cancelled(cancel)
        logger.debug("Executing tool %s with %s", name, arguments)
        match name:
            case "web_search":
                return await self.web_search(str(arguments.get("query", "")))
            case "visit_webpage":
                return await self.visit_webpage(str(arguments.get("url", "")))
            case "execute_code":
                return EXECUTE_CODE_PLACEHOLDER
            case "wolfram_alpha":
                return WOLFRAM_PLACEHOLDER
            case _:
                return f"Error: No handler for tool '{name}'"

    async def web_search(self, query: str) -> str:
        if not query.strip():
            return "No search query was given."
        try:
            html = await self._fetch_via_proxy(SEARCH_URL + quote_plus(query))
            snippets = extract_snippets(html)[:MAX_SEARCH_RESULTS]
        except Exception as e:
            logger.warning("web_search failed for %r: %s", query, e)
            return SEARCH_FAILED
        if not snippets:
            return f"No results found for '{query}'."
        return "\n\n".join(f"{i}. {snippet}" for i, snippet in enumerate(snippets, 1))

    async def visit_webpage(self, url: str) -> str:
        if not url.startswith(("http://", "https://")):
            return VISIT_FAILED
        try:
            html = await self._fetch_via_proxy(url)
            text = html_to_text(html)
        except Exception as e:
            logger.warning("visit_webpage failed for %s: %s", url, e)
            return VISIT_FAILED
        if not text:
            return "The webpage had no readable text."
        return text[:MAX_PAGE_CHARS]

    async def _fetch_via_proxy(self, url: str) -> str:
        proxied = PROXY_URL + quote(url, safe="")
        if self._http_client is not None:
            response = await self._http_client.get(proxied, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as http_client:
                response = await http_client.get(proxied)
        if response.status_code >= 400:
            raise ToolExecutionError(f"Proxy returned HTTP {response.status_code}")
        try:
            contents = response.json().get("contents")
        except ValueError as e:
            raise ToolExecutionError("Proxy returned invalid JSON") from e
        if not isinstance(contents, str):
            raise ToolExecutionError("Proxy response had no contents")
        return contents
