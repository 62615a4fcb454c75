from urllib.parse import unquote

import httpx
import pytest

from lumina.errors import RequestCancelled
from lumina.tools import (
    EXECUTE_CODE_PLACEHOLDER,
    MAX_PAGE_CHARS,
    SEARCH_FAILED,
    VISIT_FAILED,
    WOLFRAM_PLACEHOLDER,
    ToolExecutor,
    extract_snippets,
    html_to_text,
    parse_tool_arguments,
    tool_label,
)
from lumina.utils import CancelToken

from helpers import RecordingTransport


def proxied(html: str) -> httpx.Response:
    return httpx.Response(200, json={"contents": html, "status": {"http_code": 200}})


def search_page(*snippets: str) -> str:
    results = "".join(
        f'<div class="result"><a class="result__snippet" href="#">{s}</a></div>' for s in snippets
    )
    return f"<html><body>{results}</body></html>"


class TestHelpers:

    def test_parse_tool_arguments(self):
        assert parse_tool_arguments('{"query": "photosynthesis"}') == {"query": "photosynthesis"}
        assert parse_tool_arguments('{"query": "photo') == {}
        assert parse_tool_arguments("[1, 2]") == {}
        assert parse_tool_arguments(None) == {}

    def test_tool_label(self):
        assert tool_label("web_search") == "Searching the web 🔍"
        assert tool_label("mystery") == "Using mystery"

    def test_html_to_text_skips_scripts(self):
        html = "<html><head><title>t</title></head><body><script>var x=1;</script><p>Hello   <b>world</b></p></body></html>"
        assert html_to_text(html) == "Hello world"

    def test_extract_snippets_handles_nested_markup(self):
        html = '<a class="result__a">title</a><a class="result__snippet">The <b>light</b> reactions</a>'
        assert extract_snippets(html) == ["The light reactions"]


class TestToolExecutor:

    @pytest.mark.asyncio
    async def test_web_search_numbers_first_five_snippets(self):
        transport = RecordingTransport(proxied(search_page(*(f"snippet {i}" for i in range(1, 8)))))
        executor = ToolExecutor(http_client=transport.client())

        result = await executor.execute("web_search", {"query": "photosynthesis"})

        assert result.splitlines()[0] == "1. snippet 1"
        assert "5. snippet 5" in result
        assert "snippet 6" not in result
        url = unquote(str(transport.requests[0].url))
        assert url.startswith("https://api.allorigins.win/get?url=")
        assert "duckduckgo.com/html/?q=photosynthesis" in url

    @pytest.mark.asyncio
    async def test_web_search_no_results(self):
        transport = RecordingTransport(proxied("<html><body>Nothing</body></html>"))
        executor = ToolExecutor(http_client=transport.client())
        assert await executor.execute("web_search", {"query": "xyzzy"}) == "No results found for 'xyzzy'."

    @pytest.mark.asyncio
    async def test_web_search_failure_is_a_string(self, caplog):
        transport = RecordingTransport(httpx.Response(502, text="bad gateway"))
        executor = ToolExecutor(http_client=transport.client())
        with caplog.at_level("WARNING", logger="lumina.tools"):
            assert await executor.execute("web_search", {"query": "q"}) == SEARCH_FAILED
        assert "web_search failed" in caplog.text

    @pytest.mark.asyncio
    async def test_web_search_network_error_is_a_string(self):
        def boom(request):
            raise httpx.ConnectError("offline", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(boom))
        executor = ToolExecutor(http_client=client)
        assert await executor.execute("web_search", {"query": "q"}) == SEARCH_FAILED

    @pytest.mark.asyncio
    async def test_visit_webpage_truncates(self):
        body = "<p>" + "a" * (MAX_PAGE_CHARS + 500) + "</p>"
        transport = RecordingTransport(proxied(body))
        executor = ToolExecutor(http_client=transport.client())

        result = await executor.execute("visit_webpage", {"url": "https://example.org/cells"})

        assert result == "a" * MAX_PAGE_CHARS

    @pytest.mark.asyncio
    async def test_visit_webpage_bad_payload(self):
        transport = RecordingTransport(httpx.Response(200, json={"status": "error"}))
        executor = ToolExecutor(http_client=transport.client())
        assert await executor.execute("visit_webpage", {"url": "https://example.org"}) == VISIT_FAILED

    @pytest.mark.asyncio
    async def test_visit_webpage_rejects_non_http_url(self):
        transport = RecordingTransport()
        executor = ToolExecutor(http_client=transport.client())
        assert await executor.execute("visit_webpage", {"url": "file:///etc/passwd"}) == VISIT_FAILED
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_placeholders_are_marked(self):
        executor = ToolExecutor()
        assert await executor.execute("execute_code", {"code": "print(1)"}) == EXECUTE_CODE_PLACEHOLDER
        assert await executor.execute("wolfram_alpha", {"query": "2+2"}) == WOLFRAM_PLACEHOLDER
        assert EXECUTE_CODE_PLACEHOLDER.startswith("[Simulated result]")

    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        result = await ToolExecutor().execute("launch_rocket", {})
        assert result == "Error: No handler for tool 'launch_rocket'"

    @pytest.mark.asyncio
    async def test_cancelled_before_execution(self):
        token = CancelToken()
        token.cancel()
        with pytest.raises(RequestCancelled):
            await ToolExecutor().execute("execute_code", {}, cancel=token)
