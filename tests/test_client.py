import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from lumina.client import StudyAIClient, collect_stream
from lumina.errors import MissingCredential
from lumina.providers import GroqProvider
from lumina.resolver import DEFAULT_MODELS
from lumina.types import ImageInput

from helpers import RecordingTransport, completion_response, sse_response, text_chunk


class TestCallAI:

    @pytest.mark.asyncio
    async def test_missing_key_raises_before_any_request(self, make_store):
        transport = RecordingTransport()
        client = StudyAIClient(make_store(text_model="groq:llama-3.3-70b-versatile"), http_client=transport.client())

        with pytest.raises(MissingCredential) as exc_info:
            await client.call_ai("hi")

        assert exc_info.value.user_message == "Groq API key is missing. Please add it in Settings!"
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_text_call_records_usage_in_store(self, make_store, groq_settings):
        store = make_store(**groq_settings)
        transport = RecordingTransport(completion_response("Mitochondria.", total_tokens=55))
        client = StudyAIClient(store, http_client=transport.client())

        assert await client.call_ai("Powerhouse of the cell?") == "Mitochondria."
        assert store.get_settings().groq_usage == 55

    @pytest.mark.asyncio
    async def test_image_uses_vision_model(self, make_store):
        store = make_store(media_model="groq:llama-3.3-70b-versatile", groq_api_key="gsk-test")
        transport = RecordingTransport(completion_response("A leaf."))
        client = StudyAIClient(store, http_client=transport.client())

        await client.call_ai("What is this?", image=ImageInput("aGVsbG8="))

        assert transport.json_bodies()[0]["model"] == DEFAULT_MODELS["groq"]["vision"]

    @pytest.mark.asyncio
    async def test_settings_changes_apply_to_next_call(self, make_store, groq_settings):
        store = make_store(**groq_settings)
        transport = RecordingTransport(completion_response("one"), completion_response("two"))
        client = StudyAIClient(store, http_client=transport.client())

        await client.call_ai("first")
        settings = store.get_settings()
        settings.text_model = "groq:openai/gpt-oss-20b"
        store.save_settings(settings)
        await client.call_ai("second")

        assert [body["model"] for body in transport.json_bodies()] == [
            "llama-3.3-70b-versatile",
            "openai/gpt-oss-20b",
        ]

    def test_provider_instances_are_cached(self, make_store, groq_settings):
        client = StudyAIClient(make_store(**groq_settings))
        config = client.resolve("text")
        provider = client.provider_for(config)
        assert isinstance(provider, GroqProvider)
        assert client.provider_for(client.resolve("text")) is provider

    @pytest.mark.asyncio
    async def test_gemini_call_with_search(self, make_store):
        store = make_store(gemini_api_key="AIza-test")
        with patch("lumina.providers.gemini.genai") as mock_genai:
            mock_client = MagicMock()
            mock_client.aio.models.generate_content = AsyncMock(return_value=MagicMock(text="Grounded answer"))
            mock_genai.Client.return_value = mock_client
            client = StudyAIClient(store)

            assert await client.call_ai("News today?", search=True) == "Grounded answer"

        config = mock_client.aio.models.generate_content.call_args.kwargs["config"]
        assert config.tools[0].google_search is not None

    @pytest.mark.asyncio
    async def test_generate_structured_repairs_output(self, make_store, groq_settings):
        truncated = '```json\n[{"front": "ATP", "back": "Energy"}, {"front": "NAD'
        transport = RecordingTransport(completion_response(truncated))
        client = StudyAIClient(make_store(**groq_settings), http_client=transport.client())

        data = await client.generate_structured("cards", {"type": "array"})

        assert data[0] == {"front": "ATP", "back": "Energy"}
        assert json.loads(json.dumps(data)) == data


class TestStreamChat:

    @pytest.mark.asyncio
    async def test_default_system_is_tutor_context(self, make_store, groq_settings):
        store = make_store(name="Asha", **groq_settings)
        transport = RecordingTransport(sse_response(text_chunk("Hi "), text_chunk("Asha!")))
        client = StudyAIClient(store, http_client=transport.client())

        text, reasoning, tools = await collect_stream(client.stream_chat([], "hello"))

        assert (text, reasoning, tools) == ("Hi Asha!", "", [])
        system = transport.json_bodies()[0]["messages"][0]
        assert system["role"] == "system"
        assert "MUKTI AI" in system["content"]
        assert "Asha" in system["content"]

    @pytest.mark.asyncio
    async def test_missing_key_raises_on_first_iteration(self, make_store):
        client = StudyAIClient(make_store())
        with pytest.raises(MissingCredential, match="Gemini API key is missing"):
            await collect_stream(client.stream_chat([], "hello"))


class TestClientClose:

    @pytest.mark.asyncio
    async def test_aclose_closes_cached_providers(self, make_store, groq_settings):
        client = StudyAIClient(make_store(**groq_settings))
        provider = client.provider_for(client.resolve("text"))
        provider.aclose = AsyncMock()

        await client.aclose()

        provider.aclose.assert_awaited_once()
        assert client.provider_for(client.resolve("text")) is not provider

    @pytest.mark.asyncio
    async def test_async_context_manager_closes(self, make_store, groq_settings):
        async with StudyAIClient(make_store(**groq_settings)) as client:
            provider = client.provider_for(client.resolve("text"))
            provider.aclose = AsyncMock()
        provider.aclose.assert_awaited_once()
