import json

import httpx
import pytest

from mise_recipes.app.services.errors import (
    MalformedResponseError,
    MissingCredentialError,
    ProviderUnavailableError,
)
from mise_recipes.app.services.output_contract import RECIPE_CONTRACT, SUGGESTION_CONTRACT
from mise_recipes.app.services.providers.base import (
    Grounding,
    GroundingKind,
    ImagePart,
    ProviderRequest,
    ReplyShape,
    parse_json_content,
)
from mise_recipes.app.services.providers.gemini import GeminiClient
from mise_recipes.app.services.providers.openai import OpenAIClient


def _gemini_body(text, chunks=None):
    candidate = {"content": {"parts": [{"text": text}]}}
    if chunks is not None:
        candidate["groundingMetadata"] = {"groundingChunks": chunks}
    return {"candidates": [candidate]}


def _openai_body(content):
    return {"choices": [{"message": {"content": content}}]}


def _recording_transport(seen, response):
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if isinstance(response, Exception):
            raise response
        return response

    return httpx.MockTransport(handler)


@pytest.mark.asyncio
async def test_gemini_sends_schema_images_and_search_tool(settings, jpeg_bytes):
    seen = []
    transport = _recording_transport(seen, httpx.Response(200, json=_gemini_body(json.dumps([{"title": "A", "description": "B"}]))))
    client = GeminiClient(settings, transport=transport)
    request = ProviderRequest(
        prompt="Suggest recipes",
        images=[ImagePart(jpeg_bytes)],
        contract=SUGGESTION_CONTRACT,
        grounding=Grounding(GroundingKind.SEARCH),
    )

    reply = await client.generate(request)

    assert reply.shape is ReplyShape.ARRAY
    assert reply.body == [{"title": "A", "description": "B"}]
    sent = seen[0]
    assert sent.url.path == "/v1beta/models/gemini-3-flash-preview:generateContent"
    assert sent.headers["x-goog-api-key"] == "test-gemini-key"
    payload = json.loads(sent.content)
    parts = payload["contents"][0]["parts"]
    assert parts[0]["inline_data"]["mime_type"] == "image/jpeg"
    assert parts[-1]["text"] == "Suggest recipes"
    assert payload["tools"] == [{"google_search": {}}]
    assert payload["generationConfig"]["responseMimeType"] == "application/json"
    assert payload["generationConfig"]["responseSchema"]["type"] == "ARRAY"


@pytest.mark.asyncio
async def test_gemini_maps_grounding_returns_chunks(settings):
    seen = []
    chunks = [{"maps": {"title": "Corner Market", "uri": "https://maps/1"}}]
    transport = _recording_transport(seen, httpx.Response(200, json=_gemini_body("Here are stores", chunks)))
    client = GeminiClient(settings, transport=transport)
    request = ProviderRequest(
        prompt="Find stores",
        grounding=Grounding(GroundingKind.MAPS, latitude=40.7, longitude=-74.0),
        model="gemini-2.5-flash",
    )

    reply = await client.generate(request)

    assert reply.shape is ReplyShape.TEXT
    assert reply.grounding_chunks == chunks
    payload = json.loads(seen[0].content)
    assert payload["tools"] == [{"google_maps": {}}]
    assert payload["toolConfig"]["retrievalConfig"]["latLng"] == {"latitude": 40.7, "longitude": -74.0}
    assert "generationConfig" not in payload
    assert "gemini-2.5-flash" in seen[0].url.path


@pytest.mark.asyncio
async def test_missing_credential_fails_before_network(settings):
    seen = []
    transport = _recording_transport(seen, httpx.Response(200, json={}))
    client = GeminiClient(settings.model_copy(update={"gemini_api_key": None}), transport=transport)
    with pytest.raises(MissingCredentialError) as exc_info:
        await client.generate(ProviderRequest(prompt="x", contract=RECIPE_CONTRACT))
    assert "GEMINI_API_KEY" in exc_info.value.message
    assert seen == []


@pytest.mark.asyncio
async def test_error_status_is_provider_unavailable(settings):
    transport = _recording_transport([], httpx.Response(503, json={"error": {"message": "overloaded"}}))
    client = GeminiClient(settings, transport=transport)
    with pytest.raises(ProviderUnavailableError) as exc_info:
        await client.generate(ProviderRequest(prompt="x", contract=RECIPE_CONTRACT))
    assert exc_info.value.status_code == 503
    assert "overloaded" in exc_info.value.message


@pytest.mark.asyncio
async def test_empty_candidates_are_malformed(settings):
    transport = _recording_transport([], httpx.Response(200, json={"candidates": []}))
    client = GeminiClient(settings, transport=transport)
    with pytest.raises(MalformedResponseError):
        await client.generate(ProviderRequest(prompt="x", contract=RECIPE_CONTRACT))


@pytest.mark.asyncio
async def test_timeout_is_provider_unavailable(settings):
    transport = _recording_transport([], httpx.ReadTimeout("timed out"))
    client = OpenAIClient(settings, transport=transport)
    with pytest.raises(ProviderUnavailableError):
        await client.generate(ProviderRequest(prompt="x", contract=RECIPE_CONTRACT))


@pytest.mark.asyncio
async def test_openai_json_mode_with_images_and_envelope(settings, jpeg_bytes):
    seen = []
    content = json.dumps({"suggestions": [{"title": "Tacos", "description": "Crispy"}]})
    transport = _recording_transport(seen, httpx.Response(200, json=_openai_body(content)))
    client = OpenAIClient(settings, transport=transport)
    request = ProviderRequest(
        prompt="Suggest recipes",
        system_prompt="You are a food expert.",
        images=[ImagePart(jpeg_bytes)],
        contract=SUGGESTION_CONTRACT,
        grounding=Grounding(GroundingKind.SEARCH),
    )

    reply = await client.generate(request)

    assert reply.shape is ReplyShape.ENVELOPE
    payload = json.loads(seen[0].content)
    assert seen[0].headers["authorization"] == "Bearer test-openai-key"
    assert payload["model"] == "gpt-4o"
    assert payload["response_format"] == {"type": "json_object"}
    assert "tools" not in payload
    system, user = payload["messages"]
    assert "suggestions" in system["content"]
    assert user["content"][0] == {"type": "text", "text": "Suggest recipes"}
    assert user["content"][1]["image_url"]["url"].startswith("data:image/jpeg;base64,")


@pytest.mark.asyncio
async def test_openai_repairs_fenced_json(settings):
    content = "```json\n{\"title\": \"Soup\", \"ingredients\": [], \"steps\": []}\n```"
    transport = _recording_transport([], httpx.Response(200, json=_openai_body(content)))
    reply = await OpenAIClient(settings, transport=transport).generate(
        ProviderRequest(prompt="x", contract=RECIPE_CONTRACT)
    )
    assert reply.shape is ReplyShape.OBJECT
    assert reply.body["title"] == "Soup"


@pytest.mark.asyncio
async def test_openai_text_mode(settings):
    seen = []
    transport = _recording_transport(seen, httpx.Response(200, json=_openai_body("Keep stirring!")))
    reply = await OpenAIClient(settings, transport=transport).generate(ProviderRequest(prompt="tip"))
    assert reply.shape is ReplyShape.TEXT
    assert reply.text == "Keep stirring!"
    assert "response_format" not in json.loads(seen[0].content)


def test_parse_json_content_extracts_embedded_object():
    assert parse_json_content('Sure! {"title": "A"} hope that helps') == {"title": "A"}
    with pytest.raises(MalformedResponseError):
        parse_json_content("no json here")
