from mise_recipes.app.services.errors import ProviderUnavailableError
from mise_recipes.app.services.extraction_service import RecipeExtractor
from mise_recipes.app.services.providers.base import ProviderReply, ReplyShape
from mise_recipes.app.services.providers.gemini import GeminiClient


def test_health(app):
    from fastapi.testclient import TestClient

    resp = TestClient(app).get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_text_extraction_returns_camel_case_recipe(client_for, stub_provider, make_reply, extractor_factory, satay):
    primary = stub_provider("gemini", make_reply(satay))
    client = client_for(extractor_factory(primary))

    resp = client.post("/recipes/extract/text", json={"text": "chicken satay", "allergies": ["peanuts"]})

    assert resp.status_code == 200
    data = resp.json()
    assert data["title"] == "Chicken Satay"
    assert data["prepTime"] == "15 mins"
    assert data["steps"][0]["timeInSeconds"] == 1800
    assert data["author"] == "AI Chef"
    assert data["id"]
    assert "peanuts" in primary.requests[0].prompt


def test_blank_text_is_a_validation_error(client_for, stub_provider, extractor_factory):
    client = client_for(extractor_factory(stub_provider("gemini")))

    resp = client.post("/recipes/extract/text", json={"text": ""})

    assert resp.status_code == 422
    body = resp.json()
    assert body["error_code"] == "validation_error"
    assert body["request_id"]


def test_url_failure_maps_to_bad_gateway(client_for, stub_provider, extractor_factory):
    primary = stub_provider("gemini", ProviderUnavailableError("search tool failed"))
    client = client_for(extractor_factory(primary))

    resp = client.post("/recipes/extract/url", json={"url": "https://youtube.com/watch?v=abc"})

    assert resp.status_code == 502
    body = resp.json()
    assert body["error_code"] == "unsupported_fallback"
    assert body["operation"] == "extract_from_url"


def test_missing_key_maps_to_service_unavailable(client_for, settings):
    no_gemini = settings.model_copy(update={"gemini_api_key": None})
    extractor = RecipeExtractor(primary=GeminiClient(no_gemini), settings=no_gemini)
    client = client_for(extractor)

    resp = client.post("/recipes/extract/url", json={"url": "https://example.com/pie"})

    assert resp.status_code == 503
    assert resp.json()["error_code"] == "missing_credential"


def test_empty_suggestions_are_flagged(client_for, stub_provider, extractor_factory, jpeg_bytes):
    primary = stub_provider("gemini", ProviderReply("gemini", ReplyShape.ARRAY, body=[]))
    client = client_for(extractor_factory(primary))

    resp = client.post(
        "/recipes/extract/image/suggestions",
        files={"image": ("plate.jpg", jpeg_bytes, "image/jpeg")},
        data={"allergies": "peanuts, sesame"},
    )

    assert resp.status_code == 200
    assert resp.json() == {"suggestions": [], "empty": True}
    prompt = primary.requests[0].prompt
    assert "peanuts" in prompt and "sesame" in prompt


def test_non_image_upload_is_rejected(client_for, stub_provider, extractor_factory):
    primary = stub_provider("gemini")
    client = client_for(extractor_factory(primary))

    resp = client.post(
        "/recipes/extract/image/suggestions",
        files={"image": ("notes.txt", b"just text", "text/plain")},
    )

    assert resp.status_code == 400
    assert primary.calls == 0


def test_expand_uses_uploaded_photo(client_for, stub_provider, make_reply, extractor_factory, jpeg_bytes, satay):
    primary = stub_provider("gemini", make_reply(satay))
    client = client_for(extractor_factory(primary))

    resp = client.post(
        "/recipes/extract/image/expand",
        data={"title": "Chicken Satay", "description": "Skewers"},
        files={"image": ("plate.jpg", jpeg_bytes, "image/jpeg")},
    )

    assert resp.status_code == 200
    assert resp.json()["imageUrl"].startswith("data:image/jpeg;base64,")


def test_frames_upload(client_for, stub_provider, make_reply, extractor_factory, jpeg_factory, satay):
    primary = stub_provider("gemini", make_reply(satay))
    client = client_for(extractor_factory(primary))
    files = [("frames", (f"f{i}.jpg", jpeg_factory(color=(i * 30, 0, 0)), "image/jpeg")) for i in range(3)]

    resp = client.post("/recipes/extract/frames", files=files)

    assert resp.status_code == 200
    assert resp.json()["author"] == "Video AI"
    assert len(primary.requests[0].images) == 3


def test_too_many_frames_is_rejected(client_for, stub_provider, extractor_factory, jpeg_bytes):
    primary = stub_provider("gemini")
    client = client_for(extractor_factory(primary))
    files = [("frames", (f"f{i}.jpg", jpeg_bytes, "image/jpeg")) for i in range(11)]

    resp = client.post("/recipes/extract/frames", files=files)

    assert resp.status_code == 400
    assert primary.calls == 0


def test_nearby_stores(client_for, stub_provider, extractor_factory):
    reply = ProviderReply(
        "gemini",
        ReplyShape.TEXT,
        text="ok",
        grounding_chunks=[{"maps": {"title": "FreshCo", "address": "2 Oak Ave", "uri": "https://maps.test/1"}}],
    )
    client = client_for(extractor_factory(stub_provider("gemini", reply)))

    resp = client.post("/stores/nearby", json={"ingredient": "galangal", "latitude": 43.6, "longitude": -79.4})

    assert resp.status_code == 200
    assert resp.json()["stores"] == [
        {"name": "FreshCo", "address": "2 Oak Ave", "uri": "https://maps.test/1", "rating": None}
    ]


def test_out_of_range_coordinates(client_for, stub_provider, extractor_factory):
    client = client_for(extractor_factory(stub_provider("gemini")))
    resp = client.post("/stores/nearby", json={"ingredient": "galangal", "latitude": 123, "longitude": 0})
    assert resp.status_code == 422


def test_cooking_help_never_errors(client_for, stub_provider, extractor_factory):
    primary = stub_provider("gemini", ProviderUnavailableError("down"))
    fallback = stub_provider("openai", ProviderUnavailableError("down"))
    client = client_for(extractor_factory(primary, fallback))

    resp = client.post("/cooking/help", json={"step_instruction": "Knead the dough"})

    assert resp.status_code == 200
    assert resp.json() == {"tip": "You got this! (Offline)"}
