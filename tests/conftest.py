from io import BytesIO

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from mise_recipes.app.api.deps import get_extractor
from mise_recipes.app.core.config import Settings
from mise_recipes.app.main import create_app
from mise_recipes.app.services.extraction_service import RecipeExtractor
from mise_recipes.app.services.providers.base import ProviderReply, ReplyShape


class StubProvider:
    """Scripted provider. Replays replies (or raises errors) in order; the last one repeats."""

    def __init__(self, name, *replies):
        self.name = name
        self.replies = list(replies)
        self.requests = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    async def generate(self, request):
        self.requests.append(request)
        if not self.replies:
            raise AssertionError(f"{self.name} was not expected to be called")
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply


def recipe_reply(body, provider="gemini") -> ProviderReply:
    return ProviderReply(provider=provider, shape=ReplyShape.OBJECT, body=body)


def make_jpeg(width: int = 64, height: int = 48, color=(200, 120, 40)) -> bytes:
    out = BytesIO()
    Image.new("RGB", (width, height), color).save(out, format="JPEG")
    return out.getvalue()


SATAY = {
    "title": "Chicken Satay",
    "description": "Grilled skewers",
    "prepTime": "15 mins",
    "cookTime": "10 mins",
    "servings": 4,
    "ingredients": [
        {"name": "chicken thighs", "amount": "500 g", "category": "protein"},
        {"name": "soy sauce", "amount": "2 tbsp"},
    ],
    "steps": [
        {"instruction": "Marinate the chicken.", "timeInSeconds": 1800},
        {"instruction": "Grill the skewers.", "timeInSeconds": 600, "warning": "Don't burn it!"},
    ],
}


@pytest.fixture
def stub_provider():
    return StubProvider


@pytest.fixture
def make_reply():
    return recipe_reply


@pytest.fixture
def satay():
    return {**SATAY, "ingredients": list(SATAY["ingredients"]), "steps": list(SATAY["steps"])}


@pytest.fixture
def jpeg_bytes():
    return make_jpeg()


@pytest.fixture
def jpeg_factory():
    return make_jpeg


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        GEMINI_API_KEY="test-gemini-key",
        OPENAI_API_KEY="test-openai-key",
        GEMINI_BASE_URL="https://gemini.test",
        OPENAI_BASE_URL="https://openai.test",
        FRAME_CAPTURE_INTERVAL_SECONDS=0.0,
    )


@pytest.fixture
def extractor_factory(settings):
    def _build(primary, fallback=None, **overrides):
        effective = settings.model_copy(update=overrides) if overrides else settings
        return RecipeExtractor(primary=primary, fallback=fallback or StubProvider("openai"), settings=effective)

    return _build


@pytest.fixture
def app():
    return create_app()


@pytest.fixture
def client_for(app):
    def _client(extractor):
        app.dependency_overrides[get_extractor] = lambda: extractor
        return TestClient(app)

    yield _client
    app.dependency_overrides.clear()
