from mise_recipes.app.core.config import get_settings
from mise_recipes.app.services.extraction_service import RecipeExtractor
from mise_recipes.app.services.providers.gemini import GeminiClient
from mise_recipes.app.services.providers.openai import OpenAIClient


def get_extractor() -> RecipeExtractor:
    # Credentials are resolved on first provider call, not here.
    settings = get_settings()
    return RecipeExtractor(
        primary=GeminiClient(settings),
        fallback=OpenAIClient(settings),
        settings=settings,
    )
