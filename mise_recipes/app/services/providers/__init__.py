from mise_recipes.app.services.providers.base import (
    Grounding,
    GroundingKind,
    ImagePart,
    ProviderReply,
    ProviderRequest,
    ReplyShape,
)
from mise_recipes.app.services.providers.cascade import run_with_fallback
from mise_recipes.app.services.providers.gemini import GeminiClient
from mise_recipes.app.services.providers.openai import OpenAIClient

__all__ = [
    "GeminiClient",
    "Grounding",
    "GroundingKind",
    "ImagePart",
    "OpenAIClient",
    "ProviderReply",
    "ProviderRequest",
    "ReplyShape",
    "run_with_fallback",
]
