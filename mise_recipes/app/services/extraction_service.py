"""Entry operations for recipe extraction.

Each operation builds one ProviderRequest (prompt + dietary directive + output
contract + optional images/grounding), runs it through the primary/fallback
cascade, and normalizes the reply. Operations that need a grounding tool have
no fallback, since the fallback provider cannot ground.
"""
import logging
from typing import List, Optional, Sequence

from mise_recipes.app.core.config import Settings, get_settings
from mise_recipes.app.schemas.recipe import DietaryConstraintSet, Recipe, StoreLocation, Suggestion
from mise_recipes.app.services import dietary, normalizer
from mise_recipes.app.services.errors import ExtractionError
from mise_recipes.app.services.output_contract import (
    ATTRIBUTED_RECIPE_CONTRACT,
    GROUNDED_ATTRIBUTED_RECIPE_CONTRACT,
    RECIPE_CONTRACT,
    SUGGESTION_CONTRACT,
)
from mise_recipes.app.services.providers.base import (
    Grounding,
    GroundingKind,
    ImagePart,
    ProviderReply,
    ProviderRequest,
    detect_content_type,
)
from mise_recipes.app.services.providers.cascade import ProviderClient, run_with_fallback
from mise_recipes.app.services.providers.gemini import GeminiClient
from mise_recipes.app.services.providers.openai import OpenAIClient
from mise_recipes.app.services.store_locator import StoreLocator

logger = logging.getLogger(__name__)

MAX_FRAMES = 10

# Operations with a fallback path. Anything else fails on the primary alone.
FALLBACK_OPERATIONS = frozenset({"parse_text", "suggest_from_image", "expand_suggestion", "cooking_help"})

ATTRIBUTION_DIRECTIVE = (
    "ATTRIBUTION: Scan every frame for on-screen creator identifiers such as social handles (@name), "
    "watermarks, channel names or logos. If you find one, fill originalAuthor, originalSource "
    "(e.g. TikTok, YouTube, Instagram) and socialHandle. If no identifier is visible, leave these "
    "fields out entirely; never guess or invent a creator."
)

COOKING_HELP_DEFAULT = "You got this!"
COOKING_HELP_OFFLINE = "You got this! (Offline)"


def _constraints(constraints: Optional[DietaryConstraintSet]) -> DietaryConstraintSet:
    return constraints if constraints is not None else DietaryConstraintSet()


class RecipeExtractor:
    def __init__(
        self,
        primary: Optional[ProviderClient] = None,
        fallback: Optional[ProviderClient] = None,
        settings: Optional[Settings] = None,
        store_locator: Optional[StoreLocator] = None,
    ):
        self.settings = settings or get_settings()
        self.primary = primary or GeminiClient(self.settings)
        self.fallback = fallback or OpenAIClient(self.settings)
        self.store_locator = store_locator or StoreLocator(
            self.primary, model=self.settings.gemini_maps_model, limit=self.settings.store_result_limit
        )

    async def _call(self, operation: str, request: ProviderRequest) -> ProviderReply:
        fallback = self.fallback if operation in FALLBACK_OPERATIONS else None
        return await run_with_fallback(operation, request, self.primary, fallback)

    async def _recipe(
        self,
        operation: str,
        request: ProviderRequest,
        constraints: DietaryConstraintSet,
        *,
        image: Optional[ImagePart] = None,
        source_url: Optional[str] = None,
        author: str = "AI Chef",
    ) -> Recipe:
        reply = await self._call(operation, request)
        recipe = self._normalize(reply, image=image, source_url=source_url, author=author)
        return await self._enforce_constraints(
            operation, request, reply.provider, recipe, constraints, image, source_url, author
        )

    def _normalize(self, reply: ProviderReply, **kwargs) -> Recipe:
        return normalizer.normalize_recipe(
            reply, placeholder_image_url=self.settings.recipe_placeholder_image_url, **kwargs
        )

    async def _enforce_constraints(
        self,
        operation: str,
        request: ProviderRequest,
        answered_by: str,
        recipe: Recipe,
        constraints: DietaryConstraintSet,
        image: Optional[ImagePart],
        source_url: Optional[str],
        author: str,
    ) -> Recipe:
        offenders = dietary.find_unsubstituted_allergens(recipe, constraints)
        if not offenders:
            return recipe
        logger.warning(
            "%s returned %d ingredient(s) that ignore the user's allergies",
            operation,
            len(offenders),
        )
        # The re-prompt goes to the primary only, outside the cascade. A fallback
        # answer is marked as is so the fallback is never called twice.
        if self.settings.dietary_reprompt_enabled and answered_by != getattr(self.fallback, "name", None):
            corrected = ProviderRequest(
                prompt=request.prompt + dietary.corrective_directive(recipe, offenders),
                system_prompt=request.system_prompt,
                images=request.images,
                contract=request.contract,
                grounding=request.grounding,
                model=request.model,
                temperature=request.temperature,
            )
            try:
                reply = await self.primary.generate(corrected)
            except ExtractionError as exc:
                logger.warning("Dietary re-prompt for %s failed, keeping first answer: %s", operation, exc.message)
            else:
                recipe = self._normalize(reply, image=image, source_url=source_url, author=author)
                offenders = dietary.find_unsubstituted_allergens(recipe, constraints)
        return dietary.mark_unsubstituted(recipe, offenders)

    async def parse_text(self, text: str, constraints: Optional[DietaryConstraintSet] = None) -> Recipe:
        """Structure free text (a pasted recipe or a dish description) into a Recipe."""
        constraints = _constraints(constraints)
        directive = dietary.directive_for(constraints)
        request = ProviderRequest(
            system_prompt="You are an expert chef API and recipe parser.",
            prompt=f'Input: "{text}". {directive}\nStructure the input into a recipe JSON.',
            contract=RECIPE_CONTRACT,
        )
        return await self._recipe("parse_text", request, constraints)

    async def extract_from_url(self, url: str, constraints: Optional[DietaryConstraintSet] = None) -> Recipe:
        """Extract a recipe and its original creator from a web page or video link.

        Relies on search grounding, so there is no fallback: a provider failure
        surfaces as UnsupportedFallbackError.
        """
        constraints = _constraints(constraints)
        directive = dietary.directive_for(constraints)
        prompt = (
            f"I have this URL: {url}\n"
            "Tasks:\n"
            "1. Visit the URL/Search to find the content.\n"
            "2. Extract the recipe details.\n"
            "3. Identify the Original Creator/Author Name and their Social Handle if available.\n"
            "4. Format into JSON.\n"
            f"{directive}"
        )
        request = ProviderRequest(
            prompt=prompt,
            contract=GROUNDED_ATTRIBUTED_RECIPE_CONTRACT,
            grounding=Grounding(GroundingKind.SEARCH),
        )
        return await self._recipe("extract_from_url", request, constraints, source_url=url, author="Web Import")

    async def suggest_from_image(
        self,
        image_bytes: bytes,
        constraints: Optional[DietaryConstraintSet] = None,
        mime_type: Optional[str] = None,
    ) -> List[Suggestion]:
        """Stage 1 of the visual flow. An empty list is a valid answer, not an error."""
        constraints = _constraints(constraints)
        directive = dietary.directive_for(constraints)
        count = self.settings.recipe_suggestion_count
        request = ProviderRequest(
            system_prompt="You are a food expert.",
            prompt=(
                f"Analyze this image of food. Search for {count} distinct, accurate recipes that match this image. "
                f"{directive}\nReturn title and description."
            ),
            images=[ImagePart(image_bytes, mime_type or detect_content_type(image_bytes))],
            contract=SUGGESTION_CONTRACT,
            grounding=Grounding(GroundingKind.SEARCH),
        )
        reply = await self._call("suggest_from_image", request)
        suggestions = normalizer.normalize_suggestions(reply, limit=count)
        logger.info("Image suggestion returned %d candidate(s) via %s", len(suggestions), reply.provider)
        return suggestions

    async def expand_suggestion(
        self,
        suggestion: Suggestion,
        image_bytes: Optional[bytes] = None,
        constraints: Optional[DietaryConstraintSet] = None,
        mime_type: Optional[str] = None,
    ) -> Recipe:
        """Stage 2 of the visual flow.

        The image is only used as the recipe's media; it is not sent to the model again.
        """
        constraints = _constraints(constraints)
        directive = dietary.directive_for(constraints)
        request = ProviderRequest(
            system_prompt="You are an expert chef.",
            prompt=(
                f'Create a detailed recipe for "{suggestion.title}". '
                f"Keep that exact dish name as the title. Context: {suggestion.description}. {directive}"
            ),
            contract=RECIPE_CONTRACT,
        )
        image = ImagePart(image_bytes, mime_type or detect_content_type(image_bytes)) if image_bytes else None
        return await self._recipe("expand_suggestion", request, constraints, image=image)

    async def extract_from_frames(
        self, frames: Sequence[bytes], constraints: Optional[DietaryConstraintSet] = None
    ) -> Recipe:
        """Extract one recipe from a burst of video frames in a single multi-part request."""
        if not frames:
            raise ValueError("No frames were captured")
        frames = list(frames)[:MAX_FRAMES]
        constraints = _constraints(constraints)
        directive = dietary.directive_for(constraints)
        images = [ImagePart(frame, detect_content_type(frame)) for frame in frames]
        request = ProviderRequest(
            system_prompt="You are an expert chef watching a cooking video.",
            prompt=(
                f"These {len(frames)} frames were captured in order from a cooking video. "
                "Work out the dish being made and write the full recipe, ingredients and steps in order.\n"
                f"{ATTRIBUTION_DIRECTIVE}\n{directive}"
            ),
            images=images,
            contract=ATTRIBUTED_RECIPE_CONTRACT,
        )
        middle = images[len(images) // 2]
        return await self._recipe("extract_from_frames", request, constraints, image=middle, author="Video AI")

    async def find_stores(self, ingredient: str, latitude: float, longitude: float) -> List[StoreLocation]:
        return await self.store_locator.find(ingredient, latitude, longitude)

    async def cooking_help(self, step_instruction: str, context: str) -> str:
        """Short encouraging tip for a cooking step. Never raises."""
        request = ProviderRequest(
            system_prompt="You are a helpful cooking assistant. Keep it short (max 20 words), funny or encouraging.",
            prompt=f'Step: "{step_instruction}". Context: "{context}". Give a very short, funny, or encouraging tip.',
        )
        try:
            reply = await self._call("cooking_help", request)
        except ExtractionError as exc:
            logger.warning("Cooking help unavailable: %s", exc.message)
            return COOKING_HELP_OFFLINE
        return reply.text.strip() or COOKING_HELP_DEFAULT
