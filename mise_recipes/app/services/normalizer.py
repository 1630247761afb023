"""Map provider replies onto canonical Recipe / Suggestion records.

Both functions are total: they never raise. Bad nested entries are dropped and
missing lists become empty lists.
"""
import logging
import math
import uuid
from typing import Any, Dict, List, Optional, Union

from mise_recipes.app.schemas.recipe import Attribution, Ingredient, Recipe, Step, Suggestion
from mise_recipes.app.services.output_contract import envelope_items
from mise_recipes.app.services.providers.base import ImagePart, ProviderReply, ReplyShape

logger = logging.getLogger(__name__)

DEFAULT_PLACEHOLDER_IMAGE_URL = "https://picsum.photos/800/600"


def _text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _strings(value: Any) -> List[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    return [text for text in (_text(v) for v in value) if text]


def _ingredient(raw: Any) -> Optional[Ingredient]:
    if isinstance(raw, str):
        raw = {"name": raw}
    if not isinstance(raw, dict):
        return None
    name = _text(raw.get("name") or raw.get("label") or raw.get("text"))
    if not name:
        return None
    return Ingredient(
        name=name,
        amount=_text(raw.get("amount") or raw.get("quantity")) or "",
        category=_text(raw.get("category")),
    )


def _step(raw: Any) -> Optional[Step]:
    if isinstance(raw, str):
        raw = {"instruction": raw}
    if not isinstance(raw, dict):
        return None
    instruction = _text(raw.get("instruction") or raw.get("text") or raw.get("description"))
    if not instruction:
        return None
    seconds = _number(raw.get("timeInSeconds", raw.get("time_in_seconds")))
    return Step(
        instruction=instruction,
        time_in_seconds=int(seconds) if seconds is not None and seconds >= 0 else None,
        tip=_text(raw.get("tip")),
        warning=_text(raw.get("warning")),
        action_verb=_text(raw.get("actionVerb", raw.get("action_verb"))),
    )


def _attribution(raw: Dict[str, Any]) -> Optional[Attribution]:
    nested = raw.get("attribution") if isinstance(raw.get("attribution"), dict) else {}
    fields = {
        "original_author": _text(raw.get("originalAuthor") or nested.get("originalAuthor")),
        "original_source": _text(raw.get("originalSource") or nested.get("originalSource")),
        "social_handle": _text(raw.get("socialHandle") or nested.get("socialHandle")),
    }
    if not any(fields.values()):
        return None
    return Attribution(**fields)


def _body(reply_or_body: Union[ProviderReply, Any]) -> Any:
    if isinstance(reply_or_body, ProviderReply):
        if reply_or_body.shape is ReplyShape.TEXT:
            return None
        return reply_or_body.body
    return reply_or_body


def normalize_recipe(
    reply_or_body: Union[ProviderReply, Any],
    *,
    image: Optional[ImagePart] = None,
    source_url: Optional[str] = None,
    author: str = "AI Chef",
    placeholder_image_url: str = DEFAULT_PLACEHOLDER_IMAGE_URL,
) -> Recipe:
    raw = _body(reply_or_body)
    if isinstance(raw, list) and raw and isinstance(raw[0], dict):
        raw = raw[0]
    if not isinstance(raw, dict):
        logger.warning("Normalizing a non-object recipe body (%s)", type(raw).__name__)
        raw = {}

    ingredients_in = raw.get("ingredients") if isinstance(raw.get("ingredients"), list) else []
    steps_in = raw.get("steps") if isinstance(raw.get("steps"), list) else []
    ingredients = [i for i in (_ingredient(x) for x in ingredients_in) if i is not None]
    steps = [s for s in (_step(x) for x in steps_in) if s is not None]

    if image is not None:
        image_url = image.data_url()
    else:
        image_url = _text(raw.get("imageUrl")) or placeholder_image_url

    return Recipe(
        id=str(uuid.uuid4()),
        title=_text(raw.get("title") or raw.get("name")) or "Untitled Recipe",
        description=_text(raw.get("description")),
        prep_time=_text(raw.get("prepTime")),
        cook_time=_text(raw.get("cookTime")),
        servings=_number(raw.get("servings")),
        ingredients=ingredients,
        steps=steps,
        image_url=image_url,
        source_url=source_url or _text(raw.get("sourceUrl")),
        music_mood=_text(raw.get("musicMood")),
        dietary_tags=_strings(raw.get("dietaryTags")),
        allergens=_strings(raw.get("allergens")),
        attribution=_attribution(raw),
        author=author,
        is_premium=False,
        is_public=False,
        is_offline=False,
        reviews=[],
    )


def normalize_suggestions(reply_or_body: Union[ProviderReply, Any], limit: int = 6) -> List[Suggestion]:
    if isinstance(reply_or_body, ProviderReply):
        shape = reply_or_body.shape
        body = reply_or_body.body
    else:
        body = reply_or_body
        shape = ReplyShape.ARRAY if isinstance(body, list) else ReplyShape.ENVELOPE

    if shape is ReplyShape.ARRAY:
        items = body if isinstance(body, list) else []
    elif shape is ReplyShape.ENVELOPE:
        items = (envelope_items(body) if isinstance(body, dict) else None) or []
    else:
        items = []

    suggestions: List[Suggestion] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        title = _text(item.get("title") or item.get("name"))
        if not title:
            continue
        suggestions.append(Suggestion(title=title, description=_text(item.get("description")) or ""))
        if len(suggestions) >= limit:
            break
    return suggestions
