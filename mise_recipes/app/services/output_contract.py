"""Declarative output contract shared by every extraction operation.

The field table below is the single description of what a valid recipe looks
like. Provider-specific renderings (Gemini ``responseSchema``, the JSON hint
used in fallback prompts) and response validation are all derived from it.
"""
import enum
import json
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple

from mise_recipes.app.services.errors import MalformedResponseError

CONTRACT_VERSION = 1
SUGGESTION_ENVELOPE_KEY = "suggestions"

# (name, type, required); nested arrays reference the item tables below.
INGREDIENT_FIELDS: Tuple[Tuple[str, str, bool], ...] = (
    ("name", "string", True),
    ("amount", "string", False),
    ("category", "string", False),
)
STEP_FIELDS: Tuple[Tuple[str, str, bool], ...] = (
    ("instruction", "string", True),
    ("timeInSeconds", "number", False),
    ("tip", "string", False),
    ("warning", "string", False),
    ("actionVerb", "string", False),
)
RECIPE_FIELDS: Tuple[Tuple[str, str, bool], ...] = (
    ("title", "string", True),
    ("description", "string", False),
    ("prepTime", "string", False),
    ("cookTime", "string", False),
    ("servings", "number", False),
    ("ingredients", "ingredient[]", True),
    ("steps", "step[]", True),
    ("musicMood", "string", False),
    ("dietaryTags", "string[]", False),
    ("allergens", "string[]", False),
)
ATTRIBUTION_FIELDS: Tuple[Tuple[str, str, bool], ...] = (
    ("originalAuthor", "string", False),
    ("originalSource", "string", False),
    ("socialHandle", "string", False),
)
SUGGESTION_FIELDS: Tuple[Tuple[str, str, bool], ...] = (
    ("title", "string", True),
    ("description", "string", True),
)

_GEMINI_SCALARS = {"string": "STRING", "number": "NUMBER"}
_ITEM_TABLES = {"ingredient": INGREDIENT_FIELDS, "step": STEP_FIELDS}


class ContractKind(str, enum.Enum):
    RECIPE = "recipe"
    SUGGESTIONS = "suggestions"


def _gemini_type(type_name: str) -> Dict[str, Any]:
    if type_name.endswith("[]"):
        item = type_name[:-2]
        if item in _ITEM_TABLES:
            return {"type": "ARRAY", "items": _gemini_object(_ITEM_TABLES[item])}
        return {"type": "ARRAY", "items": {"type": _GEMINI_SCALARS[item]}}
    return {"type": _GEMINI_SCALARS[type_name]}


def _gemini_object(fields: Tuple[Tuple[str, str, bool], ...]) -> Dict[str, Any]:
    schema: Dict[str, Any] = {
        "type": "OBJECT",
        "properties": {name: _gemini_type(type_name) for name, type_name, _ in fields},
    }
    required = [name for name, _, req in fields if req]
    if required:
        schema["required"] = required
    return schema


def _hint(fields: Tuple[Tuple[str, str, bool], ...]) -> str:
    parts = []
    for name, type_name, required in fields:
        if type_name.endswith("[]") and type_name[:-2] in _ITEM_TABLES:
            rendered = f"[{_hint(_ITEM_TABLES[type_name[:-2]])}]"
        else:
            rendered = type_name
        parts.append(f"{name}{'' if required else '?'}: {rendered}")
    return "{ " + ", ".join(parts) + " }"


@dataclass(frozen=True)
class OutputContract:
    kind: ContractKind = ContractKind.RECIPE
    attribution: bool = False
    grounding: bool = False
    version: int = CONTRACT_VERSION

    @property
    def fields(self) -> Tuple[Tuple[str, str, bool], ...]:
        if self.kind is ContractKind.SUGGESTIONS:
            return SUGGESTION_FIELDS
        if self.attribution:
            # Attribution sits between the timing fields and the lists, as in the prompt examples.
            return RECIPE_FIELDS[:5] + ATTRIBUTION_FIELDS + RECIPE_FIELDS[5:]
        return RECIPE_FIELDS

    def gemini_schema(self) -> Dict[str, Any]:
        return _gemini_schema(self)

    def prompt_hint(self) -> str:
        if self.kind is ContractKind.SUGGESTIONS:
            return "{ " + f"{SUGGESTION_ENVELOPE_KEY}: [{_hint(self.fields)}]" + " }"
        return _hint(self.fields)

    def validate(self, body: Any) -> Any:
        """Repair what can be repaired, raise MalformedResponseError otherwise."""
        if self.kind is ContractKind.SUGGESTIONS:
            return _validate_suggestions(body)
        return _validate_recipe(body)


@lru_cache(maxsize=None)
def _gemini_schema(contract: OutputContract) -> Dict[str, Any]:
    if contract.kind is ContractKind.SUGGESTIONS:
        return {"type": "ARRAY", "items": _gemini_object(contract.fields)}
    return _gemini_object(contract.fields)


def _validate_recipe(body: Any) -> Dict[str, Any]:
    if isinstance(body, list) and len(body) == 1 and isinstance(body[0], dict):
        body = body[0]
    if isinstance(body, dict) and isinstance(body.get("recipe"), dict):
        body = body["recipe"]
    if not isinstance(body, dict):
        raise MalformedResponseError(f"Expected a recipe object, got {type(body).__name__}")
    if body.get("error"):
        raise MalformedResponseError(f"Model returned an error instead of a recipe: {str(body['error'])[:200]}")
    repaired = dict(body)
    title = repaired.get("title") or repaired.get("name")
    if not isinstance(title, str) or not title.strip():
        raise MalformedResponseError("Recipe response is missing a title")
    repaired["title"] = title.strip()
    for key in ("ingredients", "steps"):
        if not isinstance(repaired.get(key), list):
            repaired[key] = []
    return repaired


def envelope_items(body: Dict[str, Any]) -> Optional[List[Any]]:
    """Return the list inside a single-key envelope object, if there is one."""
    if isinstance(body.get(SUGGESTION_ENVELOPE_KEY), list):
        return body[SUGGESTION_ENVELOPE_KEY]
    lists = [value for value in body.values() if isinstance(value, list)]
    if len(body) == 1 and lists:
        return lists[0]
    if not body:
        return []
    return None


def _validate_suggestions(body: Any) -> Any:
    # The envelope is left in place; unwrapping belongs to the normalizer.
    if isinstance(body, list):
        return body
    if isinstance(body, dict) and envelope_items(body) is not None:
        return body
    raise MalformedResponseError(f"Expected a suggestion list, got {json.dumps(body)[:200]}")


RECIPE_CONTRACT = OutputContract()
ATTRIBUTED_RECIPE_CONTRACT = OutputContract(attribution=True)
GROUNDED_ATTRIBUTED_RECIPE_CONTRACT = OutputContract(attribution=True, grounding=True)
SUGGESTION_CONTRACT = OutputContract(kind=ContractKind.SUGGESTIONS, grounding=True)
