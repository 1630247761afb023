import logging
import re
from typing import Iterable, List, Sequence, Tuple

from mise_recipes.app.schemas.recipe import DietaryConstraintSet, Ingredient, Recipe

logger = logging.getLogger(__name__)

SUBSTITUTION_MARKER = "(substitute)"

_SUBSTITUTION_HINTS = (
    "substitut",
    "replacement",
    "instead of",
    "in place of",
    "alternative",
    "swap",
)


def format_dietary_directive(allergies: Sequence[str] = (), diets: Sequence[str] = ()) -> str:
    """Build the prose directive injected into every extraction prompt.

    Returns an empty string when there is nothing to enforce.
    """
    allergies = [a for a in allergies if a]
    diets = [d for d in diets if d]
    if not allergies and not diets:
        return ""
    return (
        "\nIMPORTANT DIETARY ENFORCEMENT:\n"
        f"User Allergies: {', '.join(allergies) or 'none'}.\n"
        f"User Diet: {', '.join(diets) or 'none'}.\n"
        "\n"
        "CRITICAL INSTRUCTION:\n"
        "1. Check if the recipe contains any restricted ingredients.\n"
        "2. If it does, YOU MUST SUBSTITUTE them with valid alternatives that fit the diet.\n"
        f"3. In the 'ingredients' list, explicitly name each substitution and mark it with '{SUBSTITUTION_MARKER}', "
        "e.g. 'sunflower seed butter (substitute)'.\n"
        "4. Rewrite the 'steps' so the cooking instructions use the new ingredients; do not just annotate them.\n"
    )


def directive_for(constraints: DietaryConstraintSet) -> str:
    return format_dietary_directive(constraints.allergies, constraints.diets)


def _term_forms(term: str) -> List[str]:
    """The term as given plus its likely singular and plural spellings."""
    word = term.strip().lower()
    forms = {word}
    if word.endswith("ies") and len(word) > 4:
        forms.add(word[:-3] + "y")
    elif word.endswith("es") and len(word) > 4:
        # "tomatoes" -> "tomato", "olives" -> "olive"
        forms.update({word[:-2], word[:-1]})
    elif word.endswith("s") and len(word) > 3:
        forms.add(word[:-1])
    else:
        forms.update({word + "s", word + "es"})
    return sorted(forms, key=len, reverse=True)


def _term_pattern(term: str) -> re.Pattern:
    alternatives = "|".join(re.escape(form) for form in _term_forms(term))
    return re.compile(rf"\b(?:{alternatives})\b", re.IGNORECASE)


def _free_of_pattern(term: str) -> re.Pattern:
    # "peanut-free", "peanut free"; "sugar-free peanut butter" still contains peanut
    alternatives = "|".join(re.escape(form) for form in _term_forms(term))
    return re.compile(rf"\b(?:{alternatives})[\s-]*free\b", re.IGNORECASE)


def is_marked_substitution(name: str) -> bool:
    lowered = name.lower()
    return any(hint in lowered for hint in _SUBSTITUTION_HINTS)


def find_unsubstituted_allergens(
    recipe: Recipe, constraints: DietaryConstraintSet
) -> List[Tuple[int, str]]:
    """Return (ingredient index, allergy) pairs that still name an allergen verbatim."""
    offenders: List[Tuple[int, str]] = []
    patterns = [
        (allergy, _term_pattern(allergy), _free_of_pattern(allergy)) for allergy in constraints.allergies
    ]
    if not patterns:
        return offenders
    for idx, ingredient in enumerate(recipe.ingredients):
        if is_marked_substitution(ingredient.name):
            continue
        for allergy, pattern, free_of in patterns:
            if free_of.search(ingredient.name):
                continue
            if pattern.search(ingredient.name):
                offenders.append((idx, allergy))
                break
    return offenders


def mark_unsubstituted(recipe: Recipe, offenders: Iterable[Tuple[int, str]]) -> Recipe:
    """Flag ingredients the model failed to substitute so later allergy checks still see them."""
    offenders = list(offenders)
    if not offenders:
        return recipe
    ingredients: List[Ingredient] = list(recipe.ingredients)
    allergens = list(recipe.allergens)
    for idx, allergy in offenders:
        original = ingredients[idx]
        ingredients[idx] = original.model_copy(
            update={"name": f"{original.name} (substitute required: {allergy})"}
        )
        allergens.append(allergy)
        logger.warning("Ingredient %r still contains allergen %r after extraction", original.name, allergy)
    return recipe.model_copy(update={"ingredients": ingredients, "allergens": list(dict.fromkeys(allergens))})


def corrective_directive(recipe: Recipe, offenders: Iterable[Tuple[int, str]]) -> str:
    lines = [
        f"- '{recipe.ingredients[idx].name}' contains {allergy}"
        for idx, allergy in offenders
    ]
    return (
        "\nThe previous answer still used restricted ingredients:\n"
        + "\n".join(lines)
        + f"\nReplace each of them with a safe alternative, mark the new name with '{SUBSTITUTION_MARKER}', "
        "and rewrite every step that used them.\n"
    )
