#!/usr/bin/env python
"""
Run a single recipe extraction from the command line and print the Recipe JSON.

Run manually:
    python scripts/extract_recipe.py text "chicken satay with peanut sauce" --allergy peanuts --diet vegan
    python scripts/extract_recipe.py url https://example.com/some-recipe
    python scripts/extract_recipe.py image photo.jpg --pick 0
"""
import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from mise_recipes.app.schemas.recipe import DietaryConstraintSet
from mise_recipes.app.services.errors import ExtractionError
from mise_recipes.app.services.extraction_service import RecipeExtractor
from mise_recipes.app.services.visual_flow import TwoStageVisualFlow

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("extract_recipe")


async def run(args: argparse.Namespace) -> int:
    extractor = RecipeExtractor()
    constraints = DietaryConstraintSet(allergies=args.allergy, diets=args.diet)

    if args.mode == "text":
        recipe = await extractor.parse_text(args.value, constraints)
    elif args.mode == "url":
        recipe = await extractor.extract_from_url(args.value, constraints)
    else:
        flow = TwoStageVisualFlow(extractor, Path(args.value).read_bytes(), constraints)
        suggestions = await flow.suggest()
        if flow.snapshot().is_empty:
            logger.warning("No recipes could be suggested for %s", args.value)
            return 1
        for idx, suggestion in enumerate(suggestions):
            logger.info("[%d] %s: %s", idx, suggestion.title, suggestion.description)
        recipe = await flow.expand(min(args.pick, len(suggestions) - 1))

    print(json.dumps(recipe.model_dump(mode="json", by_alias=True), indent=2))
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Extract a structured recipe")
    parser.add_argument("mode", choices=["text", "url", "image"])
    parser.add_argument("value", help="Recipe text, a URL, or a path to a food photo")
    parser.add_argument("--allergy", action="append", default=[])
    parser.add_argument("--diet", action="append", default=[])
    parser.add_argument("--pick", type=int, default=0, help="Suggestion index to expand (image mode)")
    args = parser.parse_args()
    try:
        return asyncio.run(run(args))
    except ExtractionError as exc:
        logger.error("%s: %s", exc.error_code, exc.message)
        return 2


if __name__ == "__main__":
    sys.exit(main())
