import pytest

from mise_recipes.app.services.errors import MalformedResponseError
from mise_recipes.app.services.output_contract import (
    ATTRIBUTED_RECIPE_CONTRACT,
    RECIPE_CONTRACT,
    SUGGESTION_CONTRACT,
    OutputContract,
)


def test_recipe_schema_required_fields():
    schema = RECIPE_CONTRACT.gemini_schema()
    assert schema["type"] == "OBJECT"
    assert schema["required"] == ["title", "ingredients", "steps"]
    steps = schema["properties"]["steps"]
    assert steps["type"] == "ARRAY"
    assert steps["items"]["properties"]["timeInSeconds"] == {"type": "NUMBER"}
    assert "originalAuthor" not in schema["properties"]


def test_attribution_fields_toggle():
    props = ATTRIBUTED_RECIPE_CONTRACT.gemini_schema()["properties"]
    for key in ("originalAuthor", "originalSource", "socialHandle"):
        assert props[key] == {"type": "STRING"}
    assert OutputContract(attribution=True) == ATTRIBUTED_RECIPE_CONTRACT


def test_suggestion_schema_is_bare_array():
    schema = SUGGESTION_CONTRACT.gemini_schema()
    assert schema["type"] == "ARRAY"
    assert schema["items"]["required"] == ["title", "description"]
    assert SUGGESTION_CONTRACT.prompt_hint().startswith("{ suggestions: [")


def test_schema_is_built_once():
    assert RECIPE_CONTRACT.gemini_schema() is RECIPE_CONTRACT.gemini_schema()


def test_prompt_hint_marks_optional_fields():
    hint = RECIPE_CONTRACT.prompt_hint()
    assert "title: string" in hint
    assert "prepTime?: string" in hint
    assert "ingredients: [{ name: string" in hint


def test_validate_repairs_missing_lists_and_name_alias():
    body = RECIPE_CONTRACT.validate({"recipe": {"name": "Soup"}})
    assert body["title"] == "Soup"
    assert body["ingredients"] == []
    assert body["steps"] == []


@pytest.mark.parametrize("body", [{"description": "no title"}, "just text", {"error": "invalid"}])
def test_validate_rejects_unusable_recipe(body):
    with pytest.raises(MalformedResponseError):
        RECIPE_CONTRACT.validate(body)


def test_validate_suggestions_keeps_envelope():
    envelope = {"suggestions": [{"title": "A", "description": "B"}]}
    assert SUGGESTION_CONTRACT.validate(envelope) is envelope
    assert SUGGESTION_CONTRACT.validate([]) == []
    with pytest.raises(MalformedResponseError):
        SUGGESTION_CONTRACT.validate({"a": 1, "b": 2})
