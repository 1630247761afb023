from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Ingredient(CamelModel):
    name: str
    amount: str = ""
    category: Optional[str] = None


class Step(CamelModel):
    instruction: str
    time_in_seconds: Optional[int] = Field(None, ge=0)
    tip: Optional[str] = None
    warning: Optional[str] = None
    action_verb: Optional[str] = None


class Attribution(CamelModel):
    original_author: Optional[str] = None
    original_source: Optional[str] = None
    social_handle: Optional[str] = None


class Recipe(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, validate_assignment=True)

    id: str = Field(frozen=True)
    title: str
    description: Optional[str] = None
    prep_time: Optional[str] = None
    cook_time: Optional[str] = None
    servings: Optional[float] = None
    ingredients: List[Ingredient] = Field(default_factory=list)
    steps: List[Step] = Field(default_factory=list)
    image_url: Optional[str] = None
    source_url: Optional[str] = None
    music_mood: Optional[str] = None
    dietary_tags: List[str] = Field(default_factory=list)
    allergens: List[str] = Field(default_factory=list)
    attribution: Optional[Attribution] = None
    author: str = "AI Chef"
    is_premium: bool = False
    is_public: bool = False
    is_offline: bool = False
    reviews: List[dict] = Field(default_factory=list)

    @field_validator("dietary_tags", "allergens")
    @classmethod
    def _dedupe(cls, values: List[str]) -> List[str]:
        # Set semantics, first occurrence keeps its position.
        return list(dict.fromkeys(values))


class Suggestion(CamelModel):
    title: str
    description: str = ""


class StoreLocation(CamelModel):
    name: str
    address: str
    uri: Optional[str] = None
    rating: Optional[float] = None


class DietaryConstraintSet(BaseModel):
    """Allergies and diets for a single extraction call. Never mutated."""

    model_config = ConfigDict(frozen=True)

    allergies: Tuple[str, ...] = ()
    diets: Tuple[str, ...] = ()

    @field_validator("allergies", "diets", mode="before")
    @classmethod
    def _clean(cls, values):
        if values is None:
            return ()
        if isinstance(values, str):
            values = values.split(",")
        cleaned = [str(v).strip() for v in values if v is not None and str(v).strip()]
        return tuple(dict.fromkeys(cleaned))

    @property
    def is_empty(self) -> bool:
        return not self.allergies and not self.diets
