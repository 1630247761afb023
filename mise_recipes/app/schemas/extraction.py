from typing import List, Optional

from pydantic import BaseModel, Field

from mise_recipes.app.schemas.recipe import DietaryConstraintSet, StoreLocation, Suggestion


class ConstraintFields(BaseModel):
    allergies: List[str] = Field(default_factory=list)
    diets: List[str] = Field(default_factory=list)

    def constraints(self) -> DietaryConstraintSet:
        return DietaryConstraintSet(allergies=self.allergies, diets=self.diets)


class TextExtractionRequest(ConstraintFields):
    text: str = Field(..., min_length=1)


class UrlExtractionRequest(ConstraintFields):
    url: str = Field(..., min_length=4)


class SuggestionListResponse(BaseModel):
    suggestions: List[Suggestion]
    empty: bool


class StoreLookupRequest(BaseModel):
    ingredient: str = Field(..., min_length=1)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class StoreLookupResponse(BaseModel):
    stores: List[StoreLocation]


class CookingHelpRequest(BaseModel):
    step_instruction: str = Field(..., min_length=1)
    context: Optional[str] = ""


class CookingHelpResponse(BaseModel):
    tip: str
