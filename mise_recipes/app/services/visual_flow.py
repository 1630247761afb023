"""Two-stage "suggest then expand" flow for a single food photo.

    IDLE -> SUGGESTING -> AWAITING_SELECTION -> EXPANDING -> DONE
                  \\                                  \\-> FAILED
                   \\-> FAILED

Stage 2 may also start straight from IDLE with a caller-made suggestion.
"""
import enum
import logging
from typing import List, Optional, Union

from pydantic import BaseModel, Field

from mise_recipes.app.schemas.recipe import DietaryConstraintSet, Recipe, Suggestion
from mise_recipes.app.services.errors import ExtractionError
from mise_recipes.app.services.flow_state import FlowStateError, ObservableFlow

logger = logging.getLogger(__name__)


class VisualFlowState(str, enum.Enum):
    IDLE = "idle"
    SUGGESTING = "suggesting"
    AWAITING_SELECTION = "awaiting_selection"
    EXPANDING = "expanding"
    DONE = "done"
    FAILED = "failed"


class VisualFlowSnapshot(BaseModel):
    state: VisualFlowState
    suggestions: List[Suggestion] = Field(default_factory=list)
    selected: Optional[Suggestion] = None
    recipe: Optional[Recipe] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        """Stage 1 finished without candidates. This is not a failure."""
        return self.state == VisualFlowState.AWAITING_SELECTION and not self.suggestions


class TwoStageVisualFlow(ObservableFlow[VisualFlowState]):
    transitions = {
        VisualFlowState.IDLE: frozenset({VisualFlowState.SUGGESTING, VisualFlowState.EXPANDING}),
        VisualFlowState.SUGGESTING: frozenset({VisualFlowState.AWAITING_SELECTION, VisualFlowState.FAILED}),
        VisualFlowState.AWAITING_SELECTION: frozenset({VisualFlowState.EXPANDING, VisualFlowState.SUGGESTING}),
        VisualFlowState.EXPANDING: frozenset({VisualFlowState.DONE, VisualFlowState.FAILED}),
        VisualFlowState.FAILED: frozenset({VisualFlowState.SUGGESTING, VisualFlowState.EXPANDING}),
        VisualFlowState.DONE: frozenset(),
    }

    def __init__(
        self,
        extractor,
        image_bytes: bytes,
        constraints: Optional[DietaryConstraintSet] = None,
        mime_type: Optional[str] = None,
    ):
        super().__init__(VisualFlowState.IDLE)
        self.extractor = extractor
        self.image_bytes = image_bytes
        self.constraints = constraints or DietaryConstraintSet()
        self.mime_type = mime_type
        self.suggestions: List[Suggestion] = []
        self.selected: Optional[Suggestion] = None
        self.recipe: Optional[Recipe] = None
        self.error: Optional[ExtractionError] = None

    def snapshot(self) -> VisualFlowSnapshot:
        return VisualFlowSnapshot(
            state=self.state,
            suggestions=list(self.suggestions),
            selected=self.selected,
            recipe=self.recipe,
            error_code=self.error.error_code if self.error else None,
            error_message=self.error.message if self.error else None,
        )

    async def suggest(self) -> List[Suggestion]:
        self._require(VisualFlowState.IDLE, VisualFlowState.AWAITING_SELECTION, VisualFlowState.FAILED)
        self.error = None
        self._transition(VisualFlowState.SUGGESTING)
        try:
            suggestions = await self.extractor.suggest_from_image(self.image_bytes, self.constraints, self.mime_type)
        except ExtractionError as exc:
            self.error = exc
            self._transition(VisualFlowState.FAILED)
            raise
        self.suggestions = suggestions
        if not suggestions:
            logger.info("No recipe suggestions for this image")
        self._transition(VisualFlowState.AWAITING_SELECTION)
        return suggestions

    async def expand(self, choice: Union[Suggestion, int]) -> Recipe:
        self._require(VisualFlowState.IDLE, VisualFlowState.AWAITING_SELECTION, VisualFlowState.FAILED)
        if isinstance(choice, int):
            if not 0 <= choice < len(self.suggestions):
                raise FlowStateError(f"No suggestion at index {choice}")
            choice = self.suggestions[choice]
        self.selected = choice
        self.error = None
        self._transition(VisualFlowState.EXPANDING)
        try:
            recipe = await self.extractor.expand_suggestion(choice, self.image_bytes, self.constraints, self.mime_type)
        except ExtractionError as exc:
            self.error = exc
            self._transition(VisualFlowState.FAILED)
            raise
        self.recipe = recipe
        self._transition(VisualFlowState.DONE)
        return recipe
