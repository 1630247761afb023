import logging
from io import BytesIO
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from PIL import Image, UnidentifiedImageError

from mise_recipes.app.api.deps import get_extractor
from mise_recipes.app.core.config import get_settings
from mise_recipes.app.schemas.extraction import (
    CookingHelpRequest,
    CookingHelpResponse,
    StoreLookupRequest,
    StoreLookupResponse,
    SuggestionListResponse,
    TextExtractionRequest,
    UrlExtractionRequest,
)
from mise_recipes.app.schemas.recipe import DietaryConstraintSet, Recipe, Suggestion
from mise_recipes.app.services.extraction_service import RecipeExtractor
from mise_recipes.app.services.frame_batch import MAX_FRAMES, FrameBatchCapture, StaticFrameSource
from mise_recipes.app.services.visual_flow import TwoStageVisualFlow

router = APIRouter(tags=["extraction"])
logger = logging.getLogger(__name__)


async def _read_image(upload: UploadFile) -> bytes:
    settings = get_settings()
    raw = await upload.read()
    if not raw:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty image upload")
    if settings.recipe_image_max_bytes and len(raw) > settings.recipe_image_max_bytes:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="Image too large")
    try:
        Image.open(BytesIO(raw)).verify()
    except (UnidentifiedImageError, OSError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unrecognized image file") from None
    return raw


def _image_mime(upload: UploadFile) -> Optional[str]:
    content_type = upload.content_type or ""
    return content_type if content_type.startswith("image/") else None


def _form_constraints(allergies: Optional[str], diets: Optional[str]) -> DietaryConstraintSet:
    return DietaryConstraintSet(allergies=allergies or (), diets=diets or ())


@router.post("/recipes/extract/text", response_model=Recipe)
async def extract_from_text(payload: TextExtractionRequest, extractor: RecipeExtractor = Depends(get_extractor)):
    return await extractor.parse_text(payload.text, payload.constraints())


@router.post("/recipes/extract/url", response_model=Recipe)
async def extract_from_url(payload: UrlExtractionRequest, extractor: RecipeExtractor = Depends(get_extractor)):
    return await extractor.extract_from_url(payload.url, payload.constraints())


@router.post("/recipes/extract/image/suggestions", response_model=SuggestionListResponse)
async def suggest_from_image(
    image: UploadFile = File(...),
    allergies: Optional[str] = Form(None),
    diets: Optional[str] = Form(None),
    extractor: RecipeExtractor = Depends(get_extractor),
):
    raw = await _read_image(image)
    flow = TwoStageVisualFlow(extractor, raw, _form_constraints(allergies, diets), _image_mime(image))
    suggestions = await flow.suggest()
    return SuggestionListResponse(suggestions=suggestions, empty=flow.snapshot().is_empty)


@router.post("/recipes/extract/image/expand", response_model=Recipe)
async def expand_suggestion(
    title: str = Form(..., min_length=1),
    description: str = Form(""),
    image: Optional[UploadFile] = File(None),
    allergies: Optional[str] = Form(None),
    diets: Optional[str] = Form(None),
    extractor: RecipeExtractor = Depends(get_extractor),
):
    raw = await _read_image(image) if image is not None else None
    suggestion = Suggestion(title=title, description=description)
    constraints = _form_constraints(allergies, diets)
    if raw is None:
        return await extractor.expand_suggestion(suggestion, None, constraints)
    flow = TwoStageVisualFlow(extractor, raw, constraints, _image_mime(image))
    return await flow.expand(suggestion)


@router.post("/recipes/extract/frames", response_model=Recipe)
async def extract_from_frames(
    frames: List[UploadFile] = File(...),
    allergies: Optional[str] = Form(None),
    diets: Optional[str] = Form(None),
    extractor: RecipeExtractor = Depends(get_extractor),
):
    if not frames:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No frames provided")
    if len(frames) > MAX_FRAMES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=f"Too many frames (max {MAX_FRAMES})"
        )
    captured = [await _read_image(frame) for frame in frames]
    capture = FrameBatchCapture.from_settings(
        extractor, StaticFrameSource(captured), _form_constraints(allergies, diets)
    )
    # Frames are already captured; no need to pace them.
    capture.interval_seconds = 0.0
    try:
        return await capture.run()
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.post("/stores/nearby", response_model=StoreLookupResponse)
async def find_stores(payload: StoreLookupRequest, extractor: RecipeExtractor = Depends(get_extractor)):
    stores = await extractor.find_stores(payload.ingredient, payload.latitude, payload.longitude)
    return StoreLookupResponse(stores=stores)


@router.post("/cooking/help", response_model=CookingHelpResponse)
async def cooking_help(payload: CookingHelpRequest, extractor: RecipeExtractor = Depends(get_extractor)):
    tip = await extractor.cooking_help(payload.step_instruction, payload.context or "")
    return CookingHelpResponse(tip=tip)
