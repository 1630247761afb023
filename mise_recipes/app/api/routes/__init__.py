from fastapi import APIRouter

from mise_recipes.app.api.routes import extraction

api_router = APIRouter()
api_router.include_router(extraction.router)
