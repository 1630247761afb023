import logging
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    gemini_api_key: str | None = Field(None, alias="GEMINI_API_KEY")
    gemini_base_url: str = Field("https://generativelanguage.googleapis.com", alias="GEMINI_BASE_URL")
    gemini_model: str = Field("gemini-3-flash-preview", alias="GEMINI_MODEL")
    gemini_maps_model: str = Field("gemini-2.5-flash", alias="GEMINI_MAPS_MODEL")
    openai_api_key: str | None = Field(None, alias="OPENAI_API_KEY")
    openai_base_url: str = Field("https://api.openai.com", alias="OPENAI_BASE_URL")
    openai_model: str = Field("gpt-4o", alias="OPENAI_MODEL")
    openai_temperature: float = Field(0.7, alias="OPENAI_TEMPERATURE")
    # Provider calls never hang forever; a timeout counts as ProviderUnavailable.
    provider_timeout_seconds: float = Field(60.0, alias="PROVIDER_TIMEOUT_SECONDS")
    provider_connect_timeout_seconds: float = Field(10.0, alias="PROVIDER_CONNECT_TIMEOUT_SECONDS")
    recipe_placeholder_image_url: str = Field("https://picsum.photos/800/600", alias="RECIPE_PLACEHOLDER_IMAGE_URL")
    recipe_suggestion_count: int = Field(6, ge=1, le=6, alias="RECIPE_SUGGESTION_COUNT")
    recipe_image_max_bytes: int = Field(10 * 1024 * 1024, alias="RECIPE_IMAGE_MAX_BYTES")
    frame_capture_interval_seconds: float = Field(1.0, alias="FRAME_CAPTURE_INTERVAL_SECONDS")
    frame_capture_max_frames: int = Field(10, alias="FRAME_CAPTURE_MAX_FRAMES")
    frame_max_dimension: int = Field(512, alias="FRAME_MAX_DIMENSION")
    frame_jpeg_quality: int = Field(70, alias="FRAME_JPEG_QUALITY")
    store_result_limit: int = Field(3, alias="STORE_RESULT_LIMIT")
    dietary_reprompt_enabled: bool = Field(True, alias="DIETARY_REPROMPT_ENABLED")

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True)


logger = logging.getLogger(__name__)


@lru_cache
def get_settings() -> Settings:
    try:
        settings = Settings()
    except PermissionError:
        logger.warning("Unable to read .env; continuing with environment variables only")
        settings = Settings(_env_file=None)
    return settings
