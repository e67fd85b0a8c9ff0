from __future__ import annotations

from typing import Literal, Optional

from pydantic import AnyUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8-sig",
        case_sensitive=False,
        extra="ignore",
    )

    SUPABASE_URL: AnyUrl
    SUPABASE_SERVICE_ROLE_KEY: str
    APP_ENV: str = "local"
    LOG_LEVEL: str = "INFO"
    FRONTEND_CORS_ORIGINS: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"],
    )

    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-2.5-flash"

    FRAME_EXTRACTOR_URL: Optional[str] = None
    FRAME_EXTRACTOR_API_KEY: Optional[str] = None
    FRAME_EXTRACTOR_TIMEOUT_SECONDS: float = 180.0
    FRAME_EXTRACTOR_MAX_FRAMES: int = Field(default=5, ge=1)

    HTTP_TIMEOUT_SECONDS: float = 15.0

    STORAGE_BACKEND: Literal["supabase", "r2"] = "supabase"
    STORAGE_BUCKET: str = "recipe-thumbnails"
    R2_ACCOUNT_ID: Optional[str] = None
    R2_ACCESS_KEY_ID: Optional[str] = None
    R2_SECRET_ACCESS_KEY: Optional[str] = None
    R2_BUCKET_NAME: Optional[str] = None
    R2_PUBLIC_URL: Optional[str] = None

    MAX_UPLOAD_IMAGES: int = Field(default=5, ge=1)
    MAX_IMAGE_CHARS: int = Field(default=4 * 1024 * 1024, ge=1)

    RECIPE_SUBMISSION_LIMIT: int = Field(default=5, ge=1)
    RECIPE_SUBMISSION_WINDOW_SECONDS: float = Field(default=60.0, gt=0)
    INGREDIENT_SUGGEST_LIMIT: int = Field(default=30, ge=1)
    INGREDIENT_SUGGEST_WINDOW_SECONDS: float = Field(default=10.0, gt=0)


settings = Settings()
