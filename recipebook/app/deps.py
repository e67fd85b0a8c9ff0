# recipebook/app/deps.py
from __future__ import annotations

from functools import lru_cache
from typing import Iterator

import httpx
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from supabase import Client, create_client

from recipebook.app.config import settings
from recipebook.app.infra.db.base import RecipeRepository
from recipebook.app.infra.db.supabase_recipes_repo import SupabaseRecipeRepository
from recipebook.app.infra.storage.base import StorageProvider
from recipebook.app.infra.storage.r2_provider import R2StorageProvider
from recipebook.app.infra.storage.supabase_provider import SupabaseStorageProvider
from recipebook.services.errors import ServiceError
from recipebook.services.extractor import RecipeExtractor
from recipebook.services.fetcher import ContentFetcher
from recipebook.services.frames import FrameExtractorClient
from recipebook.services.gemini_client import GeminiClient
from recipebook.services.ingest import IngestService
from recipebook.services.media import MediaPersister
from recipebook.services.rate_limiter import InMemoryRateLimiter, RateLimiter
from recipebook.services.thumbnails import ThumbnailMigrator

_client: Client | None = None


def get_supabase() -> Client:
    global _client
    if _client is None:
        _client = create_client(str(settings.SUPABASE_URL),
                                settings.SUPABASE_SERVICE_ROLE_KEY)
    return _client


auth_scheme = HTTPBearer(auto_error=False)


class CurrentUser(BaseModel):
    id: str
    email: str | None = None


async def get_current_user(
    cred: HTTPAuthorizationCredentials | None = Depends(auth_scheme),
    supa: Client = Depends(get_supabase),
) -> CurrentUser:
    """
    Resolve `Authorization: Bearer <access_token>` issued by Supabase Auth
    into the acting user.
    """
    if cred is None or cred.scheme.lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing token")

    try:
        res = supa.auth.get_user(cred.credentials)
        user = res.user if res else None
        if not user:
            raise HTTPException(status_code=401, detail="Invalid token")
        return CurrentUser(id=str(user.id), email=user.email)
    except HTTPException:
        raise
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid/expired token")


def get_http_client() -> Iterator[httpx.Client]:
    """One outbound HTTP client per request, closed when the response is sent."""
    with httpx.Client(timeout=settings.HTTP_TIMEOUT_SECONDS) as client:
        yield client


@lru_cache(maxsize=1)
def get_storage() -> StorageProvider:
    if settings.STORAGE_BACKEND == "r2":
        return R2StorageProvider(
            account_id=settings.R2_ACCOUNT_ID,
            access_key_id=settings.R2_ACCESS_KEY_ID,
            secret_access_key=settings.R2_SECRET_ACCESS_KEY,
            bucket_name=settings.R2_BUCKET_NAME,
            public_url=settings.R2_PUBLIC_URL,
        )
    return SupabaseStorageProvider(get_supabase(), str(settings.SUPABASE_URL), settings.STORAGE_BUCKET)


@lru_cache(maxsize=1)
def get_gemini_client() -> GeminiClient:
    return GeminiClient(api_key=settings.GEMINI_API_KEY or "", model_name=settings.GEMINI_MODEL)


def get_recipe_repository(supa: Client = Depends(get_supabase)) -> RecipeRepository:
    return SupabaseRecipeRepository(supa)


def get_content_fetcher(http: httpx.Client = Depends(get_http_client)) -> ContentFetcher:
    return ContentFetcher(http)


def get_media_persister(http: httpx.Client = Depends(get_http_client)) -> MediaPersister:
    return MediaPersister(get_storage(), http)


def get_recipe_extractor() -> RecipeExtractor:
    try:
        client = get_gemini_client()
    except ServiceError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return RecipeExtractor(client)


def get_frame_extractor(http: httpx.Client = Depends(get_http_client)) -> FrameExtractorClient:
    return FrameExtractorClient(
        settings.FRAME_EXTRACTOR_URL,
        settings.FRAME_EXTRACTOR_API_KEY,
        timeout_seconds=settings.FRAME_EXTRACTOR_TIMEOUT_SECONDS,
        max_frames=settings.FRAME_EXTRACTOR_MAX_FRAMES,
        http_client=http,
    )


def get_ingest_service(
    repository: RecipeRepository = Depends(get_recipe_repository),
    fetcher: ContentFetcher = Depends(get_content_fetcher),
    extractor: RecipeExtractor = Depends(get_recipe_extractor),
    frame_extractor: FrameExtractorClient = Depends(get_frame_extractor),
    media: MediaPersister = Depends(get_media_persister),
) -> IngestService:
    return IngestService(
        repository,
        fetcher,
        extractor,
        frame_extractor,
        media,
        max_images=settings.MAX_UPLOAD_IMAGES,
        max_image_chars=settings.MAX_IMAGE_CHARS,
    )


def get_thumbnail_migrator(
    repository: RecipeRepository = Depends(get_recipe_repository),
    fetcher: ContentFetcher = Depends(get_content_fetcher),
    media: MediaPersister = Depends(get_media_persister),
) -> ThumbnailMigrator:
    return ThumbnailMigrator(repository, fetcher, media)


@lru_cache(maxsize=1)
def get_submission_limiter() -> RateLimiter:
    return InMemoryRateLimiter(settings.RECIPE_SUBMISSION_LIMIT, settings.RECIPE_SUBMISSION_WINDOW_SECONDS)


@lru_cache(maxsize=1)
def get_suggest_limiter() -> RateLimiter:
    return InMemoryRateLimiter(settings.INGREDIENT_SUGGEST_LIMIT, settings.INGREDIENT_SUGGEST_WINDOW_SECONDS)
