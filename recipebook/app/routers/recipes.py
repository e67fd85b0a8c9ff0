# recipebook/app/routers/recipes.py
from __future__ import annotations

import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from starlette.concurrency import run_in_threadpool

from recipebook.app.deps import (
    CurrentUser,
    get_current_user,
    get_ingest_service,
    get_recipe_repository,
    get_submission_limiter,
    get_thumbnail_migrator,
)
from recipebook.app.domain.errors import RecipeNotFoundError, RecipeRepositoryError
from recipebook.app.domain.models import Ingredient, Recipe
from recipebook.app.infra.db.base import RecipeRepository
from recipebook.app.schemas.recipes import (
    CategoriesResponse,
    CreateRecipeRequest,
    DeleteResponse,
    IngredientResponse,
    MigrationDetailResponse,
    MigrationReportResponse,
    RecipeEnvelope,
    RecipeListResponse,
    RecipeResponse,
    UpdateCategoriesRequest,
)
from recipebook.services.errors import (
    ContentUnreachableError,
    DuplicateRecipeError,
    InvalidInputError,
    NoRecipeFoundError,
    PersistenceError,
    RateLimitedError,
)
from recipebook.services.ingest import IngestService
from recipebook.services.rate_limiter import RateLimiter
from recipebook.services.recipes import (
    clean_category_update,
    merge_categories,
    parse_csv_filter,
    rank_by_ingredients,
)
from recipebook.services.thumbnails import ThumbnailMigrator

log = logging.getLogger("recipes")
router = APIRouter(prefix="/recipes", tags=["recipes"])


def _ingredient_response(ingredient: Ingredient) -> IngredientResponse:
    return IngredientResponse(
        id=ingredient.id,
        name=ingredient.name,
        canonicalName=ingredient.canonical_name,
        quantity=ingredient.quantity,
        unit=ingredient.unit,
    )


def _recipe_response(recipe: Recipe) -> RecipeResponse:
    return RecipeResponse(
        id=recipe.id,
        title=recipe.title,
        sourceUrl=recipe.source_url,
        sourcePlatform=recipe.source_platform.value,
        videoEmbedUrl=recipe.video_embed_url,
        categories=recipe.categories,
        extractionStatus=recipe.extraction_status.value,
        steps=recipe.steps,
        imageUrl=recipe.image_url,
        createdAt=recipe.created_at.isoformat() if recipe.created_at else None,
        ingredients=[_ingredient_response(item) for item in recipe.ingredients],
        missingIngredients=recipe.missing_ingredients,
    )


def _enforce_rate_limit(limiter: RateLimiter, user_id: str) -> None:
    decision = limiter.check(user_id)
    if not decision.allowed:
        log.info("ratelimit.denied user=%s retry_after=%ds", user_id, decision.retry_after)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests. Try again shortly.",
            headers={"Retry-After": str(decision.retry_after)},
        )


@router.post("", response_model=RecipeEnvelope, status_code=status.HTTP_201_CREATED)
async def create_recipe(
    body: CreateRecipeRequest,
    user: CurrentUser = Depends(get_current_user),
    service: IngestService = Depends(get_ingest_service),
    limiter: RateLimiter = Depends(get_submission_limiter),
) -> RecipeEnvelope:
    _enforce_rate_limit(limiter, user.id)

    t0 = time.time()
    try:
        recipe = await run_in_threadpool(service.ingest, user.id, url=body.url, images=body.images)
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except DuplicateRecipeError as exc:
        raise HTTPException(
            status_code=409,
            detail={
                "message": "This recipe is already saved",
                "existingId": exc.existing_id,
                "existingTitle": exc.existing_title,
            },
        ) from exc
    except NoRecipeFoundError as exc:
        log.info("ingest.no_recipe url=%s dt=%.2fs", body.url, time.time() - t0)
        raise HTTPException(status_code=422, detail="No recipe found in this content") from exc
    except ContentUnreachableError as exc:
        log.warning("ingest.unreachable url=%s reason=%s", exc.url, exc.reason)
        raise HTTPException(status_code=502, detail="Could not reach the content at this URL") from exc
    except RateLimitedError as exc:
        log.warning("ingest.rate_limited url=%s dt=%.2fs", body.url, time.time() - t0)
        raise HTTPException(status_code=429, detail="AI limit reached. Try again in a few moments.") from exc
    except PersistenceError as exc:
        log.error("ingest.persist_fail url=%s error=%s", body.url, exc)
        raise HTTPException(status_code=500, detail="Failed to save the recipe") from exc
    except Exception:
        log.exception("ingest.fail url=%s dt=%.2fs", body.url, time.time() - t0)
        raise HTTPException(status_code=500, detail="Recipe ingestion failed")

    return RecipeEnvelope(recipe=_recipe_response(recipe))


@router.get("", response_model=RecipeListResponse)
async def list_recipes(
    user: CurrentUser = Depends(get_current_user),
    repository: RecipeRepository = Depends(get_recipe_repository),
    search: Optional[str] = Query(default=None, max_length=200),
    ingredients: Optional[str] = Query(default=None, description="Comma-separated ingredients on hand"),
    categories: Optional[str] = Query(default=None, description="Comma-separated categories"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
) -> RecipeListResponse:
    term = search.strip() if search else None
    try:
        result = await run_in_threadpool(
            repository.list_recipes,
            user.id,
            search=term or None,
            categories=parse_csv_filter(categories),
            page=page,
            limit=limit,
        )
    except RecipeRepositoryError as exc:
        log.error("recipes.list_fail user=%s error=%s", user.id, exc)
        raise HTTPException(status_code=500, detail="Failed to load recipes") from exc

    recipes = result.recipes
    available = parse_csv_filter(ingredients)
    if available:
        recipes = rank_by_ingredients(recipes, available)

    return RecipeListResponse(
        recipes=[_recipe_response(recipe) for recipe in recipes],
        total=result.total,
        page=page,
        limit=limit,
    )


@router.get("/categories", response_model=CategoriesResponse)
async def list_categories(
    user: CurrentUser = Depends(get_current_user),
    repository: RecipeRepository = Depends(get_recipe_repository),
) -> CategoriesResponse:
    try:
        category_sets = await run_in_threadpool(repository.list_category_sets, user.id)
    except RecipeRepositoryError as exc:
        log.error("categories.list_fail user=%s error=%s", user.id, exc)
        raise HTTPException(status_code=500, detail="Failed to load categories") from exc
    return CategoriesResponse(categories=merge_categories(category_sets))


@router.post("/migrate-thumbnails", response_model=MigrationReportResponse)
async def migrate_thumbnails(
    user: CurrentUser = Depends(get_current_user),
    migrator: ThumbnailMigrator = Depends(get_thumbnail_migrator),
) -> MigrationReportResponse:
    try:
        report = await run_in_threadpool(migrator.migrate, user.id)
    except RecipeRepositoryError as exc:
        log.error("thumbnails.migrate_fail user=%s error=%s", user.id, exc)
        raise HTTPException(status_code=500, detail="Thumbnail migration failed") from exc

    return MigrationReportResponse(
        total=report.total,
        updated=report.updated,
        skipped=report.skipped,
        failed=report.failed,
        details=[
            MigrationDetailResponse(id=d.id, title=d.title, status=d.status, imageUrl=d.image_url)
            for d in report.details
        ],
    )


@router.get("/{recipe_id}", response_model=RecipeEnvelope)
async def get_recipe(
    recipe_id: str,
    user: CurrentUser = Depends(get_current_user),
    repository: RecipeRepository = Depends(get_recipe_repository),
) -> RecipeEnvelope:
    try:
        recipe = await run_in_threadpool(repository.get_recipe, user.id, recipe_id)
    except RecipeNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Recipe not found") from exc
    except RecipeRepositoryError as exc:
        log.error("recipes.get_fail recipe=%s error=%s", recipe_id, exc)
        raise HTTPException(status_code=500, detail="Failed to load recipe") from exc
    return RecipeEnvelope(recipe=_recipe_response(recipe))


@router.patch("/{recipe_id}", response_model=RecipeEnvelope)
async def update_categories(
    recipe_id: str,
    body: UpdateCategoriesRequest,
    user: CurrentUser = Depends(get_current_user),
    repository: RecipeRepository = Depends(get_recipe_repository),
) -> RecipeEnvelope:
    try:
        categories = clean_category_update(body.categories)
        recipe = await run_in_threadpool(repository.update_categories, user.id, recipe_id, categories)
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except RecipeNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Recipe not found") from exc
    except RecipeRepositoryError as exc:
        log.error("categories.update_fail recipe=%s error=%s", recipe_id, exc)
        raise HTTPException(status_code=500, detail="Failed to update categories") from exc
    return RecipeEnvelope(recipe=_recipe_response(recipe))


@router.delete("/{recipe_id}", response_model=DeleteResponse)
async def delete_recipe(
    recipe_id: str,
    user: CurrentUser = Depends(get_current_user),
    repository: RecipeRepository = Depends(get_recipe_repository),
) -> DeleteResponse:
    try:
        await run_in_threadpool(repository.delete_recipe, user.id, recipe_id)
    except RecipeNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Recipe not found") from exc
    except RecipeRepositoryError as exc:
        log.error("recipes.delete_fail recipe=%s error=%s", recipe_id, exc)
        raise HTTPException(status_code=500, detail="Failed to delete recipe") from exc
    return DeleteResponse(success=True)
