# recipebook/app/routers/ingredients.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from starlette.concurrency import run_in_threadpool

from recipebook.app.deps import CurrentUser, get_current_user, get_recipe_repository, get_suggest_limiter
from recipebook.app.domain.errors import RecipeRepositoryError
from recipebook.app.infra.db.base import RecipeRepository
from recipebook.app.schemas.recipes import SuggestionsResponse
from recipebook.services.rate_limiter import RateLimiter

log = logging.getLogger("ingredients")
router = APIRouter(prefix="/ingredients", tags=["ingredients"])

MIN_QUERY_LENGTH = 2
MAX_SUGGESTIONS = 10


@router.get("/suggest", response_model=SuggestionsResponse)
async def suggest_ingredients(
    q: str = Query(default="", max_length=100),
    user: CurrentUser = Depends(get_current_user),
    repository: RecipeRepository = Depends(get_recipe_repository),
    limiter: RateLimiter = Depends(get_suggest_limiter),
) -> SuggestionsResponse:
    decision = limiter.check(user.id)
    if not decision.allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests. Try again shortly.",
            headers={"Retry-After": str(decision.retry_after)},
        )

    query = q.strip()
    if len(query) < MIN_QUERY_LENGTH:
        return SuggestionsResponse(suggestions=[])

    try:
        suggestions = await run_in_threadpool(repository.suggest_ingredients, user.id, query, MAX_SUGGESTIONS)
    except RecipeRepositoryError as exc:
        log.error("ingredients.suggest_fail user=%s error=%s", user.id, exc)
        raise HTTPException(status_code=500, detail="Failed to load suggestions") from exc
    return SuggestionsResponse(suggestions=suggestions)
