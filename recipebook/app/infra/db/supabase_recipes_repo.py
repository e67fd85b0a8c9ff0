from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Sequence

import httpx
from postgrest.exceptions import APIError
from postgrest.types import CountMethod
from supabase import Client

from recipebook.app.domain.errors import RecipeNotFoundError, RecipeRepositoryError
from recipebook.app.domain.models import (
    ExtractionStatus,
    Ingredient,
    IngredientDraft,
    Platform,
    Recipe,
    RecipeDraft,
    RecipePage,
)
from recipebook.app.infra.db.base import RecipeRepository

logger = logging.getLogger(__name__)

BACKEND_ERRORS = (APIError, httpx.HTTPError)
SUGGESTION_SCAN_LIMIT = 50


def _parse_datetime(value: str | datetime | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        return None

    try:
        normalized = value.replace("Z", "+00:00") if value.endswith("Z") else value
        return datetime.fromisoformat(normalized)
    except ValueError:
        return None


def _safe_str(value: object) -> str | None:
    return str(value) if value else None


def _string_list(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None]


def _row_to_ingredient(row: dict) -> Ingredient:
    return Ingredient(
        id=_safe_str(row.get("id")),
        recipe_id=str(row["recipe_id"]),
        name=str(row["name"]),
        canonical_name=str(row.get("canonical_name") or row["name"]),
        quantity=_safe_str(row.get("quantity")),
        unit=_safe_str(row.get("unit")),
    )


def _row_to_recipe(row: dict) -> Recipe:
    ingredients = row.get("ingredients")
    return Recipe(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        title=str(row["title"]),
        source_platform=Platform(str(row["source_platform"])),
        categories=_string_list(row.get("categories")),
        extraction_status=ExtractionStatus(str(row.get("extraction_status") or ExtractionStatus.PARTIAL.value)),
        steps=_string_list(row.get("steps")),
        source_url=_safe_str(row.get("source_url")),
        video_embed_url=_safe_str(row.get("video_embed_url")),
        image_url=_safe_str(row.get("image_url")),
        created_at=_parse_datetime(row.get("created_at")),
        ingredients=[_row_to_ingredient(item) for item in ingredients] if isinstance(ingredients, list) else [],
    )


def _draft_to_row(draft: RecipeDraft) -> dict[str, object]:
    return {
        "user_id": draft.user_id,
        "title": draft.title,
        "source_url": draft.source_url,
        "source_platform": draft.source_platform.value,
        "video_embed_url": draft.video_embed_url,
        "categories": list(draft.categories),
        "extraction_status": draft.extraction_status.value,
        "steps": list(draft.steps),
        "image_url": draft.image_url,
    }


class SupabaseRecipeRepository(RecipeRepository):
    RECIPES_TABLE = "recipes"
    INGREDIENTS_TABLE = "ingredients"

    def __init__(self, client: Client):
        self._client = client

    def _recipes(self):
        return self._client.table(self.RECIPES_TABLE)

    def find_by_source_url(self, user_id: str, source_url: str) -> Optional[Recipe]:
        try:
            result = (
                self._recipes()
                .select("*")
                .eq("user_id", user_id)
                .eq("source_url", source_url)
                .limit(1)
                .execute()
            )
        except BACKEND_ERRORS as error:
            raise RecipeRepositoryError("find_by_source_url", str(error)) from error

        if not result.data:
            return None
        return _row_to_recipe(result.data[0])

    def insert_recipe(self, draft: RecipeDraft) -> Recipe:
        try:
            result = self._recipes().insert(_draft_to_row(draft)).execute()
        except BACKEND_ERRORS as error:
            logger.error("Recipe insert failed: user=%s error=%s", draft.user_id, error)
            raise RecipeRepositoryError("insert_recipe", str(error)) from error

        if not result.data:
            raise RecipeRepositoryError("insert_recipe", "no row returned")

        recipe = _row_to_recipe(result.data[0])
        logger.info("Created recipe: id=%s, user=%s, platform=%s", recipe.id, recipe.user_id, draft.source_platform.value)
        return recipe

    def update_image_url(self, recipe_id: str, image_url: str) -> None:
        try:
            self._recipes().update({"image_url": image_url}).eq("id", recipe_id).execute()
        except BACKEND_ERRORS as error:
            raise RecipeRepositoryError("update_image_url", str(error)) from error

    def insert_ingredients(self, recipe_id: str, ingredients: Sequence[IngredientDraft]) -> list[Ingredient]:
        if not ingredients:
            return []

        rows = [
            {
                "recipe_id": recipe_id,
                "name": item.name,
                "canonical_name": item.canonical_name,
                "quantity": item.quantity,
                "unit": item.unit,
            }
            for item in ingredients
        ]
        try:
            result = self._client.table(self.INGREDIENTS_TABLE).insert(rows).execute()
        except BACKEND_ERRORS as error:
            raise RecipeRepositoryError("insert_ingredients", str(error)) from error

        return [_row_to_ingredient(row) for row in result.data or []]

    def get_recipe(self, user_id: str, recipe_id: str) -> Recipe:
        try:
            result = (
                self._recipes()
                .select("*, ingredients(*)")
                .eq("id", recipe_id)
                .eq("user_id", user_id)
                .limit(1)
                .execute()
            )
        except BACKEND_ERRORS as error:
            raise RecipeRepositoryError("get_recipe", str(error)) from error

        if not result.data:
            raise RecipeNotFoundError(recipe_id)
        return _row_to_recipe(result.data[0])

    def list_recipes(
        self,
        user_id: str,
        *,
        search: Optional[str] = None,
        categories: Sequence[str] = (),
        page: int = 1,
        limit: int = 20,
    ) -> RecipePage:
        offset = (page - 1) * limit
        query = self._recipes().select("*, ingredients(*)", count=CountMethod.exact).eq("user_id", user_id)
        if search:
            query = query.text_search("search_vector", search, options={"type": "plain", "config": "simple"})
        if categories:
            query = query.ov("categories", list(categories))

        try:
            result = query.order("created_at", desc=True).range(offset, offset + limit - 1).execute()
        except BACKEND_ERRORS as error:
            raise RecipeRepositoryError("list_recipes", str(error)) from error

        recipes = [_row_to_recipe(row) for row in result.data or []]
        total = result.count if result.count is not None else len(recipes)
        return RecipePage(recipes=recipes, total=total)

    def update_categories(self, user_id: str, recipe_id: str, categories: Sequence[str]) -> Recipe:
        try:
            result = (
                self._recipes()
                .update({"categories": list(categories)})
                .eq("id", recipe_id)
                .eq("user_id", user_id)
                .execute()
            )
        except BACKEND_ERRORS as error:
            raise RecipeRepositoryError("update_categories", str(error)) from error

        if not result.data:
            raise RecipeNotFoundError(recipe_id)
        return self.get_recipe(user_id, recipe_id)

    def delete_recipe(self, user_id: str, recipe_id: str) -> None:
        try:
            result = self._recipes().delete().eq("id", recipe_id).eq("user_id", user_id).execute()
        except BACKEND_ERRORS as error:
            raise RecipeRepositoryError("delete_recipe", str(error)) from error

        if not result.data:
            raise RecipeNotFoundError(recipe_id)
        logger.info("Deleted recipe: id=%s, user=%s", recipe_id, user_id)

    def list_category_sets(self, user_id: str) -> list[list[str]]:
        try:
            result = self._recipes().select("categories").eq("user_id", user_id).execute()
        except BACKEND_ERRORS as error:
            raise RecipeRepositoryError("list_category_sets", str(error)) from error

        return [_string_list(row.get("categories")) for row in result.data or []]

    def suggest_ingredients(self, user_id: str, query: str, limit: int = 10) -> list[str]:
        try:
            result = (
                self._client.table(self.INGREDIENTS_TABLE)
                .select("canonical_name, recipes!inner(user_id)")
                .eq("recipes.user_id", user_id)
                .ilike("canonical_name", f"%{query}%")
                .limit(SUGGESTION_SCAN_LIMIT)
                .execute()
            )
        except BACKEND_ERRORS as error:
            raise RecipeRepositoryError("suggest_ingredients", str(error)) from error

        suggestions: list[str] = []
        for row in result.data or []:
            name = _safe_str(row.get("canonical_name"))
            if name and name not in suggestions:
                suggestions.append(name)
            if len(suggestions) >= limit:
                break
        return suggestions

    def list_recipes_for_thumbnails(self, user_id: str) -> list[Recipe]:
        try:
            result = (
                self._recipes()
                .select("*")
                .eq("user_id", user_id)
                .order("created_at", desc=True)
                .execute()
            )
        except BACKEND_ERRORS as error:
            raise RecipeRepositoryError("list_recipes_for_thumbnails", str(error)) from error

        return [_row_to_recipe(row) for row in result.data or []]
