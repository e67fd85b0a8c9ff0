# recipebook/app/infra/db/base.py
"""
Abstract base class for the recipe repository.
This interface allows swapping the row store without touching the services.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional, Sequence

from recipebook.app.domain.models import Ingredient, IngredientDraft, Recipe, RecipeDraft, RecipePage


class RecipeRepository(ABC):
    """
    Abstract interface for recipe and ingredient rows.

    Every read and write is scoped to the owning user. Implementations raise
    RecipeRepositoryError when the backend fails and RecipeNotFoundError when
    an owner-scoped row does not exist.

    Implementations:
    - SupabaseRecipeRepository: Postgres tables behind PostgREST
    """

    @abstractmethod
    def find_by_source_url(self, user_id: str, source_url: str) -> Optional[Recipe]:
        """
        Look up a recipe the user already saved from the same source URL.

        Returns:
            The existing recipe (id and title at least), or None
        """

    @abstractmethod
    def insert_recipe(self, draft: RecipeDraft) -> Recipe:
        """Insert a recipe row and return it with its generated id."""

    @abstractmethod
    def update_image_url(self, recipe_id: str, image_url: str) -> None:
        pass

    @abstractmethod
    def insert_ingredients(self, recipe_id: str, ingredients: Sequence[IngredientDraft]) -> list[Ingredient]:
        """Insert all ingredient rows of a recipe in a single batch."""

    @abstractmethod
    def get_recipe(self, user_id: str, recipe_id: str) -> Recipe:
        """Fetch one recipe with its ingredients."""

    @abstractmethod
    def list_recipes(
        self,
        user_id: str,
        *,
        search: Optional[str] = None,
        categories: Sequence[str] = (),
        page: int = 1,
        limit: int = 20,
    ) -> RecipePage:
        """
        One page of recipes with ingredients, newest first.

        Args:
            search: Full-text query over the recipe search vector
            categories: Keep recipes sharing at least one of these categories
            page: 1-based page number
            limit: Page size
        """

    @abstractmethod
    def update_categories(self, user_id: str, recipe_id: str, categories: Sequence[str]) -> Recipe:
        pass

    @abstractmethod
    def delete_recipe(self, user_id: str, recipe_id: str) -> None:
        """Delete a recipe. Its ingredient rows are removed by cascade."""

    @abstractmethod
    def list_category_sets(self, user_id: str) -> list[list[str]]:
        """The categories array of every recipe the user owns."""

    @abstractmethod
    def suggest_ingredients(self, user_id: str, query: str, limit: int = 10) -> list[str]:
        """Distinct canonical ingredient names containing `query`, case-insensitive."""

    @abstractmethod
    def list_recipes_for_thumbnails(self, user_id: str) -> list[Recipe]:
        """All of the user's recipes, without ingredients."""
