from __future__ import annotations

from typing import Iterable, Optional, Sequence

from recipebook.app.domain.models import CANONICAL_CATEGORIES, Recipe
from recipebook.services.errors import InvalidInputError


def parse_csv_filter(value: Optional[str]) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _matches(ingredient: str, available: Sequence[str]) -> bool:
    return any(ingredient in have or have in ingredient for have in available)


def rank_by_ingredients(recipes: Iterable[Recipe], available: Iterable[str]) -> list[Recipe]:
    """
    Order recipes by how few ingredients the user is missing.

    An ingredient counts as available when either name contains the other
    (case-insensitive). Recipes sharing no ingredient with `available` are
    dropped; ties keep their incoming order.
    """
    have = [item.strip().lower() for item in available if item and item.strip()]
    if not have:
        return list(recipes)

    ranked: list[Recipe] = []
    for recipe in recipes:
        needed = [ingredient.canonical_name.strip().lower() for ingredient in recipe.ingredients]
        missing = [name for name in needed if not _matches(name, have)]
        if len(needed) - len(missing) == 0:
            continue
        recipe.missing_ingredients = missing
        ranked.append(recipe)

    ranked.sort(key=lambda recipe: len(recipe.missing_ingredients or []))
    return ranked


def merge_categories(category_sets: Iterable[Sequence[str]]) -> list[str]:
    """Canonical categories first, then the user's own labels sorted."""
    custom: set[str] = set()
    for categories in category_sets:
        for category in categories:
            if category and category not in CANONICAL_CATEGORIES:
                custom.add(category)
    return list(CANONICAL_CATEGORIES) + sorted(custom)


def clean_category_update(categories: object) -> list[str]:
    if not isinstance(categories, list) or not categories:
        raise InvalidInputError("Select at least one category")

    cleaned: list[str] = []
    for category in categories:
        if not isinstance(category, str) or not category.strip():
            raise InvalidInputError("Categories must be non-empty strings")
        label = category.strip()
        if label not in cleaned:
            cleaned.append(label)
    return cleaned
