# recipebook/app/domain/models.py
"""
Domain models for stored recipes.
These are pure data structures with no infrastructure dependencies.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class Platform(str, Enum):
    """Where a recipe came from."""
    INSTAGRAM = "instagram"
    FACEBOOK = "facebook"
    TIKTOK = "tiktok"
    YOUTUBE = "youtube"
    WEBSITE = "website"
    UPLOAD = "upload"


class ExtractionStatus(str, Enum):
    """How much of the recipe the extraction recovered."""
    COMPLETE = "complete"
    PARTIAL = "partial"
    FAILED = "failed"


# Dairy, meat, parve, vegan, healthy
CANONICAL_CATEGORIES: tuple[str, ...] = ("חלבי", "בשרי", "פרווה", "טבעוני", "בריאותי")
FALLBACK_CATEGORY = "פרווה"


def derive_extraction_status(ingredient_count: int, step_count: int) -> ExtractionStatus:
    if ingredient_count > 0 and step_count > 0:
        return ExtractionStatus.COMPLETE
    return ExtractionStatus.PARTIAL


@dataclass
class Ingredient:
    """An ingredient line owned by a single recipe."""
    recipe_id: str
    name: str
    canonical_name: str
    quantity: Optional[str] = None
    unit: Optional[str] = None
    id: Optional[str] = None


@dataclass
class IngredientDraft:
    name: str
    canonical_name: str
    quantity: Optional[str] = None
    unit: Optional[str] = None


@dataclass
class RecipeDraft:
    """Row payload for a recipe that has not been inserted yet."""
    user_id: str
    title: str
    source_platform: Platform
    categories: list[str]
    extraction_status: ExtractionStatus
    steps: list[str]
    source_url: Optional[str] = None
    video_embed_url: Optional[str] = None
    image_url: Optional[str] = None


@dataclass
class Recipe:
    """
    A persisted recipe.

    `missing_ingredients` is only filled in by ingredient-based listing.
    """
    id: str
    user_id: str
    title: str
    source_platform: Platform
    categories: list[str]
    extraction_status: ExtractionStatus
    steps: list[str] = field(default_factory=list)
    source_url: Optional[str] = None
    video_embed_url: Optional[str] = None
    image_url: Optional[str] = None
    created_at: Optional[datetime] = None
    ingredients: list[Ingredient] = field(default_factory=list)
    missing_ingredients: Optional[list[str]] = None

    @property
    def is_complete(self) -> bool:
        return self.extraction_status == ExtractionStatus.COMPLETE


@dataclass
class RecipePage:
    """One page of a recipe listing."""
    recipes: list[Recipe]
    total: int
