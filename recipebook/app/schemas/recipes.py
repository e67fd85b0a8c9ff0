# recipebook/app/schemas/recipes.py
from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

PlatformName = Literal["instagram", "facebook", "tiktok", "youtube", "website", "upload"]
ExtractionStatusName = Literal["complete", "partial", "failed"]


class CreateRecipeRequest(BaseModel):
    url: Optional[str] = None
    images: Optional[list[str]] = None


class UpdateCategoriesRequest(BaseModel):
    # Validated by the service so that bad input maps to 400 rather than 422
    categories: Any = None


class IngredientResponse(BaseModel):
    id: Optional[str] = None
    name: str
    canonicalName: str
    quantity: Optional[str] = None
    unit: Optional[str] = None


class RecipeResponse(BaseModel):
    id: str
    title: str
    sourceUrl: Optional[str] = None
    sourcePlatform: PlatformName
    videoEmbedUrl: Optional[str] = None
    categories: list[str] = Field(default_factory=list)
    extractionStatus: ExtractionStatusName
    steps: list[str] = Field(default_factory=list)
    imageUrl: Optional[str] = None
    createdAt: Optional[str] = None
    ingredients: list[IngredientResponse] = Field(default_factory=list)
    missingIngredients: Optional[list[str]] = None


class RecipeEnvelope(BaseModel):
    recipe: RecipeResponse


class RecipeListResponse(BaseModel):
    recipes: list[RecipeResponse]
    total: int
    page: int
    limit: int


class CategoriesResponse(BaseModel):
    categories: list[str]


class DeleteResponse(BaseModel):
    success: bool = True


class SuggestionsResponse(BaseModel):
    suggestions: list[str]


class MigrationDetailResponse(BaseModel):
    id: str
    title: str
    status: str
    imageUrl: Optional[str] = None


class MigrationReportResponse(BaseModel):
    total: int
    updated: int
    skipped: int
    failed: int
    details: list[MigrationDetailResponse] = Field(default_factory=list)
