from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Optional, Union

from recipebook.app.domain.models import Platform

ExtractionMethod = Literal["video", "text"]


@dataclass(frozen=True)
class UrlClassification:
    platform: Platform
    extraction_method: ExtractionMethod
    normalized_url: str


@dataclass
class FetchedContent:
    description: str
    platform: Platform
    title: Optional[str] = None
    video_url: Optional[str] = None
    image_url: Optional[str] = None
    full_text: Optional[str] = None

    @property
    def best_text(self) -> str:
        return self.full_text or self.description


@dataclass
class ExtractedFrames:
    frames: list[str]
    thumbnail: Optional[str] = None


@dataclass
class ExtractedIngredient:
    name: str
    quantity: Optional[str] = None
    unit: Optional[str] = None


@dataclass
class ExtractedRecipe:
    title: str
    ingredients: list[ExtractedIngredient] = field(default_factory=list)
    steps: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RecipeFound:
    recipe: ExtractedRecipe


@dataclass(frozen=True)
class NotFound:
    pass


@dataclass(frozen=True)
class Malformed:
    reason: str


ParseOutcome = Union[RecipeFound, NotFound, Malformed]
