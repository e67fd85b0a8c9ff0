from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Sequence
from uuid import uuid4

import pytest

from recipebook.app.domain.errors import RecipeNotFoundError, RecipeRepositoryError, StorageUploadError
from recipebook.app.domain.models import (
    Ingredient,
    IngredientDraft,
    Platform,
    Recipe,
    RecipeDraft,
    RecipePage,
)
from recipebook.app.infra.db.base import RecipeRepository
from recipebook.app.infra.storage.base import StorageProvider
from recipebook.services.ingest import IngestService
from recipebook.services.types import ExtractedFrames, ExtractedIngredient, ExtractedRecipe, FetchedContent


def _next(outcomes: list):
    outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
    if isinstance(outcome, Exception):
        raise outcome
    return outcome


class RecipeRepositoryStub(RecipeRepository):
    def __init__(self) -> None:
        self.recipes: dict[str, Recipe] = {}
        self.inserted: list[RecipeDraft] = []
        self.image_updates: list[tuple[str, str]] = []
        self.ingredient_batches: list[tuple[str, list[IngredientDraft]]] = []
        self.fail_insert = False
        self.fail_ingredients = False
        self.fail_image_update = False

    def add(self, recipe: Recipe) -> Recipe:
        self.recipes[recipe.id] = recipe
        return recipe

    def _owned(self, user_id: str, recipe_id: str) -> Recipe:
        recipe = self.recipes.get(recipe_id)
        if recipe is None or recipe.user_id != user_id:
            raise RecipeNotFoundError(recipe_id)
        return recipe

    def find_by_source_url(self, user_id: str, source_url: str) -> Optional[Recipe]:
        for recipe in self.recipes.values():
            if recipe.user_id == user_id and recipe.source_url == source_url:
                return recipe
        return None

    def insert_recipe(self, draft: RecipeDraft) -> Recipe:
        if self.fail_insert:
            raise RecipeRepositoryError("insert_recipe", "connection refused")
        self.inserted.append(draft)
        recipe = Recipe(
            id=str(uuid4()),
            user_id=draft.user_id,
            title=draft.title,
            source_platform=draft.source_platform,
            categories=list(draft.categories),
            extraction_status=draft.extraction_status,
            steps=list(draft.steps),
            source_url=draft.source_url,
            video_embed_url=draft.video_embed_url,
            image_url=draft.image_url,
            created_at=datetime.now(timezone.utc),
        )
        return self.add(recipe)

    def update_image_url(self, recipe_id: str, image_url: str) -> None:
        if self.fail_image_update:
            raise RecipeRepositoryError("update_image_url", "timeout")
        self.image_updates.append((recipe_id, image_url))
        self.recipes[recipe_id].image_url = image_url

    def insert_ingredients(self, recipe_id: str, ingredients: Sequence[IngredientDraft]) -> list[Ingredient]:
        if self.fail_ingredients:
            raise RecipeRepositoryError("insert_ingredients", "constraint violation")
        self.ingredient_batches.append((recipe_id, list(ingredients)))
        rows = [
            Ingredient(
                id=str(uuid4()),
                recipe_id=recipe_id,
                name=item.name,
                canonical_name=item.canonical_name,
                quantity=item.quantity,
                unit=item.unit,
            )
            for item in ingredients
        ]
        self.recipes[recipe_id].ingredients = rows
        return rows

    def get_recipe(self, user_id: str, recipe_id: str) -> Recipe:
        return self._owned(user_id, recipe_id)

    def list_recipes(
        self,
        user_id: str,
        *,
        search: Optional[str] = None,
        categories: Sequence[str] = (),
        page: int = 1,
        limit: int = 20,
    ) -> RecipePage:
        owned = [r for r in self.recipes.values() if r.user_id == user_id]
        if search:
            owned = [r for r in owned if search in r.title]
        if categories:
            owned = [r for r in owned if set(r.categories) & set(categories)]
        start = (page - 1) * limit
        return RecipePage(recipes=owned[start:start + limit], total=len(owned))

    def update_categories(self, user_id: str, recipe_id: str, categories: Sequence[str]) -> Recipe:
        recipe = self._owned(user_id, recipe_id)
        recipe.categories = list(categories)
        return recipe

    def delete_recipe(self, user_id: str, recipe_id: str) -> None:
        self._owned(user_id, recipe_id)
        del self.recipes[recipe_id]

    def list_category_sets(self, user_id: str) -> list[list[str]]:
        return [list(r.categories) for r in self.recipes.values() if r.user_id == user_id]

    def suggest_ingredients(self, user_id: str, query: str, limit: int = 10) -> list[str]:
        names: list[str] = []
        for recipe in self.recipes.values():
            if recipe.user_id != user_id:
                continue
            for ingredient in recipe.ingredients:
                name = ingredient.canonical_name
                if query.lower() in name.lower() and name not in names:
                    names.append(name)
        return names[:limit]

    def list_recipes_for_thumbnails(self, user_id: str) -> list[Recipe]:
        return [r for r in self.recipes.values() if r.user_id == user_id]


class FetcherStub:
    def __init__(self) -> None:
        self.outcomes: dict[Platform, list] = {}
        self.calls: list[tuple[str, Platform]] = []

    def fetch(self, url: str, platform: Platform) -> FetchedContent:
        self.calls.append((url, platform))
        if platform not in self.outcomes:
            return FetchedContent(description="", platform=platform)
        return _next(self.outcomes[platform])


class ExtractorStub:
    def __init__(self) -> None:
        self.text_outcomes: list = [None]
        self.media_outcomes: list = [None]
        self.text_calls: list[str] = []
        self.media_calls: list[tuple[list[str], Optional[str]]] = []

    def extract_from_text(self, text: str) -> Optional[ExtractedRecipe]:
        self.text_calls.append(text)
        return _next(self.text_outcomes)

    def extract_from_media(self, images: Sequence[str], text_hint: Optional[str] = None) -> Optional[ExtractedRecipe]:
        self.media_calls.append((list(images), text_hint))
        return _next(self.media_outcomes)


class FrameExtractorStub:
    def __init__(self) -> None:
        self.outcome: object = ExtractedFrames(frames=["ZnJhbWUx", "ZnJhbWUy"])
        self.calls: list[str] = []

    def extract_frames(self, url: str, max_frames: Optional[int] = None) -> ExtractedFrames:
        self.calls.append(url)
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome  # type: ignore[return-value]


class MediaPersisterStub:
    def __init__(self) -> None:
        self.persist_calls: list[tuple[str, str]] = []
        self.inline_calls: list[tuple[str, str]] = []
        self.result: Optional[str] = "https://cdn.test/thumbs/stored.jpg"

    def is_permanent(self, url: Optional[str]) -> bool:
        return bool(url) and url.startswith("https://cdn.test/thumbs/")

    def persist(self, source_url: str, recipe_id: str) -> Optional[str]:
        self.persist_calls.append((source_url, recipe_id))
        return self.result

    def persist_inline(self, data: str, recipe_id: str) -> Optional[str]:
        self.inline_calls.append((data, recipe_id))
        return self.result


class StorageStub(StorageProvider):
    BASE_URL = "https://cdn.test/thumbs"

    def __init__(self) -> None:
        self.uploads: list[tuple[str, bytes, str]] = []
        self.fail = False

    def upload_bytes(self, object_key: str, data: bytes, content_type: str) -> str:
        if self.fail:
            raise StorageUploadError(object_key, "bucket unavailable")
        self.uploads.append((object_key, data, content_type))
        return self.get_public_url(object_key)

    def get_public_url(self, object_key: str) -> str:
        return f"{self.BASE_URL}/{object_key}"

    def is_public_url(self, url: str) -> bool:
        return url.startswith(f"{self.BASE_URL}/")


def make_extracted(
    ingredients: Sequence[str] = ("2 כוסות קמח", "ביצה"),
    steps: Sequence[str] = ("לערבב", "לאפות"),
    categories: Sequence[str] = ("חלבי",),
) -> ExtractedRecipe:
    return ExtractedRecipe(
        title="עוגה",
        ingredients=[ExtractedIngredient(name=name) for name in ingredients],
        steps=list(steps),
        categories=list(categories),
    )


@pytest.fixture
def extracted_factory():
    return make_extracted


@pytest.fixture
def repository() -> RecipeRepositoryStub:
    return RecipeRepositoryStub()


@pytest.fixture
def fetcher() -> FetcherStub:
    return FetcherStub()


@pytest.fixture
def extractor() -> ExtractorStub:
    return ExtractorStub()


@pytest.fixture
def frame_extractor() -> FrameExtractorStub:
    return FrameExtractorStub()


@pytest.fixture
def media() -> MediaPersisterStub:
    return MediaPersisterStub()


@pytest.fixture
def storage() -> StorageStub:
    return StorageStub()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def ingest_service(repository, fetcher, extractor, frame_extractor, media, sleeps) -> IngestService:
    return IngestService(
        repository,
        fetcher,  # type: ignore[arg-type]
        extractor,  # type: ignore[arg-type]
        frame_extractor,  # type: ignore[arg-type]
        media,  # type: ignore[arg-type]
        sleep=sleeps.append,
    )
