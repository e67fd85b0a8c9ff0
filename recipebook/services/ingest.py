from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from recipebook.app.domain.errors import RecipeRepositoryError
from recipebook.app.domain.models import (
    IngredientDraft,
    Platform,
    Recipe,
    RecipeDraft,
    derive_extraction_status,
)
from recipebook.app.infra.db.base import RecipeRepository
from recipebook.services.errors import (
    DuplicateRecipeError,
    InvalidInputError,
    NoRecipeFoundError,
    PersistenceError,
    ServiceError,
)
from recipebook.services.extractor import RecipeExtractor, normalize_ingredient
from recipebook.services.fetcher import ContentFetcher
from recipebook.services.frames import FrameExtractorClient
from recipebook.services.images import decode_inline_image
from recipebook.services.media import MediaPersister
from recipebook.services.platforms import classify_url
from recipebook.services.retry import with_retry
from recipebook.services.types import ExtractedRecipe, FetchedContent

logger = logging.getLogger(__name__)

DEFAULT_MAX_IMAGES = 5
DEFAULT_MAX_IMAGE_CHARS = 4 * 1024 * 1024

FETCH_ATTEMPTS = 3
MEDIA_EXTRACTION_ATTEMPTS = 2
FRAME_EXTRACTION_ATTEMPTS = 2
TEXT_EXTRACTION_ATTEMPTS = 3


@dataclass
class ExtractionContext:
    """State accumulated while walking the video fallback chain."""
    url: str
    platform: Platform
    text_hint: Optional[str] = None
    image_url: Optional[str] = None
    video_url: Optional[str] = None
    inline_thumbnail: Optional[str] = None


@dataclass(frozen=True)
class ExtractionStrategy:
    name: str
    run: Callable[[ExtractionContext], Optional[ExtractedRecipe]]


@dataclass
class PipelineResult:
    recipe: ExtractedRecipe
    platform: Platform
    source_url: Optional[str] = None
    video_url: Optional[str] = None
    image_url: Optional[str] = None
    inline_thumbnail: Optional[str] = None


def _text_hint(content: FetchedContent) -> Optional[str]:
    parts: list[str] = []
    for part in (content.title, content.description):
        if part and part.strip() and part.strip() not in parts:
            parts.append(part.strip())
    return "\n".join(parts) or None


def _validate_images(images: Sequence[str], max_images: int, max_image_chars: int) -> None:
    if len(images) > max_images:
        raise InvalidInputError(f"At most {max_images} images can be uploaded")
    for image in images:
        if not isinstance(image, str) or len(image) > max_image_chars:
            raise InvalidInputError("One of the images is too large")
        decode_inline_image(image)


class IngestService:
    """
    Turns a submitted URL or a batch of photos into a persisted recipe.

    Order of work: validate, classify, duplicate check, fetch/extract,
    insert the recipe row, materialize the thumbnail, insert ingredients.
    The duplicate check runs before any inference call, and media is only
    written once the recipe row (and its id) exists.
    """

    def __init__(
        self,
        repository: RecipeRepository,
        fetcher: ContentFetcher,
        extractor: RecipeExtractor,
        frame_extractor: FrameExtractorClient,
        media: MediaPersister,
        *,
        max_images: int = DEFAULT_MAX_IMAGES,
        max_image_chars: int = DEFAULT_MAX_IMAGE_CHARS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._repository = repository
        self._fetcher = fetcher
        self._extractor = extractor
        self._frames = frame_extractor
        self._media = media
        self._max_images = max_images
        self._max_image_chars = max_image_chars
        self._sleep = sleep

    def ingest(
        self,
        user_id: str,
        *,
        url: Optional[str] = None,
        images: Optional[Sequence[str]] = None,
    ) -> Recipe:
        has_images = bool(images)
        has_url = bool(url and url.strip())
        if has_images == has_url:
            raise InvalidInputError("Provide either a URL or at least one image")

        started = time.monotonic()
        logger.info("ingest.start url=%s images=%d owner=%s", url, len(images or ()), user_id)

        if has_images:
            result = self._run_upload_pipeline(list(images or ()))
        else:
            result = self._run_url_pipeline(user_id, url or "")

        recipe = self._persist(user_id, result)
        self._materialize_thumbnail(recipe, result)
        self._persist_ingredients(recipe, result.recipe)

        logger.info(
            "ingest.ok recipe=%s platform=%s status=%s elapsed=%.1fs",
            recipe.id,
            recipe.source_platform.value,
            recipe.extraction_status.value,
            time.monotonic() - started,
        )
        return recipe

    def _retry(self, operation: Callable, attempts: int):
        return with_retry(operation, attempts, sleep=self._sleep)

    def _run_upload_pipeline(self, images: list[str]) -> PipelineResult:
        _validate_images(images, self._max_images, self._max_image_chars)

        extracted = self._retry(lambda: self._extractor.extract_from_media(images), MEDIA_EXTRACTION_ATTEMPTS)
        if extracted is None:
            raise NoRecipeFoundError("No recipe found in the uploaded images")

        return PipelineResult(recipe=extracted, platform=Platform.UPLOAD, inline_thumbnail=images[0])

    def _run_url_pipeline(self, user_id: str, url: str) -> PipelineResult:
        classification = classify_url(url)
        source_url = classification.normalized_url
        self._ensure_not_duplicate(user_id, source_url)

        content = self._retry(
            lambda: self._fetcher.fetch(source_url, classification.platform),
            FETCH_ATTEMPTS,
        )

        if classification.extraction_method == "video":
            context = ExtractionContext(
                url=source_url,
                platform=classification.platform,
                text_hint=_text_hint(content),
                image_url=content.image_url,
                video_url=content.video_url,
            )
            extracted = self._run_strategies(self._video_strategies(), context)
            return PipelineResult(
                recipe=extracted,
                platform=classification.platform,
                source_url=source_url,
                video_url=context.video_url,
                image_url=context.image_url,
                inline_thumbnail=context.inline_thumbnail,
            )

        text = content.best_text
        if not text.strip():
            raise NoRecipeFoundError("Page has no text to extract a recipe from")

        extracted = self._retry(lambda: self._extractor.extract_from_text(text), TEXT_EXTRACTION_ATTEMPTS)
        if extracted is None:
            raise NoRecipeFoundError("No recipe found at this URL")

        return PipelineResult(
            recipe=extracted,
            platform=classification.platform,
            source_url=source_url,
            video_url=content.video_url,
            image_url=content.image_url,
        )

    def _ensure_not_duplicate(self, user_id: str, source_url: str) -> None:
        try:
            existing = self._repository.find_by_source_url(user_id, source_url)
        except RecipeRepositoryError as error:
            raise PersistenceError(str(error)) from error
        if existing:
            logger.info("ingest.duplicate url=%s existing=%s", source_url, existing.id)
            raise DuplicateRecipeError(existing.id, existing.title)

    def _video_strategies(self) -> list[ExtractionStrategy]:
        return [
            ExtractionStrategy("frames", self._extract_from_frames),
            ExtractionStrategy("website_scrape", self._extract_from_website),
            ExtractionStrategy("text_hint", self._extract_from_hint),
        ]

    def _run_strategies(
        self,
        strategies: Sequence[ExtractionStrategy],
        context: ExtractionContext,
    ) -> ExtractedRecipe:
        last_error: Optional[ServiceError] = None
        all_raised = True
        for strategy in strategies:
            try:
                extracted = strategy.run(context)
            except ServiceError as error:
                logger.info("ingest.strategy_failed strategy=%s url=%s error=%s", strategy.name, context.url, error)
                last_error = error
                continue

            all_raised = False
            if extracted is not None:
                logger.info("ingest.strategy_ok strategy=%s url=%s", strategy.name, context.url)
                return extracted
            logger.info("ingest.strategy_empty strategy=%s url=%s", strategy.name, context.url)

        if all_raised and last_error is not None:
            raise last_error
        raise NoRecipeFoundError("No recipe found at this URL")

    def _extract_from_frames(self, context: ExtractionContext) -> Optional[ExtractedRecipe]:
        frames = self._frames.extract_frames(context.url)
        if frames.thumbnail:
            context.inline_thumbnail = frames.thumbnail
        return self._retry(
            lambda: self._extractor.extract_from_media(frames.frames, context.text_hint),
            FRAME_EXTRACTION_ATTEMPTS,
        )

    def _extract_from_website(self, context: ExtractionContext) -> Optional[ExtractedRecipe]:
        page = self._retry(lambda: self._fetcher.fetch(context.url, Platform.WEBSITE), FETCH_ATTEMPTS)
        if not context.image_url and page.image_url:
            context.image_url = page.image_url

        text = page.best_text
        if not text.strip():
            return None
        return self._retry(lambda: self._extractor.extract_from_text(text), TEXT_EXTRACTION_ATTEMPTS)

    def _extract_from_hint(self, context: ExtractionContext) -> Optional[ExtractedRecipe]:
        hint = context.text_hint
        if not hint:
            return None
        return self._retry(lambda: self._extractor.extract_from_text(hint), TEXT_EXTRACTION_ATTEMPTS)

    def _persist(self, user_id: str, result: PipelineResult) -> Recipe:
        extracted = result.recipe
        draft = RecipeDraft(
            user_id=user_id,
            title=extracted.title,
            source_platform=result.platform,
            categories=list(extracted.categories),
            extraction_status=derive_extraction_status(len(extracted.ingredients), len(extracted.steps)),
            steps=list(extracted.steps),
            source_url=result.source_url,
            video_embed_url=result.video_url,
            image_url=result.image_url,
        )
        try:
            return self._repository.insert_recipe(draft)
        except RecipeRepositoryError as error:
            raise PersistenceError(f"Failed to save recipe: {error.reason}") from error

    def _materialize_thumbnail(self, recipe: Recipe, result: PipelineResult) -> None:
        if result.inline_thumbnail:
            permanent_url = self._media.persist_inline(result.inline_thumbnail, recipe.id)
        elif result.image_url:
            permanent_url = self._media.persist(result.image_url, recipe.id)
        else:
            return

        if not permanent_url:
            logger.warning("ingest.thumbnail_fail recipe=%s", recipe.id)
            return
        if permanent_url == recipe.image_url:
            return

        try:
            self._repository.update_image_url(recipe.id, permanent_url)
        except RecipeRepositoryError as error:
            logger.warning("ingest.thumbnail_fail recipe=%s error=%s", recipe.id, error)
            return
        recipe.image_url = permanent_url

    def _persist_ingredients(self, recipe: Recipe, extracted: ExtractedRecipe) -> None:
        if not extracted.ingredients:
            return

        drafts = [
            IngredientDraft(
                name=item.name,
                canonical_name=normalize_ingredient(item.name),
                quantity=item.quantity,
                unit=item.unit,
            )
            for item in extracted.ingredients
        ]
        try:
            recipe.ingredients = self._repository.insert_ingredients(recipe.id, drafts)
        except RecipeRepositoryError as error:
            logger.error("ingest.ingredients_fail recipe=%s count=%d error=%s", recipe.id, len(drafts), error)
