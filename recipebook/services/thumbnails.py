from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from recipebook.app.domain.errors import RecipeRepositoryError
from recipebook.app.domain.models import Platform, Recipe
from recipebook.app.infra.db.base import RecipeRepository
from recipebook.services.errors import ServiceError
from recipebook.services.fetcher import ContentFetcher
from recipebook.services.media import MediaPersister

logger = logging.getLogger(__name__)

PAUSE_BETWEEN_RECIPES_SECONDS = 0.5

STATUS_UPDATED = "updated"
STATUS_ALREADY_STORED = "skipped - already stored"
STATUS_NO_SOURCE = "skipped - no source URL"
STATUS_NO_IMAGE = "skipped - no image fetched"


@dataclass
class MigrationDetail:
    id: str
    title: str
    status: str
    image_url: Optional[str] = None


@dataclass
class MigrationReport:
    total: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    details: list[MigrationDetail] = field(default_factory=list)

    def record(self, recipe: Recipe, status: str, image_url: Optional[str] = None) -> None:
        if status == STATUS_UPDATED:
            self.updated += 1
        elif status.startswith("skipped"):
            self.skipped += 1
        else:
            self.failed += 1
        self.details.append(MigrationDetail(recipe.id, recipe.title, status, image_url))


class ThumbnailMigrator:
    """Re-hosts the thumbnails of existing recipes in permanent storage."""

    def __init__(
        self,
        repository: RecipeRepository,
        fetcher: ContentFetcher,
        media: MediaPersister,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._repository = repository
        self._fetcher = fetcher
        self._media = media
        self._sleep = sleep

    def migrate(self, user_id: str) -> MigrationReport:
        recipes = self._repository.list_recipes_for_thumbnails(user_id)
        report = MigrationReport(total=len(recipes))
        logger.info("thumbnails.start owner=%s recipes=%d", user_id, len(recipes))

        pause_needed = False
        for recipe in recipes:
            if self._media.is_permanent(recipe.image_url):
                report.record(recipe, STATUS_ALREADY_STORED, recipe.image_url)
                continue
            if not recipe.source_url and not recipe.image_url:
                report.record(recipe, STATUS_NO_SOURCE)
                continue

            if pause_needed:
                self._sleep(PAUSE_BETWEEN_RECIPES_SECONDS)
            pause_needed = True
            self._migrate_one(recipe, report)

        logger.info(
            "thumbnails.done owner=%s updated=%d skipped=%d failed=%d",
            user_id,
            report.updated,
            report.skipped,
            report.failed,
        )
        return report

    def _candidate_image(self, recipe: Recipe) -> Optional[str]:
        if recipe.source_url and recipe.source_platform != Platform.UPLOAD:
            try:
                content = self._fetcher.fetch(recipe.source_url, recipe.source_platform)
            except ServiceError as error:
                logger.info("thumbnails.fetch_fail recipe=%s error=%s", recipe.id, error)
            else:
                if content.image_url:
                    return content.image_url
        return recipe.image_url

    def _migrate_one(self, recipe: Recipe, report: MigrationReport) -> None:
        candidate = self._candidate_image(recipe)
        if not candidate:
            report.record(recipe, STATUS_NO_IMAGE)
            return

        permanent_url = self._media.persist(candidate, recipe.id)
        if not permanent_url:
            report.record(recipe, "failed: could not store image", candidate)
            return

        try:
            self._repository.update_image_url(recipe.id, permanent_url)
        except RecipeRepositoryError as error:
            logger.warning("thumbnails.update_fail recipe=%s error=%s", recipe.id, error)
            report.record(recipe, f"failed: {error.reason}", permanent_url)
            return

        report.record(recipe, STATUS_UPDATED, permanent_url)
