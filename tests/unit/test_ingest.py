from __future__ import annotations

import json

import httpx
import pytest

from recipebook.app.domain.models import (
    FALLBACK_CATEGORY,
    ExtractionStatus,
    Platform,
    Recipe,
)
from recipebook.services.errors import (
    ContentUnreachableError,
    DuplicateRecipeError,
    FrameExtractionError,
    InferenceError,
    InvalidInputError,
    InvalidURLError,
    NoRecipeFoundError,
    PersistenceError,
)
from recipebook.services.extractor import RecipeExtractor
from recipebook.services.fetcher import ContentFetcher
from recipebook.services.ingest import IngestService
from recipebook.services.types import ExtractedFrames, FetchedContent

USER = "user-1"
TIKTOK_URL = "https://www.tiktok.com/@chef/video/123"
SITE_URL = "https://blog.test/shakshuka"
IMAGE = "aGVsbG8="


def _tiktok_content(**overrides) -> FetchedContent:
    values = dict(
        description="Best pasta",
        title="Best pasta",
        image_url="https://cdn.tiktok.test/thumb.jpg",
        video_url=TIKTOK_URL,
        platform=Platform.TIKTOK,
    )
    values.update(overrides)
    return FetchedContent(**values)


def _existing(source_url: str, user_id: str = USER) -> Recipe:
    return Recipe(
        id="existing-1",
        user_id=user_id,
        title="Saved already",
        source_platform=Platform.WEBSITE,
        categories=[FALLBACK_CATEGORY],
        extraction_status=ExtractionStatus.COMPLETE,
        source_url=source_url,
    )


class TestEntryValidation:
    def test_requires_url_or_images(self, ingest_service) -> None:
        with pytest.raises(InvalidInputError):
            ingest_service.ingest(USER)

    def test_empty_image_list_is_not_input(self, ingest_service) -> None:
        with pytest.raises(InvalidInputError):
            ingest_service.ingest(USER, images=[])

    def test_rejects_both_url_and_images(self, ingest_service, extractor) -> None:
        with pytest.raises(InvalidInputError):
            ingest_service.ingest(USER, url=SITE_URL, images=[IMAGE])
        assert extractor.media_calls == []

    def test_rejects_too_many_images(self, ingest_service, extractor) -> None:
        with pytest.raises(InvalidInputError):
            ingest_service.ingest(USER, images=[IMAGE] * 6)
        assert extractor.media_calls == []

    def test_rejects_oversized_image(self, repository, fetcher, extractor, frame_extractor, media) -> None:
        service = IngestService(repository, fetcher, extractor, frame_extractor, media, max_image_chars=4)

        with pytest.raises(InvalidInputError):
            service.ingest(USER, images=[IMAGE])
        assert extractor.media_calls == []

    def test_rejects_undecodable_image(self, ingest_service, extractor) -> None:
        with pytest.raises(InvalidInputError):
            ingest_service.ingest(USER, images=["not base64!"])
        assert extractor.media_calls == []

    def test_malformed_url_is_rejected_before_any_work(self, ingest_service, fetcher, extractor) -> None:
        with pytest.raises(InvalidURLError):
            ingest_service.ingest(USER, url="not a url")
        assert fetcher.calls == []
        assert extractor.text_calls == []


class TestUploadPipeline:
    def test_extracts_from_images_and_stores_first_as_thumbnail(
        self, ingest_service, extractor, media, repository, extracted_factory
    ) -> None:
        extractor.media_outcomes = [extracted_factory()]
        images = [IMAGE, "d29ybGQ="]

        recipe = ingest_service.ingest(USER, images=images)

        assert recipe.source_platform == Platform.UPLOAD
        assert recipe.source_url is None
        assert extractor.media_calls == [(images, None)]
        assert media.inline_calls == [(IMAGE, recipe.id)]
        assert media.persist_calls == []
        assert recipe.image_url == media.result
        assert repository.image_updates == [(recipe.id, media.result)]

    def test_media_extraction_is_retried_twice(self, ingest_service, extractor, sleeps, extracted_factory) -> None:
        extractor.media_outcomes = [InferenceError("overloaded"), extracted_factory()]

        ingest_service.ingest(USER, images=[IMAGE])

        assert len(extractor.media_calls) == 2
        assert sleeps == [1.0]

    def test_media_extraction_gives_up_after_two_attempts(self, ingest_service, extractor, repository) -> None:
        extractor.media_outcomes = [InferenceError("overloaded")]

        with pytest.raises(InferenceError):
            ingest_service.ingest(USER, images=[IMAGE])

        assert len(extractor.media_calls) == 2
        assert repository.inserted == []

    def test_nothing_found_in_images(self, ingest_service, repository) -> None:
        with pytest.raises(NoRecipeFoundError):
            ingest_service.ingest(USER, images=[IMAGE])
        assert repository.inserted == []


class TestDuplicateDetection:
    def test_duplicate_is_reported_before_fetching(self, ingest_service, repository, fetcher, extractor) -> None:
        repository.add(_existing(SITE_URL))

        with pytest.raises(DuplicateRecipeError) as exc_info:
            ingest_service.ingest(USER, url=SITE_URL)

        assert exc_info.value.existing_id == "existing-1"
        assert exc_info.value.existing_title == "Saved already"
        assert fetcher.calls == []
        assert extractor.text_calls == []

    def test_other_users_recipe_is_not_a_duplicate(self, ingest_service, repository, fetcher, extractor, extracted_factory) -> None:
        repository.add(_existing(SITE_URL, user_id="someone-else"))
        fetcher.outcomes[Platform.WEBSITE] = [FetchedContent(description="text", platform=Platform.WEBSITE)]
        extractor.text_outcomes = [extracted_factory()]

        recipe = ingest_service.ingest(USER, url=SITE_URL)

        assert recipe.user_id == USER

    def test_same_url_twice_persists_once(self, ingest_service, repository, fetcher, extractor, extracted_factory) -> None:
        fetcher.outcomes[Platform.WEBSITE] = [FetchedContent(description="text", platform=Platform.WEBSITE)]
        extractor.text_outcomes = [extracted_factory()]

        first = ingest_service.ingest(USER, url=SITE_URL)
        with pytest.raises(DuplicateRecipeError) as exc_info:
            ingest_service.ingest(USER, url=f"  {SITE_URL}  ")

        assert exc_info.value.existing_id == first.id
        assert len(repository.inserted) == 1


class TestTextPipeline:
    def test_prefers_full_text(self, ingest_service, fetcher, extractor, media, extracted_factory) -> None:
        fetcher.outcomes[Platform.WEBSITE] = [
            FetchedContent(
                description="Shakshuka",
                full_text="Name: Shakshuka\nIngredients: eggs",
                image_url="https://blog.test/img.jpg",
                platform=Platform.WEBSITE,
            )
        ]
        extractor.text_outcomes = [extracted_factory()]

        recipe = ingest_service.ingest(USER, url=SITE_URL)

        assert extractor.text_calls == ["Name: Shakshuka\nIngredients: eggs"]
        assert recipe.source_platform == Platform.WEBSITE
        assert recipe.source_url == SITE_URL
        assert media.persist_calls == [("https://blog.test/img.jpg", recipe.id)]
        assert recipe.image_url == media.result

    def test_falls_back_to_description(self, ingest_service, fetcher, extractor, extracted_factory) -> None:
        fetcher.outcomes[Platform.WEBSITE] = [FetchedContent(description="Soup: onions", platform=Platform.WEBSITE)]
        extractor.text_outcomes = [extracted_factory()]

        ingest_service.ingest(USER, url=SITE_URL)

        assert extractor.text_calls == ["Soup: onions"]

    def test_fetch_is_retried_three_times(self, ingest_service, fetcher, extractor, sleeps) -> None:
        fetcher.outcomes[Platform.WEBSITE] = [ContentUnreachableError(SITE_URL, "HTTP 503")]

        with pytest.raises(ContentUnreachableError):
            ingest_service.ingest(USER, url=SITE_URL)

        assert len(fetcher.calls) == 3
        assert sleeps == [1.0, 2.0]
        assert extractor.text_calls == []

    def test_text_extraction_is_retried_three_times(self, ingest_service, fetcher, extractor) -> None:
        fetcher.outcomes[Platform.WEBSITE] = [FetchedContent(description="text", platform=Platform.WEBSITE)]
        extractor.text_outcomes = [InferenceError("503")]

        with pytest.raises(InferenceError):
            ingest_service.ingest(USER, url=SITE_URL)

        assert len(extractor.text_calls) == 3

    def test_empty_page_is_no_recipe_without_inference(self, ingest_service, fetcher, extractor) -> None:
        fetcher.outcomes[Platform.WEBSITE] = [FetchedContent(description="  ", platform=Platform.WEBSITE)]

        with pytest.raises(NoRecipeFoundError):
            ingest_service.ingest(USER, url=SITE_URL)
        assert extractor.text_calls == []

    def test_null_extraction_is_no_recipe(self, ingest_service, fetcher, repository) -> None:
        fetcher.outcomes[Platform.WEBSITE] = [FetchedContent(description="text", platform=Platform.WEBSITE)]

        with pytest.raises(NoRecipeFoundError):
            ingest_service.ingest(USER, url=SITE_URL)
        assert repository.inserted == []


class TestVideoPipeline:
    def test_frames_strategy_success(self, ingest_service, fetcher, frame_extractor, extractor, media, extracted_factory) -> None:
        fetcher.outcomes[Platform.TIKTOK] = [_tiktok_content()]
        frame_extractor.outcome = ExtractedFrames(frames=["Zm9v", "YmFy"], thumbnail="dGh1bWI=")
        extractor.media_outcomes = [extracted_factory()]

        recipe = ingest_service.ingest(USER, url=TIKTOK_URL)

        assert frame_extractor.calls == [TIKTOK_URL]
        assert extractor.media_calls == [(["Zm9v", "YmFy"], "Best pasta")]
        assert fetcher.calls == [(TIKTOK_URL, Platform.TIKTOK)]
        assert media.inline_calls == [("dGh1bWI=", recipe.id)]
        assert media.persist_calls == []
        assert recipe.source_platform == Platform.TIKTOK
        assert recipe.video_embed_url == TIKTOK_URL

    def test_fetched_image_is_used_without_frame_thumbnail(self, ingest_service, fetcher, extractor, media, extracted_factory) -> None:
        fetcher.outcomes[Platform.TIKTOK] = [_tiktok_content()]
        extractor.media_outcomes = [extracted_factory()]

        recipe = ingest_service.ingest(USER, url=TIKTOK_URL)

        assert media.inline_calls == []
        assert media.persist_calls == [("https://cdn.tiktok.test/thumb.jpg", recipe.id)]

    def test_text_hint_combines_distinct_title_and_description(self, ingest_service, fetcher, extractor, extracted_factory) -> None:
        fetcher.outcomes[Platform.TIKTOK] = [_tiktok_content(title="Pasta", description="chef_mario")]
        extractor.media_outcomes = [extracted_factory()]

        ingest_service.ingest(USER, url=TIKTOK_URL)

        assert extractor.media_calls[0][1] == "Pasta\nchef_mario"

    def test_frame_failure_falls_back_to_website_scrape(
        self, ingest_service, fetcher, frame_extractor, extractor, media, extracted_factory
    ) -> None:
        fetcher.outcomes[Platform.TIKTOK] = [_tiktok_content()]
        fetcher.outcomes[Platform.WEBSITE] = [
            FetchedContent(description="d", full_text="rich description", image_url="https://site.test/img.jpg", platform=Platform.WEBSITE)
        ]
        frame_extractor.outcome = FrameExtractionError("timed out")
        extractor.text_outcomes = [extracted_factory()]

        recipe = ingest_service.ingest(USER, url=TIKTOK_URL)

        assert fetcher.calls == [(TIKTOK_URL, Platform.TIKTOK), (TIKTOK_URL, Platform.WEBSITE)]
        assert extractor.text_calls == ["rich description"]
        assert extractor.media_calls == []
        assert media.persist_calls == [("https://cdn.tiktok.test/thumb.jpg", recipe.id)]

    def test_website_scrape_image_fills_missing_image(
        self, ingest_service, fetcher, frame_extractor, extractor, media, extracted_factory
    ) -> None:
        fetcher.outcomes[Platform.TIKTOK] = [_tiktok_content(image_url=None)]
        fetcher.outcomes[Platform.WEBSITE] = [
            FetchedContent(description="rich", image_url="https://site.test/img.jpg", platform=Platform.WEBSITE)
        ]
        frame_extractor.outcome = FrameExtractionError("down")
        extractor.text_outcomes = [extracted_factory()]

        recipe = ingest_service.ingest(USER, url=TIKTOK_URL)

        assert media.persist_calls == [("https://site.test/img.jpg", recipe.id)]

    def test_empty_frame_extraction_falls_through(self, ingest_service, fetcher, extractor, extracted_factory) -> None:
        fetcher.outcomes[Platform.TIKTOK] = [_tiktok_content()]
        fetcher.outcomes[Platform.WEBSITE] = [FetchedContent(description="rich", platform=Platform.WEBSITE)]
        extractor.media_outcomes = [None]
        extractor.text_outcomes = [extracted_factory()]

        ingest_service.ingest(USER, url=TIKTOK_URL)

        assert len(extractor.media_calls) == 1
        assert extractor.text_calls == ["rich"]

    def test_text_hint_is_last_resort(self, ingest_service, fetcher, frame_extractor, extractor, sleeps, extracted_factory) -> None:
        fetcher.outcomes[Platform.TIKTOK] = [_tiktok_content()]
        fetcher.outcomes[Platform.WEBSITE] = [ContentUnreachableError(TIKTOK_URL, "HTTP 403")]
        frame_extractor.outcome = FrameExtractionError("down")
        extractor.text_outcomes = [extracted_factory()]

        recipe = ingest_service.ingest(USER, url=TIKTOK_URL)

        assert len(fetcher.calls) == 4
        assert extractor.text_calls == ["Best pasta"]
        assert sleeps == [1.0, 2.0]
        assert recipe.title == "עוגה"

    def test_exhausted_chain_without_hint_is_no_recipe(self, ingest_service, fetcher, frame_extractor, extractor) -> None:
        fetcher.outcomes[Platform.TIKTOK] = [_tiktok_content(title=None, description="")]
        fetcher.outcomes[Platform.WEBSITE] = [ContentUnreachableError(TIKTOK_URL, "HTTP 403")]
        frame_extractor.outcome = FrameExtractionError("down")

        with pytest.raises(NoRecipeFoundError):
            ingest_service.ingest(USER, url=TIKTOK_URL)
        assert extractor.text_calls == []

    def test_last_error_surfaces_when_every_strategy_raised(self, ingest_service, fetcher, frame_extractor, extractor) -> None:
        fetcher.outcomes[Platform.TIKTOK] = [_tiktok_content()]
        fetcher.outcomes[Platform.WEBSITE] = [ContentUnreachableError(TIKTOK_URL, "HTTP 403")]
        frame_extractor.outcome = FrameExtractionError("down")
        extractor.text_outcomes = [InferenceError("quota")]

        with pytest.raises(InferenceError):
            ingest_service.ingest(USER, url=TIKTOK_URL)
        assert len(extractor.text_calls) == 3

    def test_primary_fetch_failure_is_unreachable(self, ingest_service, fetcher, frame_extractor) -> None:
        fetcher.outcomes[Platform.TIKTOK] = [ContentUnreachableError(TIKTOK_URL, "network error")]

        with pytest.raises(ContentUnreachableError):
            ingest_service.ingest(USER, url=TIKTOK_URL)
        assert frame_extractor.calls == []


class TestPersistence:
    def _website(self, fetcher) -> None:
        fetcher.outcomes[Platform.WEBSITE] = [
            FetchedContent(description="text", image_url="https://blog.test/img.jpg", platform=Platform.WEBSITE)
        ]

    def test_complete_status_and_canonical_ingredients(self, ingest_service, fetcher, extractor, repository, extracted_factory) -> None:
        self._website(fetcher)
        extractor.text_outcomes = [extracted_factory()]

        recipe = ingest_service.ingest(USER, url=SITE_URL)

        assert recipe.extraction_status == ExtractionStatus.COMPLETE
        batch_recipe_id, drafts = repository.ingredient_batches[0]
        assert batch_recipe_id == recipe.id
        assert [(d.name, d.canonical_name) for d in drafts] == [("2 כוסות קמח", "קמח"), ("ביצה", "ביצה")]
        assert [i.canonical_name for i in recipe.ingredients] == ["קמח", "ביצה"]

    @pytest.mark.parametrize(
        ("ingredients", "steps"),
        [((), ("mix",)), (("flour",), ()), ((), ())],
    )
    def test_partial_status(self, ingest_service, fetcher, extractor, repository, extracted_factory, ingredients, steps) -> None:
        self._website(fetcher)
        extractor.text_outcomes = [extracted_factory(ingredients=ingredients, steps=steps)]

        recipe = ingest_service.ingest(USER, url=SITE_URL)

        assert recipe.extraction_status == ExtractionStatus.PARTIAL
        if not ingredients:
            assert repository.ingredient_batches == []

    def test_insert_failure_is_persistence_error(self, ingest_service, fetcher, extractor, repository, media, extracted_factory) -> None:
        self._website(fetcher)
        extractor.text_outcomes = [extracted_factory()]
        repository.fail_insert = True

        with pytest.raises(PersistenceError):
            ingest_service.ingest(USER, url=SITE_URL)
        assert media.persist_calls == []
        assert repository.ingredient_batches == []

    def test_ingredient_failure_keeps_recipe(self, ingest_service, fetcher, extractor, repository, extracted_factory) -> None:
        self._website(fetcher)
        extractor.text_outcomes = [extracted_factory()]
        repository.fail_ingredients = True

        recipe = ingest_service.ingest(USER, url=SITE_URL)

        assert recipe.id in repository.recipes
        assert recipe.ingredients == []

    def test_thumbnail_failure_keeps_fetched_image(self, ingest_service, fetcher, extractor, media, repository, extracted_factory) -> None:
        self._website(fetcher)
        extractor.text_outcomes = [extracted_factory()]
        media.result = None

        recipe = ingest_service.ingest(USER, url=SITE_URL)

        assert recipe.image_url == "https://blog.test/img.jpg"
        assert repository.image_updates == []

    def test_image_update_failure_is_not_fatal(self, ingest_service, fetcher, extractor, repository, extracted_factory) -> None:
        self._website(fetcher)
        extractor.text_outcomes = [extracted_factory()]
        repository.fail_image_update = True

        recipe = ingest_service.ingest(USER, url=SITE_URL)

        assert recipe.image_url == "https://blog.test/img.jpg"


class TestCategoryFallbackEndToEnd:
    def test_unknown_categories_persist_as_fallback(self, repository, fetcher, frame_extractor, media) -> None:
        class ClientStub:
            def generate_text(self, prompt: str) -> str:
                return json.dumps({"title": "Salad", "ingredients": [], "steps": ["chop"], "categories": ["summer"]})

            def generate_from_images(self, prompt, images) -> str:
                raise AssertionError("not used")

        fetcher.outcomes[Platform.WEBSITE] = [FetchedContent(description="salad", platform=Platform.WEBSITE)]
        service = IngestService(
            repository, fetcher, RecipeExtractor(ClientStub()), frame_extractor, media, sleep=lambda _: None
        )

        recipe = service.ingest(USER, url=SITE_URL)

        assert recipe.categories == [FALLBACK_CATEGORY]
        assert repository.inserted[0].categories == [FALLBACK_CATEGORY]


class TestLoginWalledPost:
    URL = "https://www.instagram.com/reel/abc/"

    def test_frames_still_run_when_page_is_blocked(
        self, repository, extractor, frame_extractor, media, sleeps, extracted_factory
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "noembed.com":
                return httpx.Response(200, json={"error": "no matching providers found"})
            return httpx.Response(403, text="<html><title>Login</title></html>")

        fetcher = ContentFetcher(httpx.Client(transport=httpx.MockTransport(handler)))
        extractor.media_outcomes = [extracted_factory()]
        service = IngestService(repository, fetcher, extractor, frame_extractor, media, sleep=sleeps.append)  # type: ignore[arg-type]

        recipe = service.ingest(USER, url=self.URL)

        assert frame_extractor.calls == [self.URL]
        assert sleeps == []
        assert recipe.source_platform == Platform.INSTAGRAM
        assert recipe.id in repository.recipes
