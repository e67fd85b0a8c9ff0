from __future__ import annotations

import pytest

from recipebook.app.domain.models import (
    CANONICAL_CATEGORIES,
    FALLBACK_CATEGORY,
    ExtractionStatus,
    Platform,
    Recipe,
    derive_extraction_status,
)


class TestPlatform:
    def test_platform_values(self) -> None:
        assert [p.value for p in Platform] == [
            "instagram",
            "facebook",
            "tiktok",
            "youtube",
            "website",
            "upload",
        ]

    def test_platform_is_string_enum(self) -> None:
        assert isinstance(Platform.TIKTOK, str)
        assert Platform.TIKTOK == "tiktok"


class TestCategories:
    def test_fallback_is_canonical(self) -> None:
        assert FALLBACK_CATEGORY in CANONICAL_CATEGORIES

    def test_five_canonical_categories(self) -> None:
        assert len(CANONICAL_CATEGORIES) == 5
        assert len(set(CANONICAL_CATEGORIES)) == 5


class TestDeriveExtractionStatus:
    @pytest.mark.parametrize(
        ("ingredients", "steps", "expected"),
        [
            (3, 2, ExtractionStatus.COMPLETE),
            (0, 2, ExtractionStatus.PARTIAL),
            (3, 0, ExtractionStatus.PARTIAL),
            (0, 0, ExtractionStatus.PARTIAL),
        ],
    )
    def test_status(self, ingredients, steps, expected) -> None:
        assert derive_extraction_status(ingredients, steps) == expected


class TestRecipe:
    def test_create_recipe_minimal(self) -> None:
        recipe = Recipe(
            id="abc",
            user_id="user-1",
            title="שקשוקה",
            source_platform=Platform.WEBSITE,
            categories=["פרווה"],
            extraction_status=ExtractionStatus.PARTIAL,
        )

        assert recipe.steps == []
        assert recipe.ingredients == []
        assert recipe.missing_ingredients is None
        assert recipe.is_complete is False

    def test_is_complete(self) -> None:
        recipe = Recipe(
            id="abc",
            user_id="user-1",
            title="שקשוקה",
            source_platform=Platform.WEBSITE,
            categories=["פרווה"],
            extraction_status=ExtractionStatus.COMPLETE,
        )

        assert recipe.is_complete is True
