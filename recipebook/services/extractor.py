from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional, Sequence

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from recipebook.app.domain.models import CANONICAL_CATEGORIES, FALLBACK_CATEGORY
from recipebook.services.gemini_client import InferenceClient
from recipebook.services.images import decode_inline_image
from recipebook.services.prompts import NO_RECIPE_SENTINEL, build_media_prompt, build_text_prompt
from recipebook.services.types import (
    ExtractedIngredient,
    ExtractedRecipe,
    Malformed,
    NotFound,
    ParseOutcome,
    RecipeFound,
)

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "מתכון ללא שם"

_LEADING_QUANTITY = re.compile(r"^\d+(?:[./,]\d+)*\s+")
_LEADING_UNIT = re.compile(r'^(?:כוסות|כוס|כפות|כפיות|כפית|כף|גרם|ק"ג|מ"ל|ליטר|יח\'|יחידות|יחידה)\s+')


def normalize_ingredient(name: str) -> str:
    """
    Canonical form of an ingredient name, used only for matching.

    Strips a leading standalone quantity and a leading Hebrew unit word,
    e.g. "2 כוסות קמח" -> "קמח". Applied until nothing changes, so
    normalizing a canonical name returns it unchanged.
    """
    current = name.strip()
    while True:
        stripped = _LEADING_QUANTITY.sub("", current, count=1)
        stripped = _LEADING_UNIT.sub("", stripped, count=1).strip()
        if stripped == current:
            return current
        current = stripped


def filter_categories(values: Sequence[Any]) -> list[str]:
    seen: list[str] = []
    for value in values:
        if not isinstance(value, str):
            continue
        category = value.strip()
        if category in CANONICAL_CATEGORIES and category not in seen:
            seen.append(category)
    return seen or [FALLBACK_CATEGORY]


def _blank_to_none(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value.strip() or None
    raise ValueError("expected a string or a number")


class _IngredientPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    quantity: Optional[str] = None
    unit: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("ingredient name is empty")
        return value

    @field_validator("quantity", "unit", mode="before")
    @classmethod
    def _coerce_optional(cls, value: Any) -> Optional[str]:
        return _blank_to_none(value)


class _RecipePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = None
    ingredients: list[_IngredientPayload] = []
    steps: list[str] = []
    categories: list[Any] = []

    @field_validator("ingredients", "steps", "categories", mode="before")
    @classmethod
    def _null_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("ingredients", mode="before")
    @classmethod
    def _bare_names(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        return [{"name": item} if isinstance(item, str) else item for item in value]

    @field_validator("steps")
    @classmethod
    def _drop_blank_steps(cls, value: list[str]) -> list[str]:
        return [step.strip() for step in value if step.strip()]

    @field_validator("title", mode="before")
    @classmethod
    def _coerce_title(cls, value: Any) -> Optional[str]:
        return _blank_to_none(value)


def _first_json_object(text: str) -> Optional[dict]:
    decoder = json.JSONDecoder()
    index = text.find("{")
    while index != -1:
        try:
            candidate, _ = decoder.raw_decode(text, index)
        except json.JSONDecodeError:
            index = text.find("{", index + 1)
            continue
        if isinstance(candidate, dict):
            return candidate
        index = text.find("{", index + 1)
    return None


def parse_inference_response(text: str) -> ParseOutcome:
    data = _first_json_object(text or "")
    if data is None:
        return Malformed("no JSON object in model response")

    if data.get("error") == NO_RECIPE_SENTINEL:
        return NotFound()

    try:
        payload = _RecipePayload.model_validate(data)
    except ValidationError as err:
        return Malformed(f"unexpected recipe shape: {err.error_count()} error(s)")

    return RecipeFound(
        ExtractedRecipe(
            title=payload.title or DEFAULT_TITLE,
            ingredients=[
                ExtractedIngredient(name=item.name, quantity=item.quantity, unit=item.unit)
                for item in payload.ingredients
            ],
            steps=payload.steps,
            categories=filter_categories(payload.categories),
        )
    )


def _unwrap(outcome: ParseOutcome, raw: str) -> Optional[ExtractedRecipe]:
    if isinstance(outcome, RecipeFound):
        return outcome.recipe
    if isinstance(outcome, Malformed):
        logger.warning("extract.malformed reason=%s raw=%r", outcome.reason, raw[:300])
    else:
        logger.info("extract.no_recipe")
    return None


class RecipeExtractor:
    """Turns free text or images into an ExtractedRecipe via the inference client."""

    def __init__(self, client: InferenceClient) -> None:
        self._client = client

    def extract_from_text(self, text: str) -> Optional[ExtractedRecipe]:
        raw = self._client.generate_text(build_text_prompt(text))
        return _unwrap(parse_inference_response(raw), raw)

    def extract_from_media(
        self,
        images: Sequence[str],
        text_hint: Optional[str] = None,
    ) -> Optional[ExtractedRecipe]:
        decoded = [decode_inline_image(image) for image in images]
        raw = self._client.generate_from_images(build_media_prompt(text_hint), decoded)
        return _unwrap(parse_inference_response(raw), raw)
