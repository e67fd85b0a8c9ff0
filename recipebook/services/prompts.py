from __future__ import annotations

from recipebook.app.domain.models import CANONICAL_CATEGORIES

NO_RECIPE_SENTINEL = "no_recipe"

_OUTPUT_CONTRACT = f"""
Reply with ONE JSON object and nothing else (no markdown fences, no commentary).

Shape:
{{
  "title": "recipe title",
  "ingredients": [{{"name": "ingredient", "quantity": "2", "unit": "כוסות"}}],
  "steps": ["first step", "second step"],
  "categories": ["one or more of: {", ".join(CANONICAL_CATEGORIES)}"]
}}

Rules:
- Write every value in Hebrew, translating when the source is in another language.
- "quantity" and "unit" may be null when the source does not state them.
- Keep the steps in cooking order, one action per entry.
- Use only the listed categories.
- If there is no recipe in the content, reply exactly {{"error": "{NO_RECIPE_SENTINEL}"}}.
""".strip()


def build_text_prompt(text: str) -> str:
    return (
        "You extract cooking recipes from text scraped from web pages and social posts.\n\n"
        f"{_OUTPUT_CONTRACT}\n\n"
        "Content:\n"
        f"{text}"
    )


def build_media_prompt(text_hint: str | None = None) -> str:
    prompt = (
        "You extract cooking recipes from images: photos of a recipe, a cookbook page, "
        "or frames sampled from a cooking video. Read any visible text and infer "
        "ingredients and steps from what is shown.\n\n"
        f"{_OUTPUT_CONTRACT}"
    )
    if text_hint:
        prompt += f"\n\nAccompanying caption or title:\n{text_hint}"
    return prompt
