from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

import httpx
from bs4 import BeautifulSoup

from recipebook.app.domain.models import Platform
from recipebook.services.errors import ContentUnreachableError
from recipebook.services.platforms import extract_youtube_video_id
from recipebook.services.types import FetchedContent

logger = logging.getLogger(__name__)

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
}

# TikTok and YouTube publish oEmbed themselves; noembed proxies the Meta platforms.
OEMBED_ENDPOINTS: dict[Platform, str] = {
    Platform.TIKTOK: "https://www.tiktok.com/oembed",
    Platform.YOUTUBE: "https://www.youtube.com/oembed",
    Platform.INSTAGRAM: "https://noembed.com/embed",
    Platform.FACEBOOK: "https://noembed.com/embed",
}

YOUTUBE_MAXRES_THUMBNAIL = "https://i.ytimg.com/vi/{video_id}/maxresdefault.jpg"
YOUTUBE_HQ_THUMBNAIL = "https://i.ytimg.com/vi/{video_id}/hqdefault.jpg"

BODY_TEXT_LIMIT = 8000
NOISE_TAGS = ("script", "style", "nav", "header", "footer")
WHITESPACE_PATTERN = re.compile(r"\s+")

PAGE_IMAGE_PROPERTIES = ("og:image:secure_url", "og:image:url", "og:image")
SOCIAL_IMAGE_PROPERTIES = PAGE_IMAGE_PROPERTIES + ("twitter:image", "twitter:image:src")


@dataclass(frozen=True)
class JsonLdRecipe:
    text: str
    image: Optional[str]


def _clean_string(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def extract_meta(soup: BeautifulSoup, prop: str) -> str | None:
    for attr in ("property", "name"):
        tag = soup.find("meta", attrs={attr: prop})
        if tag is None:
            continue
        content = _clean_string(tag.get("content"))
        if content:
            return content
    return None


def _first_meta(soup: BeautifulSoup, props: tuple[str, ...]) -> str | None:
    for prop in props:
        value = extract_meta(soup, prop)
        if value:
            return value
    return None


def _page_title(soup: BeautifulSoup) -> str | None:
    title = extract_meta(soup, "og:title") or extract_meta(soup, "title")
    if title:
        return title
    if soup.title and soup.title.string:
        return _clean_string(soup.title.string)
    return None


def _join_nonempty(*parts: str | None) -> str:
    return "\n\n".join(p for p in parts if p)


def _is_recipe_type(value: Any) -> bool:
    types = value if isinstance(value, list) else [value]
    return any(isinstance(t, str) and t.lower() == "recipe" for t in types)


def _iter_json_ld_candidates(data: Any) -> list[dict]:
    candidates: list[dict] = []
    if isinstance(data, list):
        for item in data:
            candidates.extend(_iter_json_ld_candidates(item))
    elif isinstance(data, dict):
        graph = data.get("@graph")
        if isinstance(graph, list):
            candidates.extend(item for item in graph if isinstance(item, dict))
        candidates.append(data)
    return candidates


def _instruction_steps(instructions: Any) -> list[str]:
    if isinstance(instructions, str):
        text = _clean_string(instructions)
        return [text] if text else []
    if not isinstance(instructions, list):
        return []

    steps: list[str] = []
    for step in instructions:
        if isinstance(step, str):
            text = _clean_string(step)
        elif isinstance(step, dict) and step.get("text"):
            text = _clean_string(step.get("text"))
        elif isinstance(step, dict) and isinstance(step.get("itemListElement"), list):
            steps.extend(_instruction_steps(step["itemListElement"]))
            continue
        else:
            text = None
        if text:
            steps.append(text)
    return steps


def _json_ld_image(image: Any) -> str | None:
    if isinstance(image, str):
        return _clean_string(image)
    if isinstance(image, list) and image:
        return _json_ld_image(image[0])
    if isinstance(image, dict):
        return _clean_string(image.get("url"))
    return None


def _recipe_to_text(data: dict) -> str:
    parts: list[str] = []
    name = _clean_string(data.get("name"))
    if name:
        parts.append(f"Name: {name}")
    description = _clean_string(data.get("description"))
    if description:
        parts.append(f"Description: {description}")

    ingredients = data.get("recipeIngredient")
    if isinstance(ingredients, list):
        lines = [str(item).strip() for item in ingredients if str(item).strip()]
        if lines:
            parts.append("\nIngredients:\n" + "\n".join(lines))

    steps = _instruction_steps(data.get("recipeInstructions"))
    if steps:
        numbered = "\n".join(f"{i}. {step}" for i, step in enumerate(steps, start=1))
        parts.append(f"\nInstructions:\n{numbered}")

    categories = data.get("recipeCategory")
    if categories:
        values = categories if isinstance(categories, list) else [categories]
        parts.append("\nCategories: " + ", ".join(str(c) for c in values))

    return "\n".join(parts)


def extract_json_ld_recipe(soup: BeautifulSoup) -> JsonLdRecipe | None:
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw_json = script.string or script.get_text()
        if not raw_json:
            continue
        try:
            data = json.loads(raw_json)
        except json.JSONDecodeError:
            continue

        for candidate in _iter_json_ld_candidates(data):
            if not _is_recipe_type(candidate.get("@type")):
                continue
            text = _recipe_to_text(candidate)
            if text:
                return JsonLdRecipe(text=text, image=_json_ld_image(candidate.get("image")))
    return None


def extract_body_text(soup: BeautifulSoup, limit: int = BODY_TEXT_LIMIT) -> str:
    """Readable page text. Mutates `soup` (noise tags are removed)."""
    for tag in soup.find_all(list(NOISE_TAGS)):
        tag.decompose()
    text = soup.get_text(" ")
    return WHITESPACE_PATTERN.sub(" ", text).strip()[:limit]


class ContentFetcher:
    """
    Pulls descriptive text and media URLs for a post or page.

    Precedence per platform:
    - website: page scrape (JSON-LD recipe, else meta tags + body text)
    - youtube: direct thumbnail + oEmbed, each optional
    - tiktok/instagram/facebook: oEmbed
    - anything left: Open Graph scrape of the page itself, whatever its status

    No retries here; callers wrap `fetch` with the retry helper.
    """

    def __init__(self, http_client: httpx.Client) -> None:
        self._http = http_client

    def fetch(self, url: str, platform: Platform) -> FetchedContent:
        if platform == Platform.WEBSITE:
            return self._fetch_website(url)

        if platform == Platform.YOUTUBE:
            content = self._fetch_youtube_direct(url)
            if content:
                return content

        content = self._fetch_oembed(url, platform)
        if content:
            return content

        return self._fetch_page_metadata(url, platform)

    def _get_page(self, url: str, *, require_success: bool = True) -> str:
        try:
            response = self._http.get(url, headers=BROWSER_HEADERS, follow_redirects=True)
        except httpx.HTTPError as error:
            raise ContentUnreachableError(url, f"network error: {error}") from error

        if not response.is_success:
            if require_success:
                raise ContentUnreachableError(url, f"HTTP {response.status_code}")
            logger.info("page.status url=%s status=%s", url, response.status_code)
        return response.text

    def _fetch_website(self, url: str) -> FetchedContent:
        soup = BeautifulSoup(self._get_page(url), "html.parser")

        title = _page_title(soup)
        image_url = _first_meta(soup, PAGE_IMAGE_PROPERTIES)

        json_ld = extract_json_ld_recipe(soup)
        if json_ld:
            return FetchedContent(
                description=title or "",
                title=title,
                image_url=json_ld.image or image_url,
                platform=Platform.WEBSITE,
                full_text=json_ld.text,
            )

        description = extract_meta(soup, "og:description") or extract_meta(soup, "description")
        body_text = extract_body_text(soup)
        return FetchedContent(
            description=_join_nonempty(title, description),
            title=title,
            image_url=image_url,
            platform=Platform.WEBSITE,
            full_text=body_text or None,
        )

    def _resolve_youtube_thumbnail(self, video_id: str) -> str:
        maxres_url = YOUTUBE_MAXRES_THUMBNAIL.format(video_id=video_id)
        try:
            response = self._http.head(maxres_url)
            if response.is_success:
                return maxres_url
        except httpx.HTTPError as error:
            logger.debug("youtube.maxres_unavailable video=%s error=%s", video_id, error)
        # hqdefault exists for every public video
        return YOUTUBE_HQ_THUMBNAIL.format(video_id=video_id)

    def _fetch_youtube_direct(self, url: str) -> FetchedContent | None:
        video_id = extract_youtube_video_id(url)
        if not video_id:
            return None

        thumbnail = self._resolve_youtube_thumbnail(video_id)
        oembed = self._fetch_oembed(url, Platform.YOUTUBE)
        if oembed:
            oembed.image_url = thumbnail
            return oembed

        return FetchedContent(
            description="",
            video_url=url,
            image_url=thumbnail,
            platform=Platform.YOUTUBE,
        )

    def _fetch_oembed(self, url: str, platform: Platform) -> FetchedContent | None:
        endpoint = OEMBED_ENDPOINTS.get(platform)
        if not endpoint:
            return None

        try:
            response = self._http.get(endpoint, params={"url": url, "format": "json"})
            if not response.is_success:
                logger.info("oembed.unavailable platform=%s status=%s", platform.value, response.status_code)
                return None
            data = response.json()
        except (httpx.HTTPError, ValueError) as error:
            logger.info("oembed.fail platform=%s error=%s", platform.value, error)
            return None

        if not isinstance(data, dict) or data.get("error"):
            return None

        title = _clean_string(data.get("title"))
        author = _clean_string(data.get("author_name"))
        return FetchedContent(
            description=title or author or "",
            title=title,
            video_url=url,
            image_url=_clean_string(data.get("thumbnail_url")),
            platform=platform,
        )

    def _fetch_page_metadata(self, url: str, platform: Platform) -> FetchedContent:
        soup = BeautifulSoup(self._get_page(url, require_success=False), "html.parser")

        title = _page_title(soup)
        description = extract_meta(soup, "og:description") or extract_meta(soup, "description")
        video_url = extract_meta(soup, "og:video:url") or extract_meta(soup, "og:video") or url

        return FetchedContent(
            description=_join_nonempty(title, description),
            title=title,
            video_url=video_url,
            image_url=_first_meta(soup, SOCIAL_IMAGE_PROPERTIES),
            platform=platform,
        )
