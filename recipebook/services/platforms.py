# recipebook/services/platforms.py
import re
from typing import Optional
from urllib.parse import parse_qs, urlparse

from recipebook.app.domain.models import Platform
from recipebook.services.errors import InvalidURLError
from recipebook.services.types import UrlClassification

# Ordered: the first matching platform wins.
SOCIAL_MEDIA_PATTERNS: dict[Platform, tuple[re.Pattern[str], ...]] = {
    Platform.INSTAGRAM: (
        re.compile(r"^https?://(www\.)?instagram\.com/(reels?|p)/.+", re.I),
        re.compile(r"^https?://(www\.)?instagram\.com/stories/.+", re.I),
    ),
    Platform.TIKTOK: (
        re.compile(r"^https?://(www\.)?tiktok\.com/@[^/]+/video/.+", re.I),
        re.compile(r"^https?://vm\.tiktok\.com/.+", re.I),
    ),
    Platform.FACEBOOK: (
        re.compile(r"^https?://(www\.)?facebook\.com/.+/videos/.+", re.I),
        re.compile(r"^https?://fb\.watch/.+", re.I),
        re.compile(r"^https?://(www\.)?facebook\.com/reel/.+", re.I),
        re.compile(r"^https?://(www\.)?facebook\.com/share/(r|v)/.+", re.I),
    ),
    Platform.YOUTUBE: (
        re.compile(r"^https?://(www\.)?youtube\.com/shorts/.+", re.I),
        re.compile(r"^https?://(www\.)?youtube\.com/watch\?v=.+", re.I),
        re.compile(r"^https?://youtu\.be/.+", re.I),
    ),
}

_YT_SHORTS_RE = re.compile(r"/shorts/([^/?#]+)")


def _is_well_formed(url: str) -> bool:
    if not url or any(ch.isspace() for ch in url):
        return False
    try:
        parsed = urlparse(url)
        # urlparse only validates the port when it is read
        parsed.port
    except ValueError:
        return False
    return parsed.scheme in {"http", "https"} and bool(parsed.hostname)


def classify_url(raw_url: str) -> UrlClassification:
    """Return (platform, extraction method) for a submitted URL."""
    trimmed = (raw_url or "").strip()
    if not _is_well_formed(trimmed):
        raise InvalidURLError(f"Not a valid URL: {raw_url!r}")

    for platform, patterns in SOCIAL_MEDIA_PATTERNS.items():
        if any(pattern.match(trimmed) for pattern in patterns):
            return UrlClassification(platform=platform, extraction_method="video", normalized_url=trimmed)

    return UrlClassification(platform=Platform.WEBSITE, extraction_method="text", normalized_url=trimmed)


def extract_youtube_video_id(url: str) -> Optional[str]:
    try:
        parsed = urlparse(url)
    except ValueError:
        return None

    host = (parsed.hostname or "").lower()
    if host.endswith("youtube.com"):
        video_ids = parse_qs(parsed.query).get("v")
        if video_ids and video_ids[0]:
            return video_ids[0]
        match = _YT_SHORTS_RE.search(parsed.path)
        return match.group(1) if match else None

    if host == "youtu.be":
        video_id = parsed.path.lstrip("/").split("/")[0]
        return video_id or None

    return None
