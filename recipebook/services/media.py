from __future__ import annotations

import logging
from typing import Optional

import httpx

from recipebook.app.domain.errors import StorageError
from recipebook.app.infra.storage.base import StorageProvider
from recipebook.services.errors import InvalidInputError
from recipebook.services.fetcher import BROWSER_HEADERS
from recipebook.services.images import decode_inline_image

logger = logging.getLogger(__name__)

DEFAULT_MIME = "image/jpeg"
MIME_EXTENSIONS: dict[str, str] = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/avif": "avif",
}


def _mime_type(content_type: Optional[str]) -> str:
    mime = (content_type or "").split(";", 1)[0].strip().lower()
    return mime if mime in MIME_EXTENSIONS else DEFAULT_MIME


def extension_for(content_type: Optional[str]) -> str:
    return MIME_EXTENSIONS[_mime_type(content_type)]


class MediaPersister:
    """
    Copies recipe thumbnails into permanent storage.

    Both entry points return the public URL or None; failures are logged
    and never raised, so a missing thumbnail never fails an ingestion.
    """

    def __init__(self, storage: StorageProvider, http_client: httpx.Client) -> None:
        self._storage = storage
        self._http = http_client

    def is_permanent(self, url: Optional[str]) -> bool:
        return bool(url) and self._storage.is_public_url(url)

    def persist(self, source_url: str, recipe_id: str) -> Optional[str]:
        if self.is_permanent(source_url):
            return source_url

        try:
            response = self._http.get(source_url, headers=BROWSER_HEADERS, follow_redirects=True)
        except (httpx.HTTPError, httpx.InvalidURL) as error:
            logger.warning("media.download_fail recipe=%s url=%s error=%s", recipe_id, source_url, error)
            return None

        if not response.is_success:
            logger.warning(
                "media.download_fail recipe=%s url=%s status=%s", recipe_id, source_url, response.status_code
            )
            return None

        mime = _mime_type(response.headers.get("content-type"))
        return self._upload(recipe_id, response.content, extension_for(mime), mime)

    def persist_inline(self, data: str, recipe_id: str) -> Optional[str]:
        try:
            image = decode_inline_image(data)
        except InvalidInputError as error:
            logger.warning("media.decode_fail recipe=%s error=%s", recipe_id, error)
            return None
        mime = _mime_type(image.mime_type)
        return self._upload(recipe_id, image.data, extension_for(mime), mime)

    def _upload(self, recipe_id: str, data: bytes, extension: str, content_type: str) -> Optional[str]:
        key = self._storage.build_thumbnail_key(recipe_id, extension)
        try:
            url = self._storage.upload_bytes(key, data, content_type)
        except StorageError as error:
            logger.warning("media.upload_fail recipe=%s key=%s error=%s", recipe_id, key, error)
            return None
        logger.info("media.ok recipe=%s key=%s", recipe_id, key)
        return url
