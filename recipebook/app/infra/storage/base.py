# recipebook/app/infra/storage/base.py
"""
Abstract base class for storage providers.
Thumbnails are written here so that recipe images outlive the social-media CDN
links they were discovered on.
"""
from __future__ import annotations

from abc import ABC, abstractmethod


class StorageProvider(ABC):
    """
    Abstract interface for public object storage.

    Implementations:
    - SupabaseStorageProvider: Supabase Storage bucket (default)
    - R2StorageProvider: Cloudflare R2 (S3-compatible)
    """

    @abstractmethod
    def upload_bytes(self, object_key: str, data: bytes, content_type: str) -> str:
        """
        Upload a buffer, replacing any object already stored under the key.

        Args:
            object_key: The key/path where the object will be stored
            data: Raw object bytes
            content_type: MIME type of the content (e.g., "image/jpeg")

        Returns:
            The public URL of the stored object

        Raises:
            StorageUploadError: if the backend rejects the upload
        """

    @abstractmethod
    def get_public_url(self, object_key: str) -> str:
        """Stable public URL for an object key."""

    @abstractmethod
    def is_public_url(self, url: str) -> bool:
        """True when `url` already points into this storage namespace."""

    def build_thumbnail_key(self, recipe_id: str, extension: str) -> str:
        """
        Object key for a recipe thumbnail.

        Format: {recipe_id}.{extension}. One object per recipe, so re-uploading
        overwrites the previous thumbnail.
        """
        return f"{recipe_id}.{extension.lstrip('.')}"
