# recipebook/app/infra/storage/supabase_provider.py
from __future__ import annotations

import logging

from supabase import Client

from recipebook.app.domain.errors import StorageUploadError
from recipebook.app.infra.storage.base import StorageProvider

logger = logging.getLogger(__name__)

PUBLIC_OBJECT_PATH = "/storage/v1/object/public"


class SupabaseStorageProvider(StorageProvider):
    """Public Supabase Storage bucket."""

    def __init__(self, client: Client, supabase_url: str, bucket: str = "recipe-thumbnails") -> None:
        self._client = client
        self.bucket = bucket
        self._public_prefix = f"{supabase_url.rstrip('/')}{PUBLIC_OBJECT_PATH}/{bucket}"

    def upload_bytes(self, object_key: str, data: bytes, content_type: str) -> str:
        try:
            self._client.storage.from_(self.bucket).upload(
                object_key,
                data,
                file_options={"content-type": content_type, "upsert": "true"},
            )
        except Exception as e:
            logger.error("Supabase storage upload failed: key=%s error=%s", object_key, e)
            raise StorageUploadError(object_key, str(e)) from e

        logger.info("Uploaded to Supabase storage: bucket=%s key=%s bytes=%d", self.bucket, object_key, len(data))
        return self.get_public_url(object_key)

    def get_public_url(self, object_key: str) -> str:
        return f"{self._public_prefix}/{object_key}"

    def is_public_url(self, url: str) -> bool:
        return f"{PUBLIC_OBJECT_PATH}/{self.bucket}" in url
