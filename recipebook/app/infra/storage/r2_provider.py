# recipebook/app/infra/storage/r2_provider.py
"""
Cloudflare R2 storage provider implementation.
R2 is S3-compatible, so we use boto3 with custom endpoint.
"""
from __future__ import annotations

import logging
import os
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from recipebook.app.domain.errors import StorageError, StorageUploadError
from recipebook.app.infra.storage.base import StorageProvider

logger = logging.getLogger(__name__)


class R2StorageProvider(StorageProvider):
    """
    Cloudflare R2 storage provider using boto3 (S3-compatible).

    Environment variables required:
    - R2_ACCOUNT_ID: Cloudflare account ID
    - R2_ACCESS_KEY_ID: R2 access key ID
    - R2_SECRET_ACCESS_KEY: R2 secret access key
    - R2_BUCKET_NAME: Name of the R2 bucket
    - R2_PUBLIC_URL: Public URL the bucket is served from
    """

    def __init__(
        self,
        account_id: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        bucket_name: Optional[str] = None,
        public_url: Optional[str] = None,
        client=None,
    ):
        self.account_id = account_id or os.getenv("R2_ACCOUNT_ID")
        self.access_key_id = access_key_id or os.getenv("R2_ACCESS_KEY_ID")
        self.secret_access_key = secret_access_key or os.getenv("R2_SECRET_ACCESS_KEY")
        self.bucket_name = bucket_name or os.getenv("R2_BUCKET_NAME")
        self.public_url = (public_url or os.getenv("R2_PUBLIC_URL") or "").rstrip("/")

        if not all([self.account_id, self.access_key_id, self.secret_access_key, self.bucket_name, self.public_url]):
            raise StorageError(
                "Missing R2 configuration. Required: R2_ACCOUNT_ID, R2_ACCESS_KEY_ID, "
                "R2_SECRET_ACCESS_KEY, R2_BUCKET_NAME, R2_PUBLIC_URL"
            )

        self.endpoint_url = f"https://{self.account_id}.r2.cloudflarestorage.com"

        self._client = client or boto3.client(
            "s3",
            endpoint_url=self.endpoint_url,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=Config(
                signature_version="s3v4",
                retries={"max_attempts": 3, "mode": "adaptive"},
            ),
            region_name="auto",  # R2 uses 'auto' as region
        )

        logger.info(
            "R2StorageProvider initialized: bucket=%s, endpoint=%s",
            self.bucket_name,
            self.endpoint_url,
        )

    def upload_bytes(self, object_key: str, data: bytes, content_type: str) -> str:
        """PUT the object; S3 semantics overwrite an existing key."""
        try:
            self._client.put_object(
                Bucket=self.bucket_name,
                Key=object_key,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("Failed to upload to R2: key=%s error=%s", object_key, e)
            raise StorageUploadError(object_key, str(e)) from e

        logger.info("Uploaded to R2: key=%s, size=%d bytes", object_key, len(data))
        return self.get_public_url(object_key)

    def get_public_url(self, object_key: str) -> str:
        return f"{self.public_url}/{object_key}"

    def is_public_url(self, url: str) -> bool:
        return url.startswith(f"{self.public_url}/")
