"""
S3-compatible object storage for user uploads
"""

import logging
from functools import lru_cache
from typing import Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from chatcoach.core.config import settings

logger = logging.getLogger(__name__)


class ObjectStorageError(Exception):
    """Raised when an upload or URL signing fails"""
    pass


class ObjectStorage:
    """Puts bytes under a key and hands out time-limited GET URLs"""

    def __init__(self, s3_client, bucket: str):
        self.s3_client = s3_client
        self.bucket = bucket

    def put_object(self, key: str, content: bytes, content_type: Optional[str] = None) -> None:
        """
        Upload ``content`` to ``key``.

        Args:
            key: Object key inside the bucket
            content: Raw bytes
            content_type: Optional MIME type stored with the object

        Raises:
            ObjectStorageError: If the storage backend rejects the upload
        """
        extra = {"ContentType": content_type} if content_type else {}
        try:
            self.s3_client.put_object(Bucket=self.bucket, Key=key, Body=content, **extra)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to upload object {key}: {e}")
            raise ObjectStorageError(f"upload failed for {key}") from e

    def signed_url(self, key: str, expires: int = 3600) -> str:
        """Presigned GET URL valid for ``expires`` seconds"""
        try:
            return self.s3_client.generate_presigned_url(
                'get_object',
                Params={
                    'Bucket': self.bucket,
                    'Key': key
                },
                ExpiresIn=expires
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to sign URL for {key}: {e}")
            raise ObjectStorageError(f"signing failed for {key}") from e


def create_s3_client():
    """Low-level S3 client using Signature V4"""
    return boto3.client(
        's3',
        aws_access_key_id=settings.storage_access_key,
        aws_secret_access_key=settings.storage_secret_key,
        region_name=settings.storage_region,
        endpoint_url=settings.storage_endpoint_url,
        config=BotoConfig(signature_version="s3v4"),
    )


@lru_cache(maxsize=1)
def get_object_storage() -> ObjectStorage:
    """FastAPI dependency returning the process-wide storage built from settings"""
    return ObjectStorage(create_s3_client(), settings.storage_bucket)
