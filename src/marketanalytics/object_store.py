# object_store.py
"""
Byte sink for the daily price export (S3 API; MinIO in local setups).

The ingestion job only needs upload(key, data). S3ObjectStore is the
production implementation built on boto3; tests use an in-memory fake.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import PipelineConfig
from .errors import StorageError

logger = logging.getLogger(__name__)

CSV_CONTENT_TYPE = "application/csv"
_MISSING_BUCKET_CODES = {"404", "NoSuchBucket", "NotFound"}


class ObjectStore(Protocol):
    def upload(self, key: str, data: bytes, content_type: str = CSV_CONTENT_TYPE) -> None: ...


class S3ObjectStore:
    """Uploads whole objects into one bucket; same key overwrites."""

    def __init__(self, client: Any, bucket: str) -> None:
        self.client = client
        self.bucket = bucket

    @classmethod
    def from_config(cls, config: PipelineConfig) -> "S3ObjectStore":
        session_kwargs: dict[str, str] = {
            "aws_access_key_id": config.s3_access_key,
            "aws_secret_access_key": config.s3_secret_key,
        }
        if config.s3_region:
            session_kwargs["region_name"] = config.s3_region
        session = boto3.session.Session(**session_kwargs)
        client = session.client("s3", endpoint_url=config.s3_endpoint_url)
        return cls(client, config.s3_bucket)

    def ensure_bucket(self) -> None:
        """Create the bucket when it does not exist yet."""
        try:
            self.client.head_bucket(Bucket=self.bucket)
            logger.info("Bucket '%s' already exists", self.bucket)
            return
        except ClientError as error:
            code = str(error.response.get("Error", {}).get("Code", ""))
            if code not in _MISSING_BUCKET_CODES:
                raise StorageError(f"error checking bucket '{self.bucket}': {error}") from error
        except BotoCoreError as error:
            raise StorageError(f"error checking bucket '{self.bucket}': {error}") from error

        try:
            self.client.create_bucket(Bucket=self.bucket)
        except (BotoCoreError, ClientError) as error:
            raise StorageError(f"failed to create bucket '{self.bucket}': {error}") from error
        logger.info("Bucket '%s' created", self.bucket)

    def upload(self, key: str, data: bytes, content_type: str = CSV_CONTENT_TYPE) -> None:
        logger.info("Uploading '%s' to bucket '%s'", key, self.bucket)
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        except (BotoCoreError, ClientError) as error:
            raise StorageError(
                f"failed to upload '{key}' to s3://{self.bucket}/{key}: {error}"
            ) from error
