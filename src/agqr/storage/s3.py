"""S3 bucket backend (AWS S3, MinIO and other S3-compatible services).

Guardrails:
    - Copies go through boto3's managed transfer, so recordings above the
      5 GB single-request limit are copied part by part on the server.
    - Deletes are batched (1000 keys per request) when a whole host's work
      is removed.
    - ``NoSuchKey``/404 become ``FileNotFoundError``; every other client or
      connection error becomes a retryable ``StorageError`` with the bucket
      and key attached.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from datetime import datetime, timezone

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from agqr.core.errors import StorageError
from agqr.core.logging import get_logger
from agqr.storage.base import ObjectInfo, Storage, clean_key

logger = get_logger(__name__)

_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}
_DELETE_BATCH = 1000


def _error_code(error: ClientError) -> str | None:
    return error.response.get("Error", {}).get("Code")


class S3Storage(Storage):
    """One bucket; credentials fall back to the boto3 default chain."""

    def __init__(
        self,
        bucket: str,
        region: str,
        endpoint_url: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        client=None,
    ):
        self.bucket = bucket
        if client is None:
            options = {
                "region_name": region,
                "endpoint_url": endpoint_url,
                "config": Config(signature_version="s3v4", retries={"mode": "standard", "max_attempts": 5}),
            }
            if access_key and secret_key:
                options.update(aws_access_key_id=access_key, aws_secret_access_key=secret_key)
            client = boto3.client("s3", **options)
        self.client = client
        logger.debug("s3_storage_initialized", bucket=bucket, region=region, endpoint=endpoint_url)

    @classmethod
    def from_settings(cls, settings) -> S3Storage:
        """Build from :class:`~agqr.core.settings.AgqrSettings`; raises MissingConfigError."""
        settings.require_store()
        return cls(
            bucket=settings.s3_bucket,
            region=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url,
            access_key=settings.aws_access_key_id,
            secret_key=settings.aws_secret_access_key,
        )

    def _failure(self, action: str, key: str, exc: Exception) -> StorageError:
        return StorageError(f"S3 {action} failed for {key}: {exc}", cause=exc).with_context(
            bucket=self.bucket, key=key
        )

    # ── Objects ──────────────────────────────────────────────────

    def write(self, path: str, content: bytes | str, content_type: str | None = None) -> ObjectInfo:
        key = clean_key(path)
        body = content.encode("utf-8") if isinstance(content, str) else content
        extra = {"ContentType": content_type} if content_type else {}
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=body, **extra)
        except (ClientError, BotoCoreError) as exc:
            raise self._failure("put", key, exc)
        logger.debug("s3_object_written", key=key, size=len(body))
        return ObjectInfo(key=key, size=len(body), last_modified=datetime.now(timezone.utc), content_type=content_type)

    def read(self, path: str) -> bytes:
        key = clean_key(path)
        try:
            return self.client.get_object(Bucket=self.bucket, Key=key)["Body"].read()
        except ClientError as exc:
            if _error_code(exc) in _MISSING_CODES:
                raise FileNotFoundError(f"Object not found: {key}") from exc
            raise self._failure("get", key, exc)
        except BotoCoreError as exc:
            raise self._failure("get", key, exc)

    def info(self, path: str) -> ObjectInfo | None:
        key = clean_key(path)
        try:
            head = self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if _error_code(exc) in _MISSING_CODES:
                return None
            raise self._failure("head", key, exc)
        return ObjectInfo(
            key=key,
            size=head["ContentLength"],
            last_modified=head.get("LastModified"),
            content_type=head.get("ContentType"),
        )

    def delete(self, path: str) -> bool:
        key = clean_key(path)
        if not self.exists(key):
            return False
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise self._failure("delete", key, exc)
        logger.debug("s3_object_deleted", key=key)
        return True

    def delete_many(self, paths: Iterable[str]) -> int:
        keys = [clean_key(path) for path in paths]
        deleted = 0
        for start in range(0, len(keys), _DELETE_BATCH):
            batch = keys[start:start + _DELETE_BATCH]
            try:
                response = self.client.delete_objects(
                    Bucket=self.bucket,
                    Delete={"Objects": [{"Key": key} for key in batch], "Quiet": False},
                )
            except (ClientError, BotoCoreError) as exc:
                raise self._failure("batch delete", batch[0], exc)
            errors = response.get("Errors", [])
            if errors:
                first = errors[0]
                raise StorageError(
                    f"S3 batch delete left {len(errors)} object(s): {first.get('Key')} ({first.get('Code')})"
                ).with_context(bucket=self.bucket, key=first.get("Key"))
            deleted += len(response.get("Deleted", []))
        logger.debug("s3_objects_deleted", count=deleted)
        return deleted

    def copy(self, source: str, destination: str) -> None:
        src, dst = clean_key(source), clean_key(destination)
        try:
            self.client.copy({"Bucket": self.bucket, "Key": src}, self.bucket, dst)
        except ClientError as exc:
            if _error_code(exc) in _MISSING_CODES:
                raise FileNotFoundError(f"Object not found: {src}") from exc
            raise self._failure("copy", src, exc)
        except BotoCoreError as exc:
            raise self._failure("copy", src, exc)
        logger.debug("s3_object_copied", source=src, destination=dst)

    # ── Listing ──────────────────────────────────────────────────

    def _pages(self, prefix: str, **kwargs) -> Iterator[dict]:
        paginator = self.client.get_paginator("list_objects_v2")
        try:
            yield from paginator.paginate(Bucket=self.bucket, Prefix=clean_key(prefix), **kwargs)
        except (ClientError, BotoCoreError) as exc:
            raise self._failure("list", prefix, exc)

    def list(self, prefix: str = "") -> Iterator[ObjectInfo]:
        for page in self._pages(prefix):
            for obj in page.get("Contents", []):
                yield ObjectInfo(key=obj["Key"], size=obj["Size"], last_modified=obj["LastModified"])

    def list_prefixes(self, prefix: str = "") -> list[str]:
        return [
            common["Prefix"]
            for page in self._pages(prefix, Delimiter="/")
            for common in page.get("CommonPrefixes", [])
        ]
