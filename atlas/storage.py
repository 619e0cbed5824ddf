# atlas/storage.py
"""Blob Store backends.

Both backends expose the same three operations: a non-overwriting put, a
public URL for a key and an idempotent delete. Backend failures surface as
BlobStoreError so callers never deal with boto3 or OS exceptions directly.
"""
import os
from functools import lru_cache
from typing import Optional
from urllib.parse import quote

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from atlas.config import settings
from atlas.errors import BlobExistsError, BlobStoreError
from atlas.logging_config import logger


class BlobStore:
    """Interface shared by the storage backends."""

    def put_object(self, key: str, data: bytes, content_type: Optional[str] = None, overwrite: bool = False) -> None:
        raise NotImplementedError

    def get_public_url(self, key: str) -> str:
        raise NotImplementedError

    def delete_object(self, key: str) -> None:
        raise NotImplementedError


class LocalBlobStore(BlobStore):
    """Stores blobs as files in a directory served by the app at /uploads."""

    def __init__(self, root: str, base_url: str):
        self.root = os.path.abspath(root)
        self.base_url = base_url.rstrip("/")
        os.makedirs(self.root, exist_ok=True)

    def _path(self, key: str) -> str:
        path = os.path.abspath(os.path.join(self.root, key))
        if os.path.dirname(path) != self.root:
            raise BlobStoreError(f"Invalid storage key: {key!r}")
        return path

    def put_object(self, key, data, content_type=None, overwrite=False):
        path = self._path(key)
        mode = "wb" if overwrite else "xb"
        try:
            with open(path, mode) as buffer:
                buffer.write(data)
        except FileExistsError as e:
            raise BlobExistsError(f"Object already exists: {key}") from e
        except OSError as e:
            raise BlobStoreError(f"Could not save file {key}: {e}") from e

    def get_public_url(self, key):
        return f"{self.base_url}/uploads/{quote(key)}"

    def delete_object(self, key):
        path = self._path(key)
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise BlobStoreError(f"Could not delete file {key}: {e}") from e


class S3BlobStore(BlobStore):
    """Stores blobs in an S3 bucket (AWS or any S3-compatible endpoint)."""

    def __init__(self, bucket: str, region: str = "us-east-1", endpoint_url: Optional[str] = None,
                 public_url: Optional[str] = None, access_key: Optional[str] = None,
                 secret_key: Optional[str] = None, client=None):
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url
        self.public_url = public_url
        self.client = client or boto3.client(
            "s3",
            region_name=region,
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
        )

    def _exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if exc.response["Error"]["Code"] in ("404", "NoSuchKey", "NotFound"):
                return False
            raise
        return True

    def put_object(self, key, data, content_type=None, overwrite=False):
        params = {"Bucket": self.bucket, "Key": key, "Body": data}
        if content_type:
            params["ContentType"] = content_type
        try:
            if not overwrite:
                if self._exists(key):
                    raise BlobExistsError(f"Object already exists: {key}")
                params["IfNoneMatch"] = "*"
            self.client.put_object(**params)
        except ClientError as exc:
            if exc.response["Error"]["Code"] == "PreconditionFailed":
                raise BlobExistsError(f"Object already exists: {key}") from exc
            raise BlobStoreError(f"S3 put_object failed for {key}: {exc}") from exc
        except BotoCoreError as exc:
            raise BlobStoreError(f"S3 put_object failed for {key}: {exc}") from exc

    def get_public_url(self, key):
        quoted = quote(key)
        if self.public_url:
            return f"{self.public_url.rstrip('/')}/{quoted}"
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{quoted}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{quoted}"

    def delete_object(self, key):
        # S3 treats deleting a missing key as success.
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise BlobStoreError(f"S3 delete_object failed for {key}: {exc}") from exc


@lru_cache()
def get_blob_store() -> BlobStore:
    """Builds the configured backend once per process."""
    if settings.STORAGE_BACKEND == "s3":
        logger.info("Using S3 blob store (bucket=%s)", settings.S3_BUCKET)
        return S3BlobStore(
            bucket=settings.S3_BUCKET,
            region=settings.S3_REGION,
            endpoint_url=settings.S3_ENDPOINT_URL,
            public_url=settings.S3_PUBLIC_URL,
            access_key=settings.AWS_ACCESS_KEY_ID,
            secret_key=settings.AWS_SECRET_ACCESS_KEY,
        )
    if settings.STORAGE_BACKEND != "local":
        raise ValueError(f"Unknown STORAGE_BACKEND: {settings.STORAGE_BACKEND!r}")
    logger.info("Using local blob store at %s", settings.UPLOADS_DIR)
    return LocalBlobStore(settings.UPLOADS_DIR, settings.PUBLIC_BASE_URL)
