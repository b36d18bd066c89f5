"""
Object storage for uploaded files and generated media.

Two backends behind one interface:

- S3ObjectStorage: boto3 against AWS S3 or any S3-compatible endpoint
- LocalObjectStorage: files under LOCAL_STORAGE_DIR, for development

Both expose:
    upload(data, folder, resource_kind, filename) -> {"url", "public_id"}
    delete(public_id, resource_kind)
    download(public_id, resource_kind) -> bytes

``resource_kind`` is one of "raw", "image", "video", "audio" and decides the
content type when the filename does not.
"""

import asyncio
import logging
import mimetypes
import uuid
from pathlib import Path
from typing import Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from skooly.core.config import settings


logger = logging.getLogger(__name__)


DEFAULT_CONTENT_TYPES = {
    "raw": "application/octet-stream",
    "image": "image/png",
    "video": "video/mp4",
    "audio": "audio/wav",
}


class StorageError(Exception):
    """Raised when an object-storage operation fails."""


def _build_key(folder: str, filename: Optional[str]) -> str:
    suffix = Path(filename).suffix.lower() if filename else ""
    return f"{folder.strip('/')}/{uuid.uuid4().hex}{suffix}"


def _content_type(filename: Optional[str], resource_kind: str) -> str:
    if filename:
        guessed, _ = mimetypes.guess_type(filename)
        if guessed:
            return guessed
    return DEFAULT_CONTENT_TYPES.get(resource_kind, DEFAULT_CONTENT_TYPES["raw"])


class ObjectStorage:
    """Interface implemented by the storage backends."""

    async def upload(
        self,
        data: bytes,
        folder: str,
        resource_kind: str = "raw",
        filename: Optional[str] = None,
    ) -> Dict[str, str]:
        raise NotImplementedError

    async def delete(self, public_id: str, resource_kind: str = "raw") -> None:
        raise NotImplementedError

    async def download(self, public_id: str, resource_kind: str = "raw") -> bytes:
        raise NotImplementedError


class S3ObjectStorage(ObjectStorage):
    """S3 backend. boto3 is blocking, so calls run in a worker thread."""

    def __init__(self, client=None, bucket: Optional[str] = None, public_base_url: Optional[str] = None):
        self.bucket = bucket or settings.S3_BUCKET
        if not self.bucket:
            raise StorageError("S3_BUCKET is not configured")

        self.client = client or boto3.client(
            "s3",
            region_name=settings.S3_REGION,
            endpoint_url=settings.S3_ENDPOINT_URL,
            aws_access_key_id=settings.S3_ACCESS_KEY_ID,
            aws_secret_access_key=settings.S3_SECRET_ACCESS_KEY,
        )
        self.public_base_url = (
            public_base_url
            or settings.S3_PUBLIC_BASE_URL
            or f"https://{self.bucket}.s3.{settings.S3_REGION}.amazonaws.com"
        ).rstrip("/")

        logger.info(f"S3ObjectStorage initialized, bucket={self.bucket}")

    async def upload(self, data, folder, resource_kind="raw", filename=None):
        key = _build_key(folder, filename)
        try:
            await asyncio.to_thread(
                self.client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=_content_type(filename, resource_kind),
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"S3 upload failed for {key}: {e}")
            raise StorageError(f"Failed to upload file to storage: {e}") from e

        logger.info(f"Uploaded {len(data)} bytes to s3://{self.bucket}/{key}")
        return {"url": f"{self.public_base_url}/{key}", "public_id": key}

    async def delete(self, public_id, resource_kind="raw"):
        try:
            await asyncio.to_thread(self.client.delete_object, Bucket=self.bucket, Key=public_id)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"S3 delete failed for {public_id}: {e}")
            raise StorageError(f"Failed to delete {public_id}: {e}") from e

    async def download(self, public_id, resource_kind="raw"):
        try:
            response = await asyncio.to_thread(self.client.get_object, Bucket=self.bucket, Key=public_id)
            return await asyncio.to_thread(response["Body"].read)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"S3 download failed for {public_id}: {e}")
            raise StorageError(f"Failed to download {public_id}: {e}") from e


class LocalObjectStorage(ObjectStorage):
    """Filesystem backend rooted at LOCAL_STORAGE_DIR."""

    def __init__(self, root: Optional[str] = None, base_url: Optional[str] = None):
        self.root = Path(root or settings.LOCAL_STORAGE_DIR)
        self.root.mkdir(parents=True, exist_ok=True)
        self.base_url = (base_url or settings.LOCAL_STORAGE_BASE_URL).rstrip("/")
        logger.info(f"LocalObjectStorage initialized, root={self.root}")

    def _path(self, public_id: str) -> Path:
        path = (self.root / public_id).resolve()
        if self.root.resolve() not in path.parents:
            raise StorageError(f"Invalid object id: {public_id}")
        return path

    async def upload(self, data, folder, resource_kind="raw", filename=None):
        key = _build_key(folder, filename)
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(path.write_bytes, data)
        except OSError as e:
            logger.error(f"Local upload failed for {key}: {e}")
            raise StorageError(f"Failed to store file: {e}") from e
        return {"url": f"{self.base_url}/{key}", "public_id": key}

    async def delete(self, public_id, resource_kind="raw"):
        path = self._path(public_id)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete {public_id}: {e}") from e

    async def download(self, public_id, resource_kind="raw"):
        path = self._path(public_id)
        if not path.exists():
            raise StorageError(f"Object not found: {public_id}")
        return await asyncio.to_thread(path.read_bytes)


# Global storage instance
_storage: Optional[ObjectStorage] = None


def get_storage() -> ObjectStorage:
    """Get the configured storage backend."""
    global _storage
    if _storage is None:
        if settings.STORAGE_BACKEND == "s3":
            _storage = S3ObjectStorage()
        else:
            _storage = LocalObjectStorage()
    return _storage
