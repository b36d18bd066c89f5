"""
Tests for the object storage backends.
"""

from unittest.mock import Mock

import pytest
from botocore.exceptions import ClientError

from skooly.services.storage import LocalObjectStorage, S3ObjectStorage, StorageError


@pytest.fixture
def local_storage(tmp_path):
    return LocalObjectStorage(root=str(tmp_path), base_url="http://test/files/")


# ========================================
# Local Backend
# ========================================

@pytest.mark.asyncio
class TestLocalObjectStorage:

    async def test_upload_download_delete(self, local_storage, tmp_path):
        stored = await local_storage.upload(b"hello", folder="materials", filename="Notes.PDF")

        assert stored["public_id"].startswith("materials/")
        assert stored["public_id"].endswith(".pdf")
        assert stored["url"] == f"http://test/files/{stored['public_id']}"
        assert (tmp_path / stored["public_id"]).read_bytes() == b"hello"

        assert await local_storage.download(stored["public_id"]) == b"hello"

        await local_storage.delete(stored["public_id"])
        assert not (tmp_path / stored["public_id"]).exists()

    async def test_download_missing(self, local_storage):
        with pytest.raises(StorageError):
            await local_storage.download("materials/nope.pdf")

    async def test_delete_missing_is_noop(self, local_storage):
        await local_storage.delete("materials/nope.pdf")

    async def test_rejects_paths_outside_root(self, local_storage):
        with pytest.raises(StorageError):
            await local_storage.download("../../etc/passwd")


# ========================================
# S3 Backend
# ========================================

@pytest.mark.asyncio
class TestS3ObjectStorage:

    async def test_upload(self):
        client = Mock()
        storage = S3ObjectStorage(client=client, bucket="skooly", public_base_url="https://cdn.example.com/")

        stored = await storage.upload(b"RIFF", folder="podcasts", resource_kind="audio", filename="podcast.wav")

        kwargs = client.put_object.call_args.kwargs
        assert kwargs["Bucket"] == "skooly"
        assert kwargs["Key"] == stored["public_id"]
        assert kwargs["ContentType"] in ("audio/wav", "audio/x-wav")
        assert stored["url"] == f"https://cdn.example.com/{stored['public_id']}"

    async def test_default_content_type_by_kind(self):
        client = Mock()
        storage = S3ObjectStorage(client=client, bucket="skooly", public_base_url="https://cdn.example.com")

        await storage.upload(b"...", folder="videos", resource_kind="video")

        assert client.put_object.call_args.kwargs["ContentType"] == "video/mp4"

    async def test_client_error_wrapped(self):
        client = Mock()
        client.delete_object.side_effect = ClientError({"Error": {"Code": "AccessDenied"}}, "DeleteObject")
        storage = S3ObjectStorage(client=client, bucket="skooly", public_base_url="https://cdn.example.com")

        with pytest.raises(StorageError):
            await storage.delete("materials/a.pdf")

    def test_requires_bucket(self, monkeypatch):
        monkeypatch.setattr("skooly.services.storage.settings.S3_BUCKET", None)

        with pytest.raises(StorageError):
            S3ObjectStorage(client=Mock())
