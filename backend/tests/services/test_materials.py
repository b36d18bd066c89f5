"""
Tests for MaterialService.

This test module verifies:
1. Upload pipeline (parse, store, record, embed, temp cleanup)
2. Parse failures falling back to the stored file
3. Owner-only update / delete and re-embedding on metadata change
4. Backfill bookkeeping and coverage statistics
"""

import os
from unittest.mock import AsyncMock, Mock, patch

import pytest

from skooly.core.config import settings
from skooly.models.content import FileReference, TextContent
from skooly.models.material import Material, MaterialCategory, MaterialType
from skooly.services.materials import (
    MaterialNotFoundError,
    MaterialService,
    PermissionDeniedError,
    UploadTooLargeError,
    material_to_dict,
)
from skooly.services.processors.parser import ParseError
from skooly.services.rag.context import RAGContextAssembler
from skooly.services.storage import StorageError


TEXT = "Binary search trees keep keys ordered so lookups take logarithmic time on average."


# ========================================
# Fixtures
# ========================================

@pytest.fixture
def storage():
    storage = Mock()
    storage.upload = AsyncMock(return_value={
        "url": "https://files.example.com/course_materials/CS201/ab12.pdf",
        "public_id": "course_materials/CS201/ab12.pdf",
    })
    storage.delete = AsyncMock()
    return storage


@pytest.fixture
def service(mock_db, storage):
    mock_db.refresh.side_effect = lambda obj: setattr(obj, "id", 1) if obj.id is None else None
    service = MaterialService(mock_db, embedder=Mock(), storage=storage)
    service.store.upsert_chunks = AsyncMock(return_value=3)
    return service


def make_material(id=1, content=TEXT, file_url=None, uploaded_by="user-1", **overrides):
    values = dict(
        id=id,
        title=f"Material {id}",
        course="CS201",
        category=MaterialCategory.THEORY,
        type=MaterialType.PDF,
        topic="BST",
        week=3,
        tags=[],
        content=content,
        file_url=file_url,
        uploaded_by=uploaded_by,
    )
    values.update(overrides)
    return Material(**values)


def scalars_result(items):
    result = Mock()
    result.scalars.return_value.all.return_value = items
    return result


# ========================================
# Upload
# ========================================

@pytest.mark.asyncio
class TestUpload:

    async def test_text_upload(self, service, storage, mock_db):
        material, count = await service.upload(
            "user-1", "trees.txt", TEXT.encode(), title="Trees", course="CS201",
            category="theory", topic="BST", week=3, tags=[" bst ", ""],
        )

        assert count == 3
        assert material.content == TEXT
        assert material.category == MaterialCategory.THEORY
        assert material.type == MaterialType.TEXT
        assert material.tags == ["bst"]
        assert material.uploaded_by == "user-1"
        assert material.storage_public_id == "course_materials/CS201/ab12.pdf"
        storage.upload.assert_awaited_once()
        assert storage.upload.call_args.kwargs["folder"] == "course_materials/CS201"
        mock_db.add.assert_called_once_with(material)

        args = service.store.upsert_chunks.call_args
        assert args[0][0] == 1
        assert args[0][1] == [TEXT]
        assert args.kwargs["source"] == TextContent(TEXT)

    async def test_parse_failure_stores_file_reference(self, service):
        with patch("skooly.services.materials.parse_file", side_effect=ParseError("scanned")):
            material, _ = await service.upload(
                "user-1", "scan.pdf", b"%PDF-1.4", title="Scan", course="CS201", category="Lab",
            )

        assert material.content == "FILE_URL:https://files.example.com/course_materials/CS201/ab12.pdf"
        assert material.type == MaterialType.PDF
        source = service.store.upsert_chunks.call_args.kwargs["source"]
        assert source == FileReference("https://files.example.com/course_materials/CS201/ab12.pdf")

    async def test_temp_file_removed(self, service):
        seen = {}

        def fake_parse(path, mime_type=None):
            seen["path"] = path
            assert os.path.exists(path)
            return TEXT

        with patch("skooly.services.materials.parse_file", side_effect=fake_parse):
            await service.upload("user-1", "a.md", b"x", title="A", course="CS201", category="Theory")

        assert not os.path.exists(seen["path"])

    async def test_storage_failure_is_fatal(self, service, storage, mock_db):
        storage.upload.side_effect = StorageError("bucket missing")

        with pytest.raises(StorageError):
            await service.upload("user-1", "a.txt", b"text", title="A", course="CS201", category="Theory")
        mock_db.add.assert_not_called()

    async def test_database_failure_removes_stored_file(self, service, storage, mock_db):
        mock_db.commit.side_effect = RuntimeError("db down")

        with pytest.raises(RuntimeError, match="db down"):
            await service.upload("user-1", "a.txt", TEXT.encode(), title="A", course="CS201", category="Theory")

        mock_db.rollback.assert_awaited_once()
        storage.delete.assert_awaited_once_with("course_materials/CS201/ab12.pdf")
        service.store.upsert_chunks.assert_not_awaited()

    async def test_embedding_failure_not_fatal(self, service):
        service.store.upsert_chunks.side_effect = RuntimeError("gemini down")

        material, count = await service.upload(
            "user-1", "a.txt", TEXT.encode(), title="A", course="CS201", category="Theory",
        )

        assert count == 0
        assert material.id == 1

    async def test_too_large(self, service, monkeypatch):
        monkeypatch.setattr(settings, "MAX_UPLOAD_SIZE_MB", 0)

        with pytest.raises(UploadTooLargeError):
            await service.upload("user-1", "a.txt", b"x", title="A", course="CS201", category="Theory")

    @pytest.mark.parametrize("category,week", [("Seminar", 1), ("Theory", 0)])
    async def test_invalid_metadata(self, service, category, week):
        with pytest.raises(ValueError):
            await service.upload("user-1", "a.txt", b"x", title="A", course="CS201", category=category, week=week)


# ========================================
# Embedding
# ========================================

@pytest.mark.asyncio
class TestEmbedMaterial:

    async def test_blank_material_with_file_uses_file(self, service):
        material = make_material(content="", file_url="https://x/a.pdf")

        await service.embed_material(material)

        assert service.store.upsert_chunks.call_args.kwargs["source"] == FileReference("https://x/a.pdf")

    async def test_nothing_to_embed(self, service):
        assert await service.embed_material(make_material(content="   ")) == 0
        service.store.upsert_chunks.assert_not_called()

    async def test_code_uses_code_chunker(self, service):
        code = "[Language: Python]\ndef f():\n    return 1\n"
        service.chunker = Mock()
        service.chunker.chunk_code.return_value = ["chunk"]

        await service.embed_material(make_material(content=code))

        service.chunker.chunk_code.assert_called_once_with(code)
        service.chunker.chunk_text.assert_not_called()


# ========================================
# Update / Delete
# ========================================

@pytest.mark.asyncio
class TestUpdateDelete:

    async def test_embedded_field_change_reembeds(self, service, mock_db):
        material = make_material()
        mock_db.get = AsyncMock(return_value=material)

        updated = await service.update(1, "user-1", {"title": "Renamed", "category": "lab"})

        assert updated.title == "Renamed"
        assert updated.category == MaterialCategory.LAB
        mock_db.commit.assert_awaited_once()
        service.store.upsert_chunks.assert_awaited_once()

    async def test_description_change_does_not_reembed(self, service, mock_db):
        mock_db.get = AsyncMock(return_value=make_material())

        await service.update(1, "user-1", {"description": "New description"})

        service.store.upsert_chunks.assert_not_called()

    async def test_no_change_no_commit(self, service, mock_db):
        mock_db.get = AsyncMock(return_value=make_material())

        await service.update(1, "user-1", {"title": "Material 1"})

        mock_db.commit.assert_not_called()

    async def test_only_owner_may_update(self, service, mock_db):
        mock_db.get = AsyncMock(return_value=make_material(uploaded_by="someone-else"))

        with pytest.raises(PermissionDeniedError):
            await service.update(1, "user-1", {"title": "Mine now"})

    async def test_unknown_field(self, service, mock_db):
        mock_db.get = AsyncMock(return_value=make_material())

        with pytest.raises(ValueError, match="uploaded_by"):
            await service.update(1, "user-1", {"uploaded_by": "user-2"})

    async def test_delete_removes_file_even_if_storage_fails(self, service, storage, mock_db):
        material = make_material(storage_public_id="course_materials/CS201/ab12.pdf")
        mock_db.get = AsyncMock(return_value=material)
        storage.delete.side_effect = StorageError("gone")

        await service.delete(1, "user-1")

        storage.delete.assert_awaited_once_with("course_materials/CS201/ab12.pdf")
        mock_db.delete.assert_awaited_once_with(material)
        mock_db.commit.assert_awaited_once()

    async def test_failed_delete_keeps_stored_file(self, service, storage, mock_db):
        mock_db.get = AsyncMock(return_value=make_material(storage_public_id="course_materials/CS201/ab12.pdf"))
        mock_db.commit.side_effect = RuntimeError("db down")

        with pytest.raises(RuntimeError):
            await service.delete(1, "user-1")
        storage.delete.assert_not_awaited()

    async def test_missing_material(self, service, mock_db):
        mock_db.get = AsyncMock(return_value=None)

        with pytest.raises(MaterialNotFoundError):
            await service.delete(404, "user-1")


# ========================================
# Backfill / Stats
# ========================================

@pytest.mark.asyncio
class TestBackfill:

    async def test_backfill_bookkeeping(self, service, mock_db):
        materials = [
            make_material(id=1),
            make_material(id=2, content=""),
            make_material(id=3),
            make_material(id=4),
            make_material(id=5),
        ]
        mock_db.execute = AsyncMock(return_value=scalars_result(materials))
        service.store.chunk_counts = AsyncMock(return_value={1: 4})
        service.embed_material = AsyncMock(side_effect=[2, 0, RuntimeError("quota")])

        results = await service.backfill()

        assert results["total"] == 5
        assert results["processed"] == 1
        assert results["skipped"] == 2
        assert results["failed"] == 2
        statuses = {d["material_id"]: d["status"] for d in results["details"]}
        assert statuses == {1: "skipped", 2: "skipped", 3: "success", 4: "failed", 5: "failed"}
        assert results["details"][0]["reason"] == "Already has 4 embeddings"
        assert results["details"][1]["reason"] == "No content available"
        assert results["details"][2]["embedding_count"] == 2
        assert [e["error"] for e in results["errors"]] == ["No chunks could be embedded", "quota"]

    async def test_force_ignores_existing_chunks(self, service, mock_db):
        mock_db.execute = AsyncMock(return_value=scalars_result([make_material(id=1)]))
        service.store.chunk_counts = AsyncMock(return_value={1: 4})
        service.embed_material = AsyncMock(return_value=3)

        results = await service.backfill(material_ids=[1], force=True)

        assert results["processed"] == 1
        service.store.chunk_counts.assert_not_called()

    async def test_embedding_stats(self, service, mock_db):
        materials = [make_material(id=1), make_material(id=2), make_material(id=3), make_material(id=4)]
        count_result = Mock()
        count_result.scalar.return_value = 9
        mock_db.execute = AsyncMock(side_effect=[scalars_result(materials), count_result])
        service.store.chunk_counts = AsyncMock(return_value={2: 6, 3: 3})

        stats = await service.embedding_stats()

        assert stats["totalMaterials"] == 4
        assert stats["totalEmbeddings"] == 9
        assert stats["materialsWithEmbeddings"] == 2
        assert stats["materialsWithoutEmbeddings"] == 2
        assert stats["coverage"] == "50.0%"
        assert [m["id"] for m in stats["materials"]][:2] == [2, 3]

    async def test_backfill_summary(self, service, mock_db):
        materials = [make_material(id=1), make_material(id=2, content=""), make_material(id=3)]
        mock_db.execute = AsyncMock(return_value=scalars_result(materials))
        service.store.chunk_counts = AsyncMock(return_value={1: 2})

        summary = await service.backfill_summary()

        assert summary["summary"] == {
            "totalMaterials": 3,
            "withEmbeddings": 1,
            "needsEmbeddings": 2,
            "needsEmbeddingsWithContent": 1,
            "cannotEmbed": 1,
        }
        assert [m["id"] for m in summary["materialsNeedingEmbeddings"]] == [3]


def test_material_to_dict():
    data = material_to_dict(make_material(content="FILE_URL:https://x/a.pdf", tags=["bst"]))
    assert data["category"] == "Theory"
    assert data["type"] == "pdf"
    assert data["has_text"] is False
    assert data["tags"] == ["bst"]


# ========================================
# Unparseable Upload -> Retrieval
# ========================================

@pytest.mark.asyncio
class TestUnparseableUploadRetrieval:

    async def test_file_url_reaches_file_urls_not_context(self, mock_db, storage):
        mock_db.refresh.side_effect = lambda obj: setattr(obj, "id", 9) if obj.id is None else None
        embedder = Mock()
        embedder.embed_document = AsyncMock(return_value=[0.1, 0.2, 0.3])
        embedder.embed_query = AsyncMock(return_value=[0.1, 0.2, 0.3])
        service = MaterialService(mock_db, embedder=embedder, storage=storage)

        with patch("skooly.services.materials.parse_file", side_effect=ParseError("scanned")):
            material, count = await service.upload(
                "user-1", "heaps.pdf", b"%PDF-1.4", title="Heap notes", course="CS201",
                category="Theory", topic="Heaps",
            )

        assert count == 1
        [chunk] = mock_db.add_all.call_args[0][0]
        url = "https://files.example.com/course_materials/CS201/ab12.pdf"
        assert chunk.content == f"FILE_URL:{url}"

        row = {
            "chunk_id": 1,
            "material_id": chunk.material_id,
            "chunk_index": chunk.chunk_index,
            "content": chunk.content,
            "chunk_metadata": chunk.chunk_metadata,
            "distance": 0.2,
            "material": material.metadata_snapshot(),
        }
        assembler = RAGContextAssembler(service.store, embedder)
        with patch.object(service.store, "_fetch_candidates", AsyncMock(return_value=[row])):
            rag = await assembler.get_context("What is a heap?")

        assert rag.context == ""
        assert rag.file_urls == [{"url": url, "title": "Heap notes", "type": "pdf", "material_id": 9}]
        assert rag.sources[0]["material_id"] == 9
