"""
Tests for AiMaterialService: source resolution, context merge and audio storage.
"""

import json
from unittest.mock import AsyncMock, Mock

import pytest

from skooly.models.ai_material import AiMaterial, ContentType
from skooly.models.material import Material
from skooly.services.ai_materials import (
    DEFAULT_COURSE,
    STUDY_CHAT_HISTORY_LIMIT,
    AiMaterialNotFoundError,
    AiMaterialService,
    AudioNotAvailableError,
    ai_material_to_dict,
)
from skooly.services.generation.orchestrator import GeneratedContent
from skooly.services.materials import MaterialNotFoundError, PermissionDeniedError
from skooly.services.rag.context import CONTEXT_SEPARATOR, RAGContext
from skooly.services.storage import StorageError


SOURCE_TEXT = "A binary heap is a complete binary tree that satisfies the heap property."


@pytest.fixture
def orchestrator():
    orchestrator = Mock()
    orchestrator.generate = AsyncMock(return_value=GeneratedContent(ContentType.NOTES, "# Heaps"))
    return orchestrator


@pytest.fixture
def storage():
    storage = Mock()
    storage.upload = AsyncMock(return_value={"url": "https://files/podcasts/a.wav", "public_id": "podcasts/a.wav"})
    storage.delete = AsyncMock()
    storage.download = AsyncMock(return_value=b"RIFF")
    return storage


@pytest.mark.asyncio
class TestGenerate:

    async def test_generate_from_text(self, mock_db, orchestrator, storage):
        service = AiMaterialService(mock_db, orchestrator, storage=storage)

        ai_material = await service.generate(
            "user-1", ContentType.NOTES, "Heaps", "theory", source_content=SOURCE_TEXT,
        )

        orchestrator.generate.assert_awaited_once_with(
            ContentType.NOTES, "Heaps", None, SOURCE_TEXT, customization=None, file_urls=[],
        )
        assert ai_material.category == "Theory"
        assert ai_material.course == DEFAULT_COURSE
        assert ai_material.week == 1
        assert ai_material.topic == "Heaps"
        assert ai_material.content == "# Heaps"
        mock_db.add.assert_called_once_with(ai_material)
        mock_db.commit.assert_awaited_once()
        storage.upload.assert_not_called()

    async def test_invalid_category(self, mock_db, orchestrator):
        service = AiMaterialService(mock_db, orchestrator)

        with pytest.raises(ValueError):
            await service.generate("user-1", ContentType.NOTES, "Heaps", "history", source_content=SOURCE_TEXT)

        orchestrator.generate.assert_not_called()

    async def test_source_too_short(self, mock_db, orchestrator):
        service = AiMaterialService(mock_db, orchestrator)

        with pytest.raises(ValueError):
            await service.generate("user-1", ContentType.NOTES, "Heaps", "Theory", source_content="tiny")

    async def test_from_material_with_file_reference(self, mock_db, orchestrator):
        mock_db.get.return_value = Material(
            id=5,
            title="Heaps",
            content="FILE_URL:https://files/heaps.pdf",
            file_url="https://files/heaps.pdf",
            course="CS201",
            week=4,
            topic="Priority queues",
        )
        service = AiMaterialService(mock_db, orchestrator)

        ai_material = await service.generate("user-1", ContentType.NOTES, "Heap notes", "Theory", material_id=5)

        args = orchestrator.generate.call_args
        assert args[0][2] == "Priority queues"
        assert args[0][3] == ""
        assert args.kwargs["file_urls"] == [{"url": "https://files/heaps.pdf"}]
        assert ai_material.course == "CS201"
        assert ai_material.week == 4
        assert ai_material.source_material_id == 5

    async def test_unknown_material(self, mock_db, orchestrator):
        mock_db.get.return_value = None
        service = AiMaterialService(mock_db, orchestrator)

        with pytest.raises(MaterialNotFoundError):
            await service.generate("user-1", ContentType.NOTES, "Heaps", "Theory", material_id=5)

    async def test_course_context_merged(self, mock_db, orchestrator):
        assembler = Mock()
        assembler.get_context = AsyncMock(return_value=RAGContext(
            context="[Week 4]:\nheapify runs in O(n)",
            file_urls=[{"url": "https://files/a.pdf"}, {"url": "https://files/b.pdf"}],
        ))
        service = AiMaterialService(mock_db, orchestrator, assembler=assembler)

        await service.generate(
            "user-1", ContentType.NOTES, "Heaps", "Lab",
            file_url="https://files/a.pdf", topic="heapify", use_context=True,
        )

        assembler.get_context.assert_awaited_once_with("heapify", category="Lab")
        args = orchestrator.generate.call_args
        assert args[0][3] == "[Week 4]:\nheapify runs in O(n)"
        assert args.kwargs["file_urls"] == [{"url": "https://files/a.pdf"}, {"url": "https://files/b.pdf"}]

    async def test_context_joined_with_source_text(self, mock_db, orchestrator):
        assembler = Mock()
        assembler.get_context = AsyncMock(return_value=RAGContext(context="extra"))
        service = AiMaterialService(mock_db, orchestrator, assembler=assembler)

        await service.generate(
            "user-1", ContentType.NOTES, "Heaps", "Theory", source_content=SOURCE_TEXT, use_context=True,
        )

        assert orchestrator.generate.call_args[0][3] == SOURCE_TEXT + CONTEXT_SEPARATOR + "extra"

    async def test_podcast_audio_stored(self, mock_db, orchestrator, storage):
        orchestrator.generate.return_value = GeneratedContent(ContentType.PODCAST, "Alex: Hi", audio=b"RIFFdata")
        service = AiMaterialService(mock_db, orchestrator, storage=storage)

        ai_material = await service.generate(
            "user-1", ContentType.PODCAST, "Heaps", "Theory", source_content=SOURCE_TEXT,
        )

        storage.upload.assert_awaited_once_with(
            b"RIFFdata", folder="podcasts", resource_kind="audio", filename="podcast.wav",
        )
        assert ai_material.audio_url == "https://files/podcasts/a.wav"
        assert ai_material.audio_public_id == "podcasts/a.wav"

    async def test_audio_storage_failure_keeps_script(self, mock_db, orchestrator, storage):
        orchestrator.generate.return_value = GeneratedContent(ContentType.PODCAST, "Alex: Hi", audio=b"RIFFdata")
        storage.upload.side_effect = StorageError("bucket gone")
        service = AiMaterialService(mock_db, orchestrator, storage=storage)

        ai_material = await service.generate(
            "user-1", ContentType.PODCAST, "Heaps", "Theory", source_content=SOURCE_TEXT,
        )

        assert ai_material.audio_url is None
        assert ai_material.content == "Alex: Hi"
        mock_db.commit.assert_awaited_once()


@pytest.mark.asyncio
class TestOwnership:

    async def test_get_owned(self, mock_db, orchestrator):
        mock_db.get.return_value = AiMaterial(id=1, uploaded_by="user-2")
        service = AiMaterialService(mock_db, orchestrator)

        with pytest.raises(PermissionDeniedError):
            await service.get_owned(1, "user-1")

        mock_db.get.return_value = None
        with pytest.raises(AiMaterialNotFoundError):
            await service.get_owned(1, "user-1")

    async def test_delete_removes_audio(self, mock_db, orchestrator, storage):
        ai_material = AiMaterial(id=1, uploaded_by="user-1", audio_public_id="podcasts/a.wav")
        mock_db.get.return_value = ai_material
        service = AiMaterialService(mock_db, orchestrator, storage=storage)

        await service.delete(1, "user-1")

        storage.delete.assert_awaited_once_with("podcasts/a.wav", resource_kind="audio")
        mock_db.delete.assert_awaited_once_with(ai_material)

    async def test_failed_delete_keeps_audio(self, mock_db, orchestrator, storage):
        mock_db.get.return_value = AiMaterial(id=1, uploaded_by="user-1", audio_public_id="podcasts/a.wav")
        mock_db.commit.side_effect = RuntimeError("db down")
        service = AiMaterialService(mock_db, orchestrator, storage=storage)

        with pytest.raises(RuntimeError):
            await service.delete(1, "user-1")
        storage.delete.assert_not_awaited()

    async def test_study_chat_uses_material_and_recent_history(self, mock_db, orchestrator, storage):
        mock_db.get.return_value = AiMaterial(id=1, uploaded_by="user-1", title="Heaps", content="# Heaps\nSift down...")
        orchestrator.discuss = AsyncMock(return_value="Sift-down restores the heap.")
        service = AiMaterialService(mock_db, orchestrator, storage=storage)
        history = [
            {"role": "user" if i % 2 == 0 else "model", "content": f"turn {i}"}
            for i in range(14)
        ]

        answer = await service.study_chat(1, "user-1", "What does sift-down do?", history=history)

        assert answer == "Sift-down restores the heap."
        args, kwargs = orchestrator.discuss.call_args
        assert args == ("What does sift-down do?",)
        assert "Title: Heaps" in kwargs["system_instruction"]
        assert "Content: # Heaps\nSift down..." in kwargs["system_instruction"]
        sent = kwargs["history"]
        assert len(sent) == STUDY_CHAT_HISTORY_LIMIT
        assert sent[0] == {"role": "user", "content": "turn 4"}
        assert sent[1] == {"role": "assistant", "content": "turn 5"}

    async def test_study_chat_owner_only(self, mock_db, orchestrator, storage):
        mock_db.get.return_value = AiMaterial(id=1, uploaded_by="user-2", title="Heaps", content="x")
        orchestrator.discuss = AsyncMock()
        service = AiMaterialService(mock_db, orchestrator, storage=storage)

        with pytest.raises(PermissionDeniedError):
            await service.study_chat(1, "user-1", "Hi")
        orchestrator.discuss.assert_not_awaited()

    async def test_audio_missing(self, mock_db, orchestrator, storage):
        mock_db.get.return_value = AiMaterial(id=1, uploaded_by="user-1", audio_public_id=None)
        service = AiMaterialService(mock_db, orchestrator, storage=storage)

        with pytest.raises(AudioNotAvailableError):
            await service.audio(1, "user-1")


def test_mcq_dict_includes_quiz():
    questions = [{"question": "Q?", "options": ["a", "b", "c", "d"], "correctAnswer": 0}]
    ai_material = AiMaterial(id=1, type="mcq", content=json.dumps(questions), title="Quiz")

    assert ai_material_to_dict(ai_material)["quiz"] == questions

    ai_material.content = "not json"
    assert ai_material_to_dict(ai_material)["quiz"] is None
