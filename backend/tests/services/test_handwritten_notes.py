"""
Tests for handwritten notes: OCR formatting, Tesseract error mapping and
the owner-scoped service.
"""

import io
from datetime import datetime, timezone
from unittest.mock import AsyncMock, Mock, patch

import pytest
import pytesseract
from PIL import Image

from skooly.core.config import settings
from skooly.models.handwritten_note import HandwrittenNote
from skooly.services.handwritten_notes import (
    HandwrittenNoteService,
    NoteNotFoundError,
    OCRError,
    default_note_title,
    format_ocr_text,
    note_to_dict,
    recognize_text,
)
from skooly.services.materials import PermissionDeniedError, UploadTooLargeError
from skooly.services.storage import StorageError


RAW_OCR = "BINARY HEAPS\n\n  * complete tree  \n• min at root\n1. insert at the end\nSift up until the parent is smaller.\n"


def png_bytes() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (8, 8), "white").save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def storage():
    storage = Mock()
    storage.upload = AsyncMock(return_value={
        "url": "https://files.example.com/handwritten_notes/p1.png",
        "public_id": "handwritten_notes/p1.png",
    })
    storage.delete = AsyncMock()
    return storage


@pytest.fixture
def service(mock_db, storage):
    mock_db.refresh.side_effect = lambda obj: setattr(obj, "id", 4) if obj.id is None else None
    return HandwrittenNoteService(mock_db, storage=storage, ocr=lambda data: RAW_OCR)


# ========================================
# Formatting
# ========================================

class TestFormatOcrText:

    def test_markdown_structure(self):
        assert format_ocr_text(RAW_OCR) == (
            "## BINARY HEAPS\n\n"
            "- complete tree\n\n"
            "- min at root\n\n"
            "1. insert at the end\n\n"
            "Sift up until the parent is smaller."
        )

    @pytest.mark.parametrize(
        "line,expected",
        [
            ("SUMMARY", "## SUMMARY"),
            ("THE END.", "THE END."),
            ("A" * 50, "A" * 50),
            ("- already a bullet", "- already a bullet"),
            ("*starred", "- starred"),
        ],
    )
    def test_single_lines(self, line, expected):
        assert format_ocr_text(line) == expected

    def test_blank_input(self):
        assert format_ocr_text("  \n\n ") == ""


def test_default_title_uses_date():
    assert default_note_title(datetime(2026, 3, 5, tzinfo=timezone.utc)) == "Handwritten Note - 2026-03-05"


# ========================================
# Tesseract
# ========================================

class TestRecognizeText:

    def test_uses_configured_language(self):
        with patch("skooly.services.handwritten_notes.pytesseract.image_to_string", return_value="HEAPS") as ocr:
            assert recognize_text(png_bytes()) == "HEAPS"

        assert ocr.call_args.kwargs["lang"] == settings.OCR_LANGUAGE

    def test_not_an_image(self):
        with pytest.raises(OCRError, match="not a readable image"):
            recognize_text(b"%PDF-1.4 not an image")

    def test_tesseract_missing(self):
        with patch(
            "skooly.services.handwritten_notes.pytesseract.image_to_string",
            side_effect=pytesseract.TesseractNotFoundError(),
        ):
            with pytest.raises(OCRError, match="not installed"):
                recognize_text(png_bytes())


# ========================================
# Service
# ========================================

@pytest.mark.asyncio
class TestCreate:

    async def test_creates_formatted_note(self, service, storage, mock_db):
        note = await service.create("user-1", "p1.png", b"img", course="CS201")

        assert note.id == 4
        assert note.uploaded_by == "user-1"
        assert note.content.startswith("## BINARY HEAPS")
        assert note.raw_content == RAW_OCR
        assert note.title.startswith("Handwritten Note - ")
        assert note.image_url == "https://files.example.com/handwritten_notes/p1.png"
        assert storage.upload.call_args.kwargs["resource_kind"] == "image"
        mock_db.add.assert_called_once_with(note)

    async def test_storage_failure_keeps_note(self, service, storage):
        storage.upload.side_effect = StorageError("bucket missing")

        note = await service.create("user-1", "p1.png", b"img", title="Lecture 4")

        assert note.title == "Lecture 4"
        assert note.image_url is None

    async def test_no_text_recognised(self, mock_db, storage):
        service = HandwrittenNoteService(mock_db, storage=storage, ocr=lambda data: "\n  \n")

        with pytest.raises(OCRError, match="No text"):
            await service.create("user-1", "p1.png", b"img")
        mock_db.add.assert_not_called()
        storage.upload.assert_not_awaited()

    async def test_too_large(self, service, monkeypatch):
        monkeypatch.setattr(settings, "MAX_IMAGE_SIZE_MB", 0)

        with pytest.raises(UploadTooLargeError):
            await service.create("user-1", "p1.png", b"img")

    async def test_database_failure_removes_image(self, service, storage, mock_db):
        mock_db.commit.side_effect = RuntimeError("db down")

        with pytest.raises(RuntimeError):
            await service.create("user-1", "p1.png", b"img")

        mock_db.rollback.assert_awaited_once()
        storage.delete.assert_awaited_once_with("handwritten_notes/p1.png", resource_kind="image")


@pytest.mark.asyncio
class TestOwnership:

    async def test_get_owned(self, service, mock_db):
        mock_db.get.return_value = HandwrittenNote(id=4, uploaded_by="user-1", title="A", content="a")
        assert (await service.get_owned(4, "user-1")).id == 4

        with pytest.raises(PermissionDeniedError):
            await service.get_owned(4, "user-2")

        mock_db.get.return_value = None
        with pytest.raises(NoteNotFoundError):
            await service.get_owned(4, "user-1")

    async def test_update(self, service, mock_db):
        note = HandwrittenNote(id=4, uploaded_by="user-1", title="A", content="a")
        mock_db.get.return_value = note

        await service.update(4, "user-1", {"title": "Heaps", "content": "## HEAPS"})

        assert note.title == "Heaps"
        assert note.content == "## HEAPS"
        mock_db.commit.assert_awaited_once()

    async def test_update_rejects_other_fields(self, service):
        with pytest.raises(ValueError, match="uploaded_by"):
            await service.update(4, "user-1", {"uploaded_by": "user-2"})

    async def test_delete_removes_image_after_commit(self, service, storage, mock_db):
        note = HandwrittenNote(id=4, uploaded_by="user-1", title="A", content="a", image_public_id="handwritten_notes/p1.png")
        mock_db.get.return_value = note
        storage.delete.side_effect = StorageError("gone")

        await service.delete(4, "user-1")

        mock_db.delete.assert_awaited_once_with(note)
        storage.delete.assert_awaited_once_with("handwritten_notes/p1.png", resource_kind="image")

    async def test_failed_delete_keeps_image(self, service, storage, mock_db):
        mock_db.get.return_value = HandwrittenNote(
            id=4, uploaded_by="user-1", title="A", content="a", image_public_id="handwritten_notes/p1.png",
        )
        mock_db.commit.side_effect = RuntimeError("db down")

        with pytest.raises(RuntimeError):
            await service.delete(4, "user-1")
        storage.delete.assert_not_awaited()

    async def test_list_for_user(self, service, mock_db):
        notes = [HandwrittenNote(id=1, uploaded_by="user-1", title="A", content="a")]
        result = Mock()
        result.scalars.return_value.all.return_value = notes
        mock_db.execute.return_value = result

        assert await service.list_for_user("user-1") == notes


def test_note_to_dict():
    note = HandwrittenNote(id=1, uploaded_by="user-1", title="A", content="a", raw_content="A")
    data = note_to_dict(note)
    assert data["id"] == 1
    assert data["raw_content"] == "A"
    assert data["image_url"] is None
