"""
Handwritten Notes Service

Photo of handwritten notes → Tesseract OCR → markdown note.

Formatting of the recognised lines (blank lines are dropped):
- short all-caps lines without closing punctuation become "## " headings
- lines starting with "-", "*" or "•" become "- " list items
- numbered items and everything else are kept as recognised

Lines are joined with blank lines so each renders as its own block.
"""

import asyncio
import io
import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import pytesseract
from PIL import Image, UnidentifiedImageError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from skooly.core.config import settings
from skooly.models.handwritten_note import HandwrittenNote
from skooly.services.materials import PermissionDeniedError, UploadTooLargeError
from skooly.services.storage import ObjectStorage, StorageError, get_storage


logger = logging.getLogger(__name__)


HEADING_MAX_LENGTH = 50

_BULLET = re.compile(r"^[-*•]\s*")
_CLOSING_PUNCTUATION = re.compile(r"[.!?]$")

EDITABLE_FIELDS = {"title", "content", "course", "topic"}


class OCRError(Exception):
    """The image could not be read or contained no recognisable text."""


class NoteNotFoundError(Exception):
    """No handwritten note with that id."""


# ========================================
# OCR
# ========================================

def is_heading(line: str) -> bool:
    return (
        len(line) < HEADING_MAX_LENGTH
        and line == line.upper()
        and not _CLOSING_PUNCTUATION.search(line)
    )


def format_ocr_text(raw: str) -> str:
    """Turn raw OCR output into markdown."""
    blocks: List[str] = []

    for line in (raw or "").split("\n"):
        line = line.strip()
        if not line:
            continue

        if is_heading(line):
            blocks.append(f"## {line}")
        elif _BULLET.match(line):
            blocks.append(f"- {_BULLET.sub('', line, count=1)}")
        else:
            blocks.append(line)

    return "\n\n".join(blocks)


def recognize_text(data: bytes, language: Optional[str] = None) -> str:
    """
    Run Tesseract over an image. Blocking; call it from a worker thread.

    Raises:
        OCRError: Unreadable image, or Tesseract missing / failing
    """
    if settings.TESSERACT_CMD:
        pytesseract.pytesseract.tesseract_cmd = settings.TESSERACT_CMD

    try:
        with Image.open(io.BytesIO(data)) as image:
            return pytesseract.image_to_string(image, lang=language or settings.OCR_LANGUAGE)
    except UnidentifiedImageError as e:
        raise OCRError("Uploaded file is not a readable image") from e
    except pytesseract.TesseractNotFoundError as e:
        raise OCRError("Tesseract OCR is not installed on the server") from e
    except pytesseract.TesseractError as e:
        raise OCRError(f"OCR failed: {e}") from e


def default_note_title(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"Handwritten Note - {now.strftime('%Y-%m-%d')}"


# ========================================
# Service
# ========================================

class HandwrittenNoteService:
    """
    Owner-scoped handwritten notes.

    Usage:
    ------
    service = HandwrittenNoteService(db)
    note = await service.create(user_id, "page1.jpg", image_bytes)
    """

    def __init__(
        self,
        db: AsyncSession,
        storage: Optional[ObjectStorage] = None,
        ocr: Callable[[bytes], str] = recognize_text,
    ):
        self.db = db
        self._storage = storage
        self.ocr = ocr

    @property
    def storage(self) -> ObjectStorage:
        if self._storage is None:
            self._storage = get_storage()
        return self._storage

    async def create(
        self,
        user_id: str,
        filename: str,
        data: bytes,
        title: Optional[str] = None,
        course: Optional[str] = None,
        topic: Optional[str] = None,
    ) -> HandwrittenNote:
        """
        Transcribe an image into a new note.

        The image is kept in object storage when possible; a storage failure
        only loses the image, not the note.

        Raises:
            UploadTooLargeError: Image larger than MAX_IMAGE_SIZE_MB
            OCRError: Unreadable image or no text recognised
        """
        max_bytes = settings.MAX_IMAGE_SIZE_MB * 1024 * 1024
        if len(data) > max_bytes:
            raise UploadTooLargeError(f"Image exceeds the {settings.MAX_IMAGE_SIZE_MB} MB limit")
        if not data:
            raise OCRError("No file uploaded")

        raw = await asyncio.to_thread(self.ocr, data)
        content = format_ocr_text(raw)
        if not content:
            raise OCRError("No text could be recognised. Make sure it is a clear image.")

        note = HandwrittenNote(
            uploaded_by=user_id,
            title=(title or "").strip() or default_note_title(),
            content=content,
            raw_content=raw,
            course=course,
            topic=topic,
        )

        try:
            stored = await self.storage.upload(
                data,
                folder="handwritten_notes",
                resource_kind="image",
                filename=filename,
            )
        except StorageError as e:
            logger.warning(f"Could not store image for handwritten note of {user_id}: {e}")
        else:
            note.image_url = stored["url"]
            note.image_public_id = stored["public_id"]

        try:
            self.db.add(note)
            await self.db.commit()
            await self.db.refresh(note)
        except Exception:
            await self.db.rollback()
            if note.image_public_id:
                await self._discard_image(note.image_public_id)
            raise

        logger.info(f"Handwritten note {note.id} created for {user_id} ({len(raw)} chars recognised)")
        return note

    async def list_for_user(self, user_id: str) -> List[HandwrittenNote]:
        result = await self.db.execute(
            select(HandwrittenNote)
            .where(HandwrittenNote.uploaded_by == user_id)
            .order_by(HandwrittenNote.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_owned(self, note_id: int, user_id: str) -> HandwrittenNote:
        note = await self.db.get(HandwrittenNote, note_id)
        if note is None:
            raise NoteNotFoundError(f"Note {note_id} not found")
        if not note.is_owned_by(user_id):
            raise PermissionDeniedError("You do not have access to this note")
        return note

    async def update(self, note_id: int, user_id: str, changes: Dict[str, Any]) -> HandwrittenNote:
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

        note = await self.get_owned(note_id, user_id)
        for field, value in changes.items():
            setattr(note, field, value)

        await self.db.commit()
        await self.db.refresh(note)
        return note

    async def delete(self, note_id: int, user_id: str) -> None:
        note = await self.get_owned(note_id, user_id)
        image_public_id = note.image_public_id

        await self.db.delete(note)
        await self.db.commit()
        logger.info(f"Handwritten note {note_id} deleted by {user_id}")

        if image_public_id:
            await self._discard_image(image_public_id)

    async def _discard_image(self, public_id: str) -> None:
        try:
            await self.storage.delete(public_id, resource_kind="image")
        except StorageError as e:
            logger.warning(f"Could not delete note image {public_id}: {e}")


def note_to_dict(note: HandwrittenNote) -> Dict[str, Any]:
    return {
        "id": note.id,
        "title": note.title,
        "content": note.content,
        "raw_content": note.raw_content,
        "course": note.course,
        "topic": note.topic,
        "image_url": note.image_url,
        "uploaded_by": note.uploaded_by,
        "created_at": note.created_at,
        "updated_at": note.updated_at,
    }
