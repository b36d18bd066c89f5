"""
Handwritten Notes API Routes

- POST /handwritten-notes: image upload, OCR, markdown note
- The caller's notes: list, read, edit, delete
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status

from skooly.api.deps import get_handwritten_note_service
from skooly.core.auth import Identity, get_current_identity
from skooly.schemas.handwritten_notes import (
    HandwrittenNoteListResponse,
    HandwrittenNoteResponse,
    HandwrittenNoteUpdate,
)
from skooly.services.handwritten_notes import (
    HandwrittenNoteService,
    NoteNotFoundError,
    OCRError,
    note_to_dict,
)
from skooly.services.materials import PermissionDeniedError, UploadTooLargeError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/handwritten-notes", tags=["handwritten-notes"])


@router.post("", response_model=HandwrittenNoteResponse, status_code=status.HTTP_201_CREATED)
async def create_note(
    file: UploadFile = File(...),
    title: Optional[str] = Form(None),
    course: Optional[str] = Form(None),
    topic: Optional[str] = Form(None),
    identity: Identity = Depends(get_current_identity),
    service: HandwrittenNoteService = Depends(get_handwritten_note_service),
):
    """
    Transcribe a photo of handwritten notes.

    Errors:
        400: Not an image, or no text recognised
        413: Image too large
    """
    try:
        data = await file.read()
        note = await service.create(
            identity.user_id,
            file.filename or "note.png",
            data,
            title=title,
            course=course,
            topic=topic,
        )
        return HandwrittenNoteResponse(**note_to_dict(note))

    except OCRError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except UploadTooLargeError as e:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"OCR failed for {identity.user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process image. Make sure it is a clear image.",
        )


@router.get("", response_model=HandwrittenNoteListResponse)
async def list_notes(
    identity: Identity = Depends(get_current_identity),
    service: HandwrittenNoteService = Depends(get_handwritten_note_service),
):
    notes = await service.list_for_user(identity.user_id)
    items = [HandwrittenNoteResponse(**note_to_dict(note)) for note in notes]
    return HandwrittenNoteListResponse(notes=items, total=len(items))


@router.get("/{note_id}", response_model=HandwrittenNoteResponse)
async def get_note(
    note_id: int,
    identity: Identity = Depends(get_current_identity),
    service: HandwrittenNoteService = Depends(get_handwritten_note_service),
):
    try:
        note = await service.get_owned(note_id, identity.user_id)
    except NoteNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    return HandwrittenNoteResponse(**note_to_dict(note))


@router.patch("/{note_id}", response_model=HandwrittenNoteResponse)
async def update_note(
    note_id: int,
    update: HandwrittenNoteUpdate,
    identity: Identity = Depends(get_current_identity),
    service: HandwrittenNoteService = Depends(get_handwritten_note_service),
):
    try:
        note = await service.update(note_id, identity.user_id, update.model_dump(exclude_unset=True))
    except NoteNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return HandwrittenNoteResponse(**note_to_dict(note))


@router.delete("/{note_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_note(
    note_id: int,
    identity: Identity = Depends(get_current_identity),
    service: HandwrittenNoteService = Depends(get_handwritten_note_service),
):
    try:
        await service.delete(note_id, identity.user_id)
    except NoteNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
