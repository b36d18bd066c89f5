"""
Pydantic schemas for handwritten notes
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class HandwrittenNoteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    content: str = Field(description="Markdown transcription")
    raw_content: Optional[str] = Field(default=None, description="OCR output as recognised")
    course: Optional[str] = None
    topic: Optional[str] = None
    image_url: Optional[str] = None
    uploaded_by: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class HandwrittenNoteUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    content: Optional[str] = Field(default=None, min_length=1)
    course: Optional[str] = Field(default=None, max_length=255)
    topic: Optional[str] = Field(default=None, max_length=500)


class HandwrittenNoteListResponse(BaseModel):
    notes: List[HandwrittenNoteResponse]
    total: int
