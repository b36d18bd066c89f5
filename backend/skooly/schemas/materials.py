"""
Pydantic schemas for Materials API
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class MaterialResponse(BaseModel):
    """Response schema for a course material."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: Optional[str] = None
    course: str
    category: Optional[str] = Field(default=None, description="Theory or Lab")
    type: Optional[str] = Field(default=None, description="pdf, slide, code, doc, link or text")
    topic: Optional[str] = None
    week: int
    tags: List[str] = Field(default_factory=list)
    file_url: Optional[str] = None
    has_text: bool = Field(default=False, description="False when only the stored file is available")
    uploaded_by: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class MaterialUploadResponse(BaseModel):
    material: MaterialResponse
    embedded_chunks: int = Field(description="Chunks stored for retrieval")


class MaterialUpdate(BaseModel):
    """Owner-editable metadata. Omitted fields are left unchanged."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    description: Optional[str] = None
    course: Optional[str] = Field(default=None, min_length=1, max_length=255)
    category: Optional[str] = None
    type: Optional[str] = None
    topic: Optional[str] = None
    week: Optional[int] = Field(default=None, ge=1)
    tags: Optional[List[str]] = None


class MaterialListResponse(BaseModel):
    materials: List[MaterialResponse]
    total: int


class CourseListResponse(BaseModel):
    courses: List[str]
