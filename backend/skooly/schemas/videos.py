"""
Pydantic schemas for video generation
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator


class VideoGenerateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    content: Optional[str] = None
    material_id: Optional[int] = None
    topic: Optional[str] = None
    description: Optional[str] = None
    course: Optional[str] = None
    week: Optional[int] = Field(default=None, ge=1)
    aspect_ratio: Optional[Literal["16:9", "9:16"]] = None
    resolution: Optional[Literal["720p", "1080p"]] = None
    duration_seconds: Optional[int] = Field(default=None, ge=4, le=8)

    @model_validator(mode="after")
    def check_source(self) -> "VideoGenerateRequest":
        if not self.material_id and not (self.content and self.content.strip()):
            raise ValueError("content or material_id is required")
        return self


class VideoJobResponse(BaseModel):
    video_id: int
    status: str
