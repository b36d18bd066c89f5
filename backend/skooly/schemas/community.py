"""
Pydantic schemas for the community board
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class PostCreate(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    body: Optional[str] = None
    course: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    mentions: List[str] = Field(default_factory=list)


class ReplyCreate(BaseModel):
    content: str = Field(min_length=1, max_length=10000)
