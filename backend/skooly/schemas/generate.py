"""
Pydantic schemas for content generation
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from skooly.models.ai_material import ContentType


class GenerateRequest(BaseModel):
    """
    Exactly one source is used, in order of preference:
    material_id, source_content, file_url.
    """

    type: ContentType
    title: str = Field(min_length=1, max_length=500)
    category: str = Field(description="Theory or Lab")
    topic: Optional[str] = None
    source_content: Optional[str] = None
    file_url: Optional[str] = None
    material_id: Optional[int] = None
    customization: Optional[str] = Field(default=None, max_length=2000)
    course: Optional[str] = None
    week: Optional[int] = Field(default=None, ge=1)
    use_context: bool = Field(
        default=False,
        description="Add retrieved course context for the title/topic",
    )

    @model_validator(mode="after")
    def check_source(self) -> "GenerateRequest":
        if not (self.material_id or self.source_content or self.file_url):
            raise ValueError("source content, file_url or material_id is required")
        return self


class AiMaterialResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    uploaded_by: str
    title: str
    type: str
    category: str
    content: str
    quiz: Optional[List[Dict[str, Any]]] = None
    course: str
    week: int
    topic: Optional[str] = None
    source_material_id: Optional[int] = None
    customization: Optional[str] = None
    audio_url: Optional[str] = None
    created_at: Optional[datetime] = None


class StudyChatTurn(BaseModel):
    role: Literal["user", "assistant", "model"]
    content: str


class StudyChatRequest(BaseModel):
    message: str = Field(min_length=1, max_length=4000)
    history: List[StudyChatTurn] = Field(default_factory=list)


class StudyChatResponse(BaseModel):
    response: str
