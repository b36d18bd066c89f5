"""
Pydantic schemas for Chat API
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    message: str = Field(min_length=1, max_length=4000)
    chat_id: Optional[int] = None
    validate_response: bool = Field(
        default=False,
        alias="validate",
        description="Run the content validator on the answer",
    )

    model_config = ConfigDict(populate_by_name=True)


class ChatResponse(BaseModel):
    chat_id: int
    response: str
    intent: str
    sources: List[Dict[str, Any]] = Field(default_factory=list)
    relevant_files: List[Dict[str, Any]] = Field(default_factory=list)
    validation: Optional[Dict[str, Any]] = None


class ChatMessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    role: str
    content: str
    intent: Optional[str] = None
    sources: Optional[List[Dict[str, Any]]] = None
    validation: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None


class ChatSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ChatDetail(ChatSummary):
    messages: List[ChatMessageResponse] = Field(default_factory=list)


class ChatListResponse(BaseModel):
    chats: List[ChatSummary]


class EvaluateRequest(BaseModel):
    response: str = Field(min_length=1)
    query: str = Field(min_length=1)
    quick: bool = Field(default=False, description="Skip grounding and self-evaluation")
