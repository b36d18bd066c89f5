"""
Pydantic schemas for Search API
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class SearchRequest(BaseModel):
    query: str = Field(min_length=1, max_length=2000)
    mode: Literal["search", "rag"] = Field(
        default="search",
        description="search: ranked chunks; rag: generated answer with sources",
    )
    category: Optional[str] = Field(default=None, description="Theory or Lab")
    limit: Optional[int] = Field(default=None, ge=1, le=50)


class SearchResult(BaseModel):
    id: int = Field(description="Chunk ID")
    content: str
    score: float
    material: Dict[str, Any]


class SearchResponse(BaseModel):
    mode: str
    query: str
    results: List[SearchResult] = Field(default_factory=list)
    response: Optional[str] = None
    sources: List[Dict[str, Any]] = Field(default_factory=list)
    file_urls: List[Dict[str, Any]] = Field(default_factory=list)
