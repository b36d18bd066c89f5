"""
RAG Context Assembler

Turns a query into grounding material for the generator:

- context:   text of the matching chunks, "[{title}]:\\n{content}" blocks
             joined by "\\n\\n---\\n\\n"
- sources:   one entry per material (first hit wins), for citations
- file_urls: materials whose text could not be extracted; the generator
             receives the files themselves instead of quoted text

Zero hits is a valid result (empty context, no sources, no files) and is
distinct from a context that was never requested.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from skooly.core.config import settings
from skooly.models.content import FileReference, decode_content
from skooly.services.processors.embedder import GeminiEmbeddingService
from skooly.services.rag.store import EmbeddingStore, SearchHit


logger = logging.getLogger(__name__)


CONTEXT_SEPARATOR = "\n\n---\n\n"


@dataclass
class RAGContext:
    """Assembled retrieval context."""

    context: str = ""
    sources: List[Dict[str, Any]] = field(default_factory=list)
    file_urls: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.context and not self.file_urls

    def to_dict(self) -> Dict[str, Any]:
        return {
            "context": self.context,
            "sources": self.sources,
            "fileUrls": self.file_urls,
        }


def _source_entry(hit: SearchHit) -> Dict[str, Any]:
    return {
        "material_id": hit.material_id,
        "title": hit.title,
        "category": hit.describe("category"),
        "topic": hit.describe("topic"),
        "week": hit.describe("week"),
        "type": hit.describe("type"),
        "file_url": hit.describe("file_url"),
        "score": round(hit.score, 4),
    }


class RAGContextAssembler:
    """
    Usage:
    ------
    assembler = RAGContextAssembler(store, embedder)
    rag = await assembler.get_context("Explain binary search trees", limit=5)
    """

    def __init__(self, store: EmbeddingStore, embedder: GeminiEmbeddingService):
        self.store = store
        self.embedder = embedder

    async def search(
        self,
        query: str,
        limit: Optional[int] = None,
        category: Optional[str] = None,
        min_score: Optional[float] = None,
    ) -> List[SearchHit]:
        """Embed the query (query mode) and run the similarity search."""
        query_vector = await self.embedder.embed_query(query)
        return await self.store.similarity_search(
            query_vector,
            limit=limit or settings.RAG_DEFAULT_LIMIT,
            category=category,
            min_score=settings.RAG_MIN_SCORE if min_score is None else min_score,
        )

    async def get_context(
        self,
        query: str,
        limit: Optional[int] = None,
        category: Optional[str] = None,
        min_score: Optional[float] = None,
    ) -> RAGContext:
        """
        Build the retrieval context for a query.

        Args:
            query: User question or topic
            limit: Max hits considered (default RAG_DEFAULT_LIMIT)
            category: Optional "Theory" / "Lab" filter
            min_score: Similarity cutoff (default RAG_MIN_SCORE)

        Returns:
            RAGContext with context, sources and file_urls
        """
        hits = await self.search(query, limit=limit, category=category, min_score=min_score)
        rag = self.assemble(hits)

        logger.info(
            f"RAG context for '{query[:60]}': {len(hits)} hits, "
            f"{len(rag.sources)} sources, {len(rag.file_urls)} file references"
        )
        return rag

    @staticmethod
    def assemble(hits: List[SearchHit]) -> RAGContext:
        """Split hits into text context and file references; dedupe sources."""
        parts: List[str] = []
        sources: List[Dict[str, Any]] = []
        file_urls: List[Dict[str, Any]] = []
        seen_sources = set()
        seen_files = set()

        for hit in hits:
            content = decode_content(hit.content)

            if isinstance(content, FileReference):
                if hit.material_id not in seen_files:
                    seen_files.add(hit.material_id)
                    file_urls.append({
                        "url": content.url,
                        "title": hit.title,
                        "type": hit.describe("type"),
                        "material_id": hit.material_id,
                    })
            else:
                parts.append(f"[{hit.title or 'Untitled'}]:\n{content.text}")

            if hit.material_id not in seen_sources:
                seen_sources.add(hit.material_id)
                sources.append(_source_entry(hit))

        return RAGContext(
            context=CONTEXT_SEPARATOR.join(parts),
            sources=sources,
            file_urls=file_urls,
        )
