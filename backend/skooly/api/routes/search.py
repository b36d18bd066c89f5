"""
Search API Routes

POST /search
- mode "search": ranked chunks with their materials
- mode "rag": generated answer grounded in the retrieved chunks
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from skooly.api.deps import get_assembler, get_generator
from skooly.core.auth import Identity, get_current_identity
from skooly.schemas.search import SearchRequest, SearchResponse, SearchResult
from skooly.services.processors.embedder import EmbeddingError
from skooly.services.rag.context import RAGContextAssembler
from skooly.services.rag.generator import AnswerGenerator, build_system_prompt

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/search", tags=["search"])

SEARCH_MODE_LIMIT = 10
RAG_MODE_LIMIT = 5

NO_CONTEXT_RESPONSE = (
    "I couldn't find any relevant information in the course materials. "
    "Please try a different query or check if materials have been uploaded."
)


@router.post("", response_model=SearchResponse)
async def search(
    request: SearchRequest,
    identity: Identity = Depends(get_current_identity),
    assembler: RAGContextAssembler = Depends(get_assembler),
    generator: AnswerGenerator = Depends(get_generator),
):
    """Semantic search or RAG answer over the course materials."""
    try:
        if request.mode == "search":
            hits = await assembler.search(
                request.query,
                limit=request.limit or SEARCH_MODE_LIMIT,
                category=request.category,
            )
            return SearchResponse(
                mode="search",
                query=request.query,
                results=[
                    SearchResult(
                        id=hit.chunk_id,
                        content=hit.content,
                        score=round(hit.score, 4),
                        material={
                            "id": hit.material_id,
                            "title": hit.title,
                            "category": hit.describe("category"),
                            "topic": hit.describe("topic"),
                            "week": hit.describe("week"),
                            "type": hit.describe("type"),
                            "file_url": hit.describe("file_url"),
                        },
                    )
                    for hit in hits
                ],
            )

        rag = await assembler.get_context(
            request.query,
            limit=request.limit or RAG_MODE_LIMIT,
            category=request.category,
        )

        if rag.is_empty:
            return SearchResponse(mode="rag", query=request.query, response=NO_CONTEXT_RESPONSE)

        answer = await generator.generate(
            request.query,
            system_instruction=build_system_prompt(rag.context),
            file_refs=rag.file_urls,
        )
        return SearchResponse(
            mode="rag",
            query=request.query,
            response=answer,
            sources=rag.sources,
            file_urls=rag.file_urls,
        )

    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except EmbeddingError as e:
        logger.error(f"Query embedding failed: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Embedding service unavailable")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Search failed: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Search failed")
