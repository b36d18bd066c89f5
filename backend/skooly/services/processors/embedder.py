"""
Embedding Service

Produces fixed-dimension vectors with the Gemini embedding API.

Two modes, same model:
- embed_document(): task type RETRIEVAL_DOCUMENT, for stored chunks
- embed_query():    task type RETRIEVAL_QUERY, for search queries

Queries must be embedded in query mode and chunks in document mode; the
embedding model is trained for that asymmetric pairing and ranking quality
drops when the wrong mode is used.

Model: gemini-embedding-001, truncated to EMBEDDING_DIMENSION (768).
"""

import logging
from typing import List, Optional

import numpy as np
from google import genai
from google.genai import types

from skooly.core.config import settings
from skooly.services.gemini import get_gemini_client


logger = logging.getLogger(__name__)


TASK_TYPE_DOCUMENT = "RETRIEVAL_DOCUMENT"
TASK_TYPE_QUERY = "RETRIEVAL_QUERY"


class EmbeddingError(Exception):
    """Raised when the embedding API call fails or returns nothing usable."""


class GeminiEmbeddingService:
    """
    Service for generating embeddings with the Gemini API.

    Usage:
    ------
    embedder = GeminiEmbeddingService(client=genai.Client(api_key=...))

    chunk_vector = await embedder.embed_document("React hooks let you ...")
    query_vector = await embedder.embed_query("What are React hooks?")
    """

    def __init__(
        self,
        client: Optional[genai.Client] = None,
        model: Optional[str] = None,
        dimension: Optional[int] = None,
    ):
        """
        Initialize the embedding service.

        Args:
            client: google-genai client (default: shared client from settings)
            model: Embedding model name (default from settings)
            dimension: Output dimensionality (default from settings)
        """
        self._client = client
        self.model = model or settings.GEMINI_EMBEDDING_MODEL
        self.dimension = dimension or settings.EMBEDDING_DIMENSION

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            self._client = get_gemini_client()
        return self._client

    async def embed_document(self, text: str) -> List[float]:
        """Embed a material chunk (RETRIEVAL_DOCUMENT)."""
        return await self._embed(text, TASK_TYPE_DOCUMENT)

    async def embed_query(self, text: str) -> List[float]:
        """Embed a search query (RETRIEVAL_QUERY)."""
        return await self._embed(text, TASK_TYPE_QUERY)

    async def _embed(self, text: str, task_type: str) -> List[float]:
        """
        Call the embedding API.

        Raises:
            EmbeddingError: Blank input, API failure or wrong dimensionality
        """
        if not text or not text.strip():
            raise EmbeddingError("Cannot embed empty text")

        try:
            response = await self.client.aio.models.embed_content(
                model=self.model,
                contents=text,
                config=types.EmbedContentConfig(
                    task_type=task_type,
                    output_dimensionality=self.dimension,
                ),
            )
        except Exception as e:
            logger.error(f"Embedding API call failed ({task_type}): {e}")
            raise EmbeddingError(f"Embedding API call failed: {e}") from e

        if not response.embeddings or response.embeddings[0].values is None:
            raise EmbeddingError("Embedding API returned no vector")

        values = list(response.embeddings[0].values)
        if len(values) != self.dimension:
            raise EmbeddingError(
                f"Expected {self.dimension}-dimensional embedding, got {len(values)}"
            )

        # Truncated gemini-embedding-001 vectors are not unit length
        return self._normalize(values)

    @staticmethod
    def _normalize(values: List[float]) -> List[float]:
        vector = np.asarray(values, dtype=np.float32)
        norm = np.linalg.norm(vector)
        if norm == 0:
            return vector.tolist()
        return (vector / norm).tolist()


# ========================================
# Global Instance
# ========================================

_embedding_service: Optional[GeminiEmbeddingService] = None


def get_embedding_service() -> GeminiEmbeddingService:
    """Get or create the global embedding service."""
    global _embedding_service

    if _embedding_service is None:
        _embedding_service = GeminiEmbeddingService()

    return _embedding_service
