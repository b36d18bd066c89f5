"""
RAG (Retrieval-Augmented Generation) Services

This package contains the retrieval and answer side of the pipeline:
- Embedding store (pgvector chunk storage and similarity search)
- Context assembly (text context, sources, file references)
- Answer generation (Gemini)
- Content validation (code, grounding, rubric, self-evaluation)
"""

from skooly.services.rag.store import EmbeddingStore, SearchHit
from skooly.services.rag.context import RAGContext, RAGContextAssembler
from skooly.services.rag.generator import AnswerGenerator, build_system_prompt, get_answer_generator
from skooly.services.rag.validator import ContentValidator, RegexClaimExtractor, status_for_score

__all__ = [
    "EmbeddingStore",
    "SearchHit",
    "RAGContext",
    "RAGContextAssembler",
    "AnswerGenerator",
    "build_system_prompt",
    "get_answer_generator",
    "ContentValidator",
    "RegexClaimExtractor",
    "status_for_score",
]
