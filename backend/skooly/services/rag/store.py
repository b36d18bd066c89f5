"""
Embedding Store

Persists material chunks with their vectors in pgvector and answers
nearest-neighbour queries.

Write path (upsert_chunks):
---------------------------
1. Embed every chunk in document mode; failures are logged and dropped
2. In one transaction: delete the material's existing chunks, insert the
   new set with sequential chunk indices

Chunks are always replaced as a whole set, never merged, and the
(material_id, chunk_index) unique constraint rejects a second writer that
interleaves with the first.

File-reference materials (no extracted text) get exactly one synthetic
chunk built from title/topic/category/week. The synthetic text is only
embedded; the stored ``content`` is the material's FILE_URL sentinel.

Read path (similarity_search):
------------------------------
Cosine distance over the HNSW index, 2 × limit candidates, optional
category filter, score = 1 - distance, min_score cutoff, truncate to limit.
Each hit carries the chunk's metadata snapshot plus a fresh lookup of the
owning material joined at query time.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from skooly.models.content import Content, FileReference, decode_content, encode_content
from skooly.models.embedding import EmbeddingChunk
from skooly.models.material import Material, MaterialCategory
from skooly.services.processors.embedder import EmbeddingError, GeminiEmbeddingService


logger = logging.getLogger(__name__)


@dataclass
class SearchHit:
    """One similarity-search result."""

    chunk_id: int
    material_id: int
    chunk_index: int
    content: str
    metadata: Dict[str, Any]
    score: float
    # Fresh material lookup; None if the material row no longer exists
    material: Optional[Dict[str, Any]] = field(default=None)

    @property
    def title(self) -> Optional[str]:
        if self.material and self.material.get("title"):
            return self.material["title"]
        return self.metadata.get("title")

    def describe(self, key: str) -> Any:
        """Current material value for ``key``, falling back to the snapshot."""
        if self.material and self.material.get(key) is not None:
            return self.material[key]
        return self.metadata.get(key)


def file_reference_summary(metadata: Dict[str, Any]) -> str:
    """Synthetic text that makes an un-parsed material discoverable."""
    return (
        f"Title: {metadata.get('title') or 'Untitled'}. "
        f"Topic: {metadata.get('topic') or 'General'}. "
        f"Category: {metadata.get('category') or 'Unknown'}. "
        f"Week: {metadata.get('week') or 'N/A'}."
    )


def _enum_value(value):
    return getattr(value, "value", value)


class EmbeddingStore:
    """
    pgvector-backed chunk store.

    Usage:
    ------
    store = EmbeddingStore(db, embedder)
    count = await store.upsert_chunks(material.id, chunks, material.metadata_snapshot())
    hits = await store.similarity_search(query_vector, limit=5, category="Theory")
    """

    def __init__(self, db: AsyncSession, embedder: GeminiEmbeddingService):
        self.db = db
        self.embedder = embedder

    # ========================================
    # Write Path
    # ========================================

    async def upsert_chunks(
        self,
        material_id: int,
        chunks: Sequence[str],
        metadata: Dict[str, Any],
        source: Optional[Union[Content, str]] = None,
    ) -> int:
        """
        Embed and store a material's chunks, replacing any previous set.

        Args:
            material_id: Owning material
            chunks: Chunk texts (ignored for file-reference sources)
            metadata: Snapshot stored on every chunk
            source: The material's content (Content or raw column value).
                    A FileReference collapses the write to one synthetic chunk.
                    When omitted, a single sentinel chunk is also recognised.

        Returns:
            Number of chunks stored. 0 leaves existing chunks untouched.
        """
        file_ref = self._file_reference(chunks, source)

        records: List[tuple[str, List[float]]] = []

        if file_ref is not None:
            summary = file_reference_summary(metadata)
            try:
                vector = await self.embedder.embed_document(summary)
                records.append((encode_content(file_ref), vector))
            except EmbeddingError as e:
                logger.error(f"Failed to embed file reference for material {material_id}: {e}")
        else:
            for index, chunk in enumerate(chunks):
                if not chunk or not chunk.strip():
                    continue
                try:
                    vector = await self.embedder.embed_document(chunk)
                except EmbeddingError as e:
                    logger.warning(
                        f"Dropping chunk {index} of material {material_id}: {e}"
                    )
                    continue
                records.append((chunk, vector))

        if not records:
            logger.warning(f"No embeddable chunks for material {material_id}")
            return 0

        snapshot = {key: _enum_value(value) for key, value in metadata.items()}

        try:
            await self.db.execute(
                delete(EmbeddingChunk).where(EmbeddingChunk.material_id == material_id)
            )
            self.db.add_all([
                EmbeddingChunk(
                    material_id=material_id,
                    chunk_index=index,
                    content=content,
                    embedding=vector,
                    chunk_metadata=dict(snapshot),
                )
                for index, (content, vector) in enumerate(records)
            ])
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Failed to store chunks for material {material_id}: {e}")
            raise

        logger.info(
            f"Stored {len(records)} chunks for material {material_id}"
            + (" (file reference)" if file_ref is not None else "")
        )
        return len(records)

    @staticmethod
    def _file_reference(
        chunks: Sequence[str],
        source: Optional[Union[Content, str]],
    ) -> Optional[FileReference]:
        if isinstance(source, str):
            source = decode_content(source)
        if isinstance(source, FileReference):
            return source
        if source is None and len(chunks) == 1:
            decoded = decode_content(chunks[0])
            if isinstance(decoded, FileReference):
                return decoded
        return None

    async def delete_for_material(self, material_id: int, commit: bool = True) -> int:
        """Delete all chunks of a material. Returns the number removed."""
        result = await self.db.execute(
            delete(EmbeddingChunk).where(EmbeddingChunk.material_id == material_id)
        )
        if commit:
            await self.db.commit()
        return result.rowcount or 0

    # ========================================
    # Read Path
    # ========================================

    async def similarity_search(
        self,
        query_vector: List[float],
        limit: int = 5,
        category: Optional[str] = None,
        min_score: float = 0.5,
    ) -> List[SearchHit]:
        """
        Nearest-neighbour search.

        Args:
            query_vector: Query embedding (query mode)
            limit: Max results returned
            category: Optional "Theory" / "Lab" filter
            min_score: Minimum cosine similarity

        Returns:
            At most ``limit`` hits, best first, each with score >= min_score
        """
        if limit <= 0:
            return []

        rows = await self._fetch_candidates(query_vector, limit * 2, category)

        hits: List[SearchHit] = []
        for row in rows:
            score = 1.0 - float(row["distance"])
            if score < min_score:
                continue
            hits.append(SearchHit(
                chunk_id=row["chunk_id"],
                material_id=row["material_id"],
                chunk_index=row["chunk_index"],
                content=row["content"],
                metadata=row["chunk_metadata"] or {},
                score=score,
                material=row["material"],
            ))

        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[:limit]

    async def _fetch_candidates(
        self,
        query_vector: List[float],
        candidates: int,
        category: Optional[str],
    ) -> List[Dict[str, Any]]:
        """Run the pgvector query; material columns come from a live outer join."""
        distance = EmbeddingChunk.embedding.cosine_distance(query_vector).label("distance")

        query = select(
            EmbeddingChunk.id.label("chunk_id"),
            EmbeddingChunk.material_id,
            EmbeddingChunk.chunk_index,
            EmbeddingChunk.content,
            EmbeddingChunk.chunk_metadata,
            Material.id.label("m_id"),
            Material.title.label("m_title"),
            Material.category.label("m_category"),
            Material.topic.label("m_topic"),
            Material.type.label("m_type"),
            Material.week.label("m_week"),
            Material.file_url.label("m_file_url"),
            Material.course.label("m_course"),
            distance,
        ).select_from(EmbeddingChunk).outerjoin(
            Material, EmbeddingChunk.material_id == Material.id
        )

        if category:
            query = query.where(
                EmbeddingChunk.chunk_metadata["category"].astext == MaterialCategory.parse(category).value
            )

        query = query.order_by(distance).limit(candidates)

        result = await self.db.execute(query)

        rows = []
        for row in result.all():
            material = None
            if row.m_id is not None:
                material = {
                    "id": row.m_id,
                    "title": row.m_title,
                    "category": _enum_value(row.m_category),
                    "topic": row.m_topic,
                    "type": _enum_value(row.m_type),
                    "week": row.m_week,
                    "file_url": row.m_file_url,
                    "course": row.m_course,
                }
            rows.append({
                "chunk_id": row.chunk_id,
                "material_id": row.material_id,
                "chunk_index": row.chunk_index,
                "content": row.content,
                "chunk_metadata": row.chunk_metadata,
                "distance": row.distance,
                "material": material,
            })
        return rows

    # ========================================
    # Statistics
    # ========================================

    async def count_for_material(self, material_id: int) -> int:
        result = await self.db.execute(
            select(func.count(EmbeddingChunk.id)).where(EmbeddingChunk.material_id == material_id)
        )
        return result.scalar() or 0

    async def chunk_counts(self) -> Dict[int, int]:
        """Chunk count per material id (materials without chunks are absent)."""
        result = await self.db.execute(
            select(EmbeddingChunk.material_id, func.count(EmbeddingChunk.id))
            .group_by(EmbeddingChunk.material_id)
        )
        return {material_id: count for material_id, count in result.all()}
