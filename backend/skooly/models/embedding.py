"""
Embedding chunk model.

One row per retrievable slice of a material. ``content`` is the chunk text,
except for file-reference chunks where it is the material's full
``FILE_URL:`` sentinel so readers can recover the URL deterministically.
``chunk_metadata`` is a snapshot taken at embedding time; search results join
the live material row as well.
"""

from typing import TYPE_CHECKING

from pgvector.sqlalchemy import Vector
from sqlalchemy import ForeignKey, Index, Integer, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from skooly.core.config import settings
from skooly.db.base import BaseModel

if TYPE_CHECKING:
    from skooly.models.material import Material


class EmbeddingChunk(BaseModel):
    """
    Table: embedding_chunks

    (material_id, chunk_index) is unique, so two writers re-embedding the same
    material cannot both commit a chunk set.
    """

    __tablename__ = "embedding_chunks"

    material_id: Mapped[int] = mapped_column(
        ForeignKey("materials.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Owning material"
    )

    chunk_index: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Position within the material (0-indexed)"
    )

    content: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Chunk text, or the FILE_URL sentinel for file-reference chunks"
    )

    embedding = mapped_column(
        Vector(settings.EMBEDDING_DIMENSION),
        nullable=False,
        comment="Document-mode embedding vector"
    )

    chunk_metadata: Mapped[dict | None] = mapped_column(
        JSONB,
        nullable=True,
        comment="Snapshot: title, category, topic, type, week, file_url"
    )

    material: Mapped["Material"] = relationship(
        "Material",
        back_populates="chunks",
    )

    __table_args__ = (
        UniqueConstraint(
            "material_id",
            "chunk_index",
            name="uq_embedding_chunks_material_chunk_index"
        ),
        Index(
            "ix_embedding_chunks_embedding_hnsw",
            "embedding",
            postgresql_using="hnsw",
            postgresql_with={"m": 16, "ef_construction": 64},
            postgresql_ops={"embedding": "vector_cosine_ops"},
        ),
    )

    def __repr__(self) -> str:
        preview = self.content[:50] + "..." if self.content else ""
        return (
            f"EmbeddingChunk(id={self.id}, material_id={self.material_id}, "
            f"index={self.chunk_index}, text='{preview}')"
        )
