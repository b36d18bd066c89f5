"""
Course material model.

A Material is one uploaded unit of course content (a PDF, a slide deck, a
source file, a link...). Its extracted text lives in ``content``; its
retrievable slices live in :class:`skooly.models.embedding.EmbeddingChunk`.

Lifecycle:
----------
1. Upload: file stored, record created, text parsed (may fail → empty)
2. Embedding: chunks embedded and stored (or one file-reference chunk)
3. Update: owner edits metadata → chunks re-created
4. Delete: owner deletes → chunks cascade, stored file removed
"""

import enum
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, Enum as SQLEnum, Integer, Text
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import Mapped, mapped_column, relationship

from skooly.db.base import BaseModel, String100, String255, String500, String1000
from skooly.models.content import Content, resolve_material_content

if TYPE_CHECKING:
    from skooly.models.embedding import EmbeddingChunk


class MaterialCategory(str, enum.Enum):
    """Course track a material belongs to."""

    THEORY = "Theory"
    LAB = "Lab"

    @classmethod
    def parse(cls, value: str) -> "MaterialCategory":
        """Case-insensitive lookup ("theory", "LAB" ...)."""
        for member in cls:
            if member.value.lower() == str(value).strip().lower():
                return member
        raise ValueError(f"Invalid category: {value}")


class MaterialType(str, enum.Enum):
    """Kind of uploaded material."""

    PDF = "pdf"
    SLIDE = "slide"
    CODE = "code"
    DOC = "doc"
    LINK = "link"
    TEXT = "text"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Material(BaseModel):
    """
    Course material uploaded by a user.

    Table: materials

    ``content`` holds the extracted text or the FILE_URL sentinel (see
    :mod:`skooly.models.content`); use :attr:`content_ref` to read it.
    ``uploaded_by`` is the identity-provider user id of the owner and is the
    only identity allowed to update or delete the record.
    """

    __tablename__ = "materials"

    # ================================
    # Descriptive Metadata
    # ================================

    title: Mapped[str] = mapped_column(
        String500,
        nullable=False,
        comment="Material title"
    )

    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Free-form description"
    )

    course: Mapped[str] = mapped_column(
        String255,
        nullable=False,
        index=True,
        comment="Course name"
    )

    category: Mapped[MaterialCategory] = mapped_column(
        SQLEnum(MaterialCategory, name="material_category", values_callable=_enum_values),
        nullable=False,
        index=True,
        comment="Theory or Lab"
    )

    type: Mapped[MaterialType] = mapped_column(
        SQLEnum(MaterialType, name="material_type", values_callable=_enum_values),
        nullable=False,
        comment="pdf, slide, code, doc, link or text"
    )

    topic: Mapped[str | None] = mapped_column(
        String500,
        nullable=True,
        comment="Topic within the course"
    )

    week: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        comment="Course week (>= 1)"
    )

    tags: Mapped[list[str]] = mapped_column(
        ARRAY(String100),
        nullable=False,
        default=list,
        comment="Free-form tags"
    )

    # ================================
    # Stored File
    # ================================

    file_url: Mapped[str | None] = mapped_column(
        String1000,
        nullable=True,
        comment="Public URL of the stored file"
    )

    storage_public_id: Mapped[str | None] = mapped_column(
        String500,
        nullable=True,
        comment="Object-storage key, used for deletion"
    )

    # ================================
    # Extracted Content
    # ================================

    content: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
        comment="Extracted text, or FILE_URL:<url> when extraction failed"
    )

    # ================================
    # Ownership
    # ================================

    uploaded_by: Mapped[str] = mapped_column(
        String255,
        nullable=False,
        index=True,
        comment="User id of the uploader"
    )

    # ================================
    # Relationships
    # ================================

    chunks: Mapped[list["EmbeddingChunk"]] = relationship(
        "EmbeddingChunk",
        back_populates="material",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("week >= 1", name="week_positive"),
    )

    def __repr__(self) -> str:
        return f"Material(id={self.id}, title='{self.title}', course='{self.course}')"

    @property
    def content_ref(self) -> Content:
        """Effective content as TextContent or FileReference."""
        return resolve_material_content(self.content, self.file_url)

    def is_owned_by(self, user_id: str) -> bool:
        return self.uploaded_by == user_id

    def metadata_snapshot(self) -> dict:
        """Denormalized metadata copied onto each embedding chunk."""
        return {
            "title": self.title,
            "category": _value(self.category),
            "topic": self.topic,
            "type": _value(self.type),
            "week": self.week,
            "file_url": self.file_url,
        }


def _value(member):
    return member.value if isinstance(member, enum.Enum) else member
