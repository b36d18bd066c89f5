"""
AI-generated learning material (notes, slides, quizzes, podcasts...).
"""

import enum

from sqlalchemy import ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from skooly.db.base import String50, String255, String500, String1000, BaseModel


class ContentType(str, enum.Enum):
    """Kinds of content the generation orchestrator can produce."""

    NOTES = "notes"
    SLIDES = "slides"
    PDF = "pdf"
    CODE_GUIDE = "code-guide"
    MCQ = "mcq"
    PODCAST = "podcast"


class AiMaterial(BaseModel):
    """
    Table: ai_materials

    ``content`` is markdown for notes/slides/pdf/code-guide, a JSON array for
    mcq, and the two-speaker script for podcast (audio stored separately in
    object storage, see ``audio_url``).
    """

    __tablename__ = "ai_materials"

    uploaded_by: Mapped[str] = mapped_column(
        String255,
        nullable=False,
        index=True,
        comment="User id of the requester"
    )

    title: Mapped[str] = mapped_column(String500, nullable=False)

    type: Mapped[str] = mapped_column(
        String50,
        nullable=False,
        comment="notes, slides, pdf, code-guide, mcq or podcast"
    )

    category: Mapped[str] = mapped_column(
        String50,
        nullable=False,
        comment="Theory or Lab"
    )

    content: Mapped[str] = mapped_column(Text, nullable=False)

    course: Mapped[str] = mapped_column(
        String255,
        nullable=False,
        default="AI Generated"
    )

    week: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    topic: Mapped[str | None] = mapped_column(String500, nullable=True)

    source_material_id: Mapped[int | None] = mapped_column(
        ForeignKey("materials.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    customization: Mapped[str | None] = mapped_column(Text, nullable=True)

    audio_url: Mapped[str | None] = mapped_column(String1000, nullable=True)

    audio_public_id: Mapped[str | None] = mapped_column(String500, nullable=True)

    def __repr__(self) -> str:
        return f"AiMaterial(id={self.id}, type='{self.type}', title='{self.title}')"
