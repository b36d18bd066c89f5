"""
Handwritten notes transcribed with OCR.
"""

from sqlalchemy import Text
from sqlalchemy.orm import Mapped, mapped_column

from skooly.db.base import BaseModel, String255, String500, String1000


DEFAULT_NOTE_TITLE = "Untitled Note"


class HandwrittenNote(BaseModel):
    """
    Table: handwritten_notes

    ``content`` is the markdown-formatted transcription, ``raw_content`` the
    OCR output as recognised.
    """

    __tablename__ = "handwritten_notes"

    uploaded_by: Mapped[str] = mapped_column(String255, nullable=False, index=True)

    title: Mapped[str] = mapped_column(String500, nullable=False, default=DEFAULT_NOTE_TITLE)

    content: Mapped[str] = mapped_column(Text, nullable=False)
    raw_content: Mapped[str | None] = mapped_column(Text, nullable=True)

    course: Mapped[str | None] = mapped_column(String255, nullable=True)
    topic: Mapped[str | None] = mapped_column(String500, nullable=True)

    image_url: Mapped[str | None] = mapped_column(String1000, nullable=True)
    image_public_id: Mapped[str | None] = mapped_column(String500, nullable=True)

    def __repr__(self) -> str:
        return f"HandwrittenNote(id={self.id}, title='{self.title}')"

    def is_owned_by(self, user_id: str) -> bool:
        return self.uploaded_by == user_id
