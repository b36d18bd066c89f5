"""
Generated video model.

Status flow: PENDING → PROCESSING → COMPLETED | FAILED

Generation runs outside the request (see
:mod:`skooly.services.generation.video`). A record that stays PROCESSING for
longer than ``VIDEO_STALE_AFTER_MINUTES`` was most likely abandoned by a
recycled worker and is reported as possibly stale.
"""

import enum
from datetime import datetime, timedelta, timezone

from sqlalchemy import DateTime, Enum as SQLEnum, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from skooly.db.base import BaseModel, String50, String255, String500, String1000


class VideoStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class VideoMaterial(BaseModel):
    """Table: video_materials"""

    __tablename__ = "video_materials"

    uploaded_by: Mapped[str] = mapped_column(String255, nullable=False, index=True)

    title: Mapped[str] = mapped_column(String500, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    course: Mapped[str | None] = mapped_column(String255, nullable=True)
    topic: Mapped[str | None] = mapped_column(String500, nullable=True)
    week: Mapped[int | None] = mapped_column(Integer, nullable=True)

    source_material_id: Mapped[int | None] = mapped_column(
        ForeignKey("materials.id", ondelete="SET NULL"),
        nullable=True,
    )

    source_content: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Text the video prompt is derived from"
    )

    prompt: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Final prompt sent to the video model"
    )

    status: Mapped[VideoStatus] = mapped_column(
        SQLEnum(VideoStatus, name="video_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=VideoStatus.PENDING,
        index=True,
    )

    video_url: Mapped[str | None] = mapped_column(String1000, nullable=True)
    storage_public_id: Mapped[str | None] = mapped_column(String500, nullable=True)

    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    aspect_ratio: Mapped[str | None] = mapped_column(String50, nullable=True)
    resolution: Mapped[str | None] = mapped_column(String50, nullable=True)

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"VideoMaterial(id={self.id}, status='{self.status}', title='{self.title}')"

    def is_owned_by(self, user_id: str) -> bool:
        return self.uploaded_by == user_id

    def is_possibly_stale(self, stale_after_minutes: int, now: datetime | None = None) -> bool:
        """True if still PROCESSING long after it started."""
        if self.status != VideoStatus.PROCESSING:
            return False
        started = self.started_at or self.created_at
        if started is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now - started > timedelta(minutes=stale_after_minutes)
