"""
Declarative base for Skooly tables.

Every table inherits :class:`BaseModel`: an integer primary key plus UTC
``created_at`` / ``updated_at``. Constraint names follow ``convention`` so
that Alembic migrations can refer to them (``ck_materials_week_positive``,
``uq_embedding_chunks_material_id`` ...).
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, MetaData, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=convention)


class CommonTableAttributes:
    """id, created_at and updated_at columns shared by all tables."""

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.id})"


class BaseModel(Base, CommonTableAttributes):
    __abstract__ = True


# Column lengths used across models
String50 = String(50)
String100 = String(100)
String255 = String(255)
String500 = String(500)
String1000 = String(1000)
