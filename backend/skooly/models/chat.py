"""
Chat history models.

A ChatHistory is one tutoring conversation of one user; ChatMessage rows are
its turns. Assistant turns may carry the sources used and the validation
result computed for them.
"""

import enum

from sqlalchemy import ForeignKey, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from skooly.db.base import BaseModel, String50, String255, String500


class MessageRole(str, enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ChatHistory(BaseModel):
    """Table: chat_histories"""

    __tablename__ = "chat_histories"

    user_id: Mapped[str] = mapped_column(String255, nullable=False, index=True)

    title: Mapped[str] = mapped_column(String500, nullable=False, default="New Chat")

    messages: Mapped[list["ChatMessage"]] = relationship(
        "ChatMessage",
        back_populates="chat",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ChatMessage.id",
    )

    def __repr__(self) -> str:
        return f"ChatHistory(id={self.id}, user_id='{self.user_id}', title='{self.title}')"


class ChatMessage(BaseModel):
    """Table: chat_messages"""

    __tablename__ = "chat_messages"

    chat_id: Mapped[int] = mapped_column(
        ForeignKey("chat_histories.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    role: Mapped[str] = mapped_column(String50, nullable=False)

    content: Mapped[str] = mapped_column(Text, nullable=False)

    intent: Mapped[str | None] = mapped_column(String50, nullable=True)

    sources: Mapped[list | None] = mapped_column(JSONB, nullable=True)

    validation: Mapped[dict | None] = mapped_column(
        JSONB,
        nullable=True,
        comment="ValidationResult for assistant messages"
    )

    chat: Mapped["ChatHistory"] = relationship("ChatHistory", back_populates="messages")

    def __repr__(self) -> str:
        preview = self.content[:50] + "..." if self.content else ""
        return f"ChatMessage(id={self.id}, role='{self.role}', content='{preview}')"
