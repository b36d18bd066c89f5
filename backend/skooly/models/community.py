"""
Community Q&A models.
"""

from sqlalchemy import Boolean, ForeignKey, Index, Text, text
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from skooly.db.base import BaseModel, String100, String255, String500


# Display name for AI-generated replies
BOT_AUTHOR_NAME = "Skooly Bot"


class CommunityPost(BaseModel):
    """Table: community_posts"""

    __tablename__ = "community_posts"

    author_id: Mapped[str] = mapped_column(String255, nullable=False, index=True)
    author_name: Mapped[str] = mapped_column(String255, nullable=False)

    title: Mapped[str] = mapped_column(String500, nullable=False)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    course: Mapped[str | None] = mapped_column(String255, nullable=True, index=True)

    tags: Mapped[list[str]] = mapped_column(ARRAY(String100), nullable=False, default=list)
    mentions: Mapped[list[str]] = mapped_column(
        ARRAY(String100),
        nullable=False,
        default=list,
        comment="@handles mentioned in the post (e.g. instructor, ta)"
    )

    replies: Mapped[list["CommunityReply"]] = relationship(
        "CommunityReply",
        back_populates="post",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="CommunityReply.id",
    )

    def __repr__(self) -> str:
        return f"CommunityPost(id={self.id}, title='{self.title}')"

    def is_owned_by(self, user_id: str) -> bool:
        return self.author_id == user_id


class CommunityReply(BaseModel):
    """
    Table: community_replies

    Bot replies have ``is_bot`` set and no ``author_id``. A partial unique
    index keeps at most one bot reply per post.
    """

    __tablename__ = "community_replies"

    post_id: Mapped[int] = mapped_column(
        ForeignKey("community_posts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    author_id: Mapped[str | None] = mapped_column(String255, nullable=True)
    author_name: Mapped[str] = mapped_column(String255, nullable=False)

    content: Mapped[str] = mapped_column(Text, nullable=False)

    is_bot: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    sources: Mapped[list | None] = mapped_column(JSONB, nullable=True)

    post: Mapped["CommunityPost"] = relationship("CommunityPost", back_populates="replies")

    __table_args__ = (
        Index(
            "uq_community_replies_one_bot_per_post",
            "post_id",
            unique=True,
            postgresql_where=text("is_bot"),
        ),
    )

    def __repr__(self) -> str:
        return f"CommunityReply(id={self.id}, post_id={self.post_id}, is_bot={self.is_bot})"
