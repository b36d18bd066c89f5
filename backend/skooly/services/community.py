"""
Community Q&A board: posts, replies and a course-grounded bot reply.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from skooly.models.community import BOT_AUTHOR_NAME, CommunityPost, CommunityReply
from skooly.services.materials import PermissionDeniedError
from skooly.services.processors.embedder import EmbeddingError
from skooly.services.rag.context import RAGContext, RAGContextAssembler
from skooly.services.rag.generator import AnswerGenerator, build_system_prompt


logger = logging.getLogger(__name__)


BOT_REPLY_PROMPT = (
    'A student asked in a discussion:\n\n"{query}"\n\n'
    "Provide a helpful, concise direct reply to the student."
)

BOT_CONTEXT_LIMIT = 3


class PostNotFoundError(Exception):
    """No community post with that id."""


class CommunityService:
    def __init__(
        self,
        db: AsyncSession,
        assembler: Optional[RAGContextAssembler] = None,
        generator: Optional[AnswerGenerator] = None,
    ):
        self.db = db
        self.assembler = assembler
        self.generator = generator

    async def list_posts(self, course: Optional[str] = None, limit: int = 50) -> List[CommunityPost]:
        query = select(CommunityPost).options(selectinload(CommunityPost.replies))
        if course:
            query = query.where(CommunityPost.course == course)
        query = query.order_by(CommunityPost.created_at.desc()).limit(limit)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def create_post(
        self,
        author_id: str,
        author_name: str,
        title: str,
        body: Optional[str] = None,
        course: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
        mentions: Optional[Sequence[str]] = None,
    ) -> CommunityPost:
        post = CommunityPost(
            author_id=author_id,
            author_name=author_name,
            title=title,
            body=body,
            course=course,
            tags=list(tags or []),
            mentions=list(mentions or []),
            replies=[],
        )
        self.db.add(post)
        await self.db.commit()
        return await self.get_post(post.id)

    async def get_post(self, post_id: int) -> CommunityPost:
        result = await self.db.execute(
            select(CommunityPost)
            .options(selectinload(CommunityPost.replies))
            .where(CommunityPost.id == post_id)
            .execution_options(populate_existing=True)
        )
        post = result.scalar_one_or_none()
        if post is None:
            raise PostNotFoundError(f"Post {post_id} not found")
        return post

    async def delete_post(self, post_id: int, user_id: str) -> None:
        post = await self.get_post(post_id)
        if not post.is_owned_by(user_id):
            raise PermissionDeniedError("You can only delete your own posts")
        await self.db.delete(post)
        await self.db.commit()

    async def add_reply(self, post_id: int, author_id: str, author_name: str, content: str) -> CommunityReply:
        await self.get_post(post_id)

        reply = CommunityReply(
            post_id=post_id,
            author_id=author_id,
            author_name=author_name,
            content=content,
            is_bot=False,
        )
        self.db.add(reply)
        await self.db.commit()
        await self.db.refresh(reply)
        return reply

    async def bot_reply(self, post_id: int) -> tuple[CommunityReply, bool]:
        """
        Add the post's bot reply, grounded in course materials.

        Returns:
            (reply, created). An existing bot reply is returned unchanged.
        """
        post = await self.get_post(post_id)

        existing = next((reply for reply in post.replies if reply.is_bot), None)
        if existing is not None:
            return existing, False

        query = f"{post.title}\n\n{post.body or ''}".strip()
        rag = await self._retrieve(query)

        content = await self.generator.generate(
            BOT_REPLY_PROMPT.format(query=query),
            system_instruction=build_system_prompt(rag.context),
            file_refs=rag.file_urls,
        )

        reply = CommunityReply(
            post_id=post.id,
            author_id=None,
            author_name=BOT_AUTHOR_NAME,
            content=content,
            is_bot=True,
            sources=rag.sources,
        )
        self.db.add(reply)

        try:
            await self.db.commit()
        except IntegrityError:
            # Another request added the bot reply first
            await self.db.rollback()
            post = await self.get_post(post_id)
            existing = next(reply for reply in post.replies if reply.is_bot)
            return existing, False

        await self.db.refresh(reply)
        logger.info(f"Bot replied to post {post_id} with {len(rag.sources)} sources")
        return reply, True

    async def _retrieve(self, query: str) -> RAGContext:
        if self.assembler is None:
            return RAGContext()
        try:
            return await self.assembler.get_context(query, limit=BOT_CONTEXT_LIMIT)
        except EmbeddingError as e:
            logger.warning(f"Bot reply retrieval failed, replying without course context: {e}")
            return RAGContext()


def reply_to_dict(reply: CommunityReply) -> Dict[str, Any]:
    return {
        "id": reply.id,
        "post_id": reply.post_id,
        "author_id": reply.author_id,
        "author_name": reply.author_name,
        "content": reply.content,
        "is_bot": reply.is_bot,
        "sources": reply.sources or [],
        "created_at": reply.created_at,
    }


def post_to_dict(post: CommunityPost, include_replies: bool = True) -> Dict[str, Any]:
    data = {
        "id": post.id,
        "author_id": post.author_id,
        "author_name": post.author_name,
        "title": post.title,
        "body": post.body,
        "course": post.course,
        "tags": list(post.tags or []),
        "mentions": list(post.mentions or []),
        "reply_count": len(post.replies),
        "created_at": post.created_at,
        "updated_at": post.updated_at,
    }
    if include_replies:
        data["replies"] = [reply_to_dict(reply) for reply in post.replies]
    return data
