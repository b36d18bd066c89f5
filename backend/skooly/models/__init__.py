"""
Database Models

Import models from this module so they are registered with SQLAlchemy
(Alembic autogenerate and relationship resolution rely on it):

    from skooly.models import Material, EmbeddingChunk
"""

from skooly.models.ai_material import AiMaterial, ContentType
from skooly.models.chat import ChatHistory, ChatMessage, MessageRole
from skooly.models.community import BOT_AUTHOR_NAME, CommunityPost, CommunityReply
from skooly.models.content import (
    FILE_URL_PREFIX,
    Content,
    FileReference,
    TextContent,
    decode_content,
    encode_content,
)
from skooly.models.embedding import EmbeddingChunk
from skooly.models.handwritten_note import HandwrittenNote
from skooly.models.material import Material, MaterialCategory, MaterialType
from skooly.models.video import VideoMaterial, VideoStatus

__all__ = [
    # Materials
    "Material",
    "MaterialCategory",
    "MaterialType",
    "EmbeddingChunk",
    # Content union
    "Content",
    "TextContent",
    "FileReference",
    "FILE_URL_PREFIX",
    "encode_content",
    "decode_content",
    # Generated content
    "AiMaterial",
    "ContentType",
    "VideoMaterial",
    "VideoStatus",
    "HandwrittenNote",
    # Chat
    "ChatHistory",
    "ChatMessage",
    "MessageRole",
    # Community
    "CommunityPost",
    "CommunityReply",
    "BOT_AUTHOR_NAME",
]
