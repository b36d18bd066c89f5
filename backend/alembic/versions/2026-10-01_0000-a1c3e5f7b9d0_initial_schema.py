"""initial schema: materials, embeddings, generated content, chat, community

Revision ID: a1c3e5f7b9d0
Revises:
Create Date: 2026-10-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from pgvector.sqlalchemy import Vector
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = 'a1c3e5f7b9d0'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

EMBEDDING_DIMENSION = 768


def _timestamps():
    return [
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    """
    Create the Skooly schema.

    Also enables pgvector and builds the HNSW cosine index used for
    similarity search over embedding_chunks.
    """
    op.execute('CREATE EXTENSION IF NOT EXISTS vector')

    material_category = postgresql.ENUM('Theory', 'Lab', name='material_category')
    material_type = postgresql.ENUM('pdf', 'slide', 'code', 'doc', 'link', 'text', name='material_type')
    video_status = postgresql.ENUM('pending', 'processing', 'completed', 'failed', name='video_status')

    # ================================
    # materials
    # ================================
    op.create_table(
        'materials',
        *_timestamps(),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('course', sa.String(255), nullable=False),
        sa.Column('category', material_category, nullable=False),
        sa.Column('type', material_type, nullable=False),
        sa.Column('topic', sa.String(500), nullable=True),
        sa.Column('week', sa.Integer(), nullable=False),
        sa.Column('tags', postgresql.ARRAY(sa.String(100)), nullable=False),
        sa.Column('file_url', sa.String(1000), nullable=True),
        sa.Column('storage_public_id', sa.String(500), nullable=True),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('uploaded_by', sa.String(255), nullable=False),
        sa.CheckConstraint('week >= 1', name='ck_materials_week_positive'),
        sa.PrimaryKeyConstraint('id', name='pk_materials'),
    )
    op.create_index('ix_materials_course', 'materials', ['course'])
    op.create_index('ix_materials_category', 'materials', ['category'])
    op.create_index('ix_materials_uploaded_by', 'materials', ['uploaded_by'])

    # ================================
    # embedding_chunks
    # ================================
    op.create_table(
        'embedding_chunks',
        *_timestamps(),
        sa.Column('material_id', sa.Integer(), nullable=False),
        sa.Column('chunk_index', sa.Integer(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('embedding', Vector(EMBEDDING_DIMENSION), nullable=False),
        sa.Column('chunk_metadata', postgresql.JSONB(), nullable=True),
        sa.ForeignKeyConstraint(
            ['material_id'], ['materials.id'],
            name='fk_embedding_chunks_material_id_materials',
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_embedding_chunks'),
        sa.UniqueConstraint('material_id', 'chunk_index', name='uq_embedding_chunks_material_chunk_index'),
    )
    op.create_index('ix_embedding_chunks_material_id', 'embedding_chunks', ['material_id'])
    op.create_index(
        'ix_embedding_chunks_embedding_hnsw',
        'embedding_chunks',
        ['embedding'],
        postgresql_using='hnsw',
        postgresql_with={'m': 16, 'ef_construction': 64},
        postgresql_ops={'embedding': 'vector_cosine_ops'},
    )

    # ================================
    # ai_materials / video_materials
    # ================================
    op.create_table(
        'ai_materials',
        *_timestamps(),
        sa.Column('uploaded_by', sa.String(255), nullable=False),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('type', sa.String(50), nullable=False),
        sa.Column('category', sa.String(50), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('course', sa.String(255), nullable=False),
        sa.Column('week', sa.Integer(), nullable=False),
        sa.Column('topic', sa.String(500), nullable=True),
        sa.Column('source_material_id', sa.Integer(), nullable=True),
        sa.Column('customization', sa.Text(), nullable=True),
        sa.Column('audio_url', sa.String(1000), nullable=True),
        sa.Column('audio_public_id', sa.String(500), nullable=True),
        sa.ForeignKeyConstraint(
            ['source_material_id'], ['materials.id'],
            name='fk_ai_materials_source_material_id_materials',
            ondelete='SET NULL',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_ai_materials'),
    )
    op.create_index('ix_ai_materials_uploaded_by', 'ai_materials', ['uploaded_by'])
    op.create_index('ix_ai_materials_source_material_id', 'ai_materials', ['source_material_id'])

    op.create_table(
        'video_materials',
        *_timestamps(),
        sa.Column('uploaded_by', sa.String(255), nullable=False),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('course', sa.String(255), nullable=True),
        sa.Column('topic', sa.String(500), nullable=True),
        sa.Column('week', sa.Integer(), nullable=True),
        sa.Column('source_material_id', sa.Integer(), nullable=True),
        sa.Column('source_content', sa.Text(), nullable=True),
        sa.Column('prompt', sa.Text(), nullable=True),
        sa.Column('status', video_status, nullable=False),
        sa.Column('video_url', sa.String(1000), nullable=True),
        sa.Column('storage_public_id', sa.String(500), nullable=True),
        sa.Column('duration_seconds', sa.Integer(), nullable=True),
        sa.Column('aspect_ratio', sa.String(50), nullable=True),
        sa.Column('resolution', sa.String(50), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ['source_material_id'], ['materials.id'],
            name='fk_video_materials_source_material_id_materials',
            ondelete='SET NULL',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_video_materials'),
    )
    op.create_index('ix_video_materials_uploaded_by', 'video_materials', ['uploaded_by'])
    op.create_index('ix_video_materials_status', 'video_materials', ['status'])

    # ================================
    # chat
    # ================================
    op.create_table(
        'chat_histories',
        *_timestamps(),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('title', sa.String(500), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_chat_histories'),
    )
    op.create_index('ix_chat_histories_user_id', 'chat_histories', ['user_id'])

    op.create_table(
        'chat_messages',
        *_timestamps(),
        sa.Column('chat_id', sa.Integer(), nullable=False),
        sa.Column('role', sa.String(50), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('intent', sa.String(50), nullable=True),
        sa.Column('sources', postgresql.JSONB(), nullable=True),
        sa.Column('validation', postgresql.JSONB(), nullable=True),
        sa.ForeignKeyConstraint(
            ['chat_id'], ['chat_histories.id'],
            name='fk_chat_messages_chat_id_chat_histories',
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_chat_messages'),
    )
    op.create_index('ix_chat_messages_chat_id', 'chat_messages', ['chat_id'])

    # ================================
    # community
    # ================================
    op.create_table(
        'community_posts',
        *_timestamps(),
        sa.Column('author_id', sa.String(255), nullable=False),
        sa.Column('author_name', sa.String(255), nullable=False),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('body', sa.Text(), nullable=True),
        sa.Column('course', sa.String(255), nullable=True),
        sa.Column('tags', postgresql.ARRAY(sa.String(100)), nullable=False),
        sa.Column('mentions', postgresql.ARRAY(sa.String(100)), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_community_posts'),
    )
    op.create_index('ix_community_posts_author_id', 'community_posts', ['author_id'])
    op.create_index('ix_community_posts_course', 'community_posts', ['course'])

    op.create_table(
        'community_replies',
        *_timestamps(),
        sa.Column('post_id', sa.Integer(), nullable=False),
        sa.Column('author_id', sa.String(255), nullable=True),
        sa.Column('author_name', sa.String(255), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('is_bot', sa.Boolean(), nullable=False),
        sa.Column('sources', postgresql.JSONB(), nullable=True),
        sa.ForeignKeyConstraint(
            ['post_id'], ['community_posts.id'],
            name='fk_community_replies_post_id_community_posts',
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_community_replies'),
    )
    op.create_index('ix_community_replies_post_id', 'community_replies', ['post_id'])
    # At most one bot reply per post
    op.create_index(
        'uq_community_replies_one_bot_per_post',
        'community_replies',
        ['post_id'],
        unique=True,
        postgresql_where=sa.text('is_bot'),
    )


def downgrade() -> None:
    op.drop_table('community_replies')
    op.drop_table('community_posts')
    op.drop_table('chat_messages')
    op.drop_table('chat_histories')
    op.drop_table('video_materials')
    op.drop_table('ai_materials')
    op.drop_table('embedding_chunks')
    op.drop_table('materials')

    op.execute('DROP TYPE IF EXISTS video_status')
    op.execute('DROP TYPE IF EXISTS material_type')
    op.execute('DROP TYPE IF EXISTS material_category')
    # The vector extension is left installed
