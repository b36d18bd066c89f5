"""handwritten notes

Revision ID: b2d4f6a8c0e1
Revises: a1c3e5f7b9d0
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'b2d4f6a8c0e1'
down_revision: Union[str, None] = 'a1c3e5f7b9d0'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'handwritten_notes',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('uploaded_by', sa.String(255), nullable=False),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('raw_content', sa.Text(), nullable=True),
        sa.Column('course', sa.String(255), nullable=True),
        sa.Column('topic', sa.String(500), nullable=True),
        sa.Column('image_url', sa.String(1000), nullable=True),
        sa.Column('image_public_id', sa.String(500), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_handwritten_notes'),
    )
    op.create_index('ix_handwritten_notes_uploaded_by', 'handwritten_notes', ['uploaded_by'])


def downgrade() -> None:
    op.drop_index('ix_handwritten_notes_uploaded_by', table_name='handwritten_notes')
    op.drop_table('handwritten_notes')
