"""Initial schema for episodes

Revision ID: 001
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create episodes table
    op.create_table(
        'episodes',
        sa.Column('id', sa.String(128), primary_key=True),
        sa.Column('title', sa.String(512), nullable=False, server_default=''),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('podcast_id', sa.String(128), nullable=True),
        sa.Column('audio_url', sa.String(2048), nullable=False),
        sa.Column('transcription_status', sa.String(32), nullable=False, server_default='NotStarted'),
        sa.Column('processed_audio_uri', sa.String(2048), nullable=True),
        sa.Column('provider_job_uri', sa.String(2048), nullable=True),
        sa.Column('transcript_text', sa.Text, nullable=True),
        sa.Column('transcription_error', sa.Text, nullable=True),
        sa.Column('version', sa.Integer, nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime, nullable=True),
        sa.Column('updated_at', sa.DateTime, nullable=True),
    )

    op.create_index('ix_episodes_transcription_status', 'episodes', ['transcription_status'])
    op.create_index('ix_episodes_title', 'episodes', ['title'])


def downgrade() -> None:
    op.drop_index('ix_episodes_title', table_name='episodes')
    op.drop_index('ix_episodes_transcription_status', table_name='episodes')
    op.drop_table('episodes')
