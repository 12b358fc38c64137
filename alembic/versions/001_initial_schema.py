"""Initial schema - document store

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the SafeCampus document table. Every collection lives in it,
keyed by (collection, id):
- sos_events: Emergency episodes
- sos_sessions: Per-episode token sessions
- sos_active_users: One-active-SOS-per-user pointers
- safe_walk: Monitored walks
- users: Directory profiles and push tokens
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'documents',
        sa.Column('collection', sa.String(64), nullable=False),
        sa.Column('id', sa.String(128), nullable=False),
        sa.Column('data', postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('collection', 'id'),
    )
    op.create_index('ix_documents_collection', 'documents', ['collection'])
    op.create_index(
        'ix_documents_data',
        'documents',
        ['data'],
        postgresql_using='gin',
    )

    # Unresolved SOS lookups by owner (trigger precondition, dashboards)
    op.create_index(
        'ix_documents_sos_unresolved_user',
        'documents',
        [sa.text("(data->>'userId')")],
        postgresql_where=sa.text(
            "collection = 'sos_events' AND (data->'status'->>'resolved') = 'false'"
        ),
    )


def downgrade() -> None:
    op.drop_index('ix_documents_sos_unresolved_user', table_name='documents')
    op.drop_index('ix_documents_data', table_name='documents')
    op.drop_index('ix_documents_collection', table_name='documents')
    op.drop_table('documents')
