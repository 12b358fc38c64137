"""Document queries use JSONB containment

Revision ID: 002_containment_index
Revises: 001_initial_schema
Create Date: 2026-10-19 12:00:00.000000

Query filters are sent to PostgreSQL as ``data @> '{...}'``. A GIN
index with ``jsonb_path_ops`` serves exactly that operator and is
smaller than the default operator class. The ``userId`` expression
index never matched a generated query and is dropped.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = '002_containment_index'
down_revision: Union[str, None] = '001_initial_schema'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.drop_index('ix_documents_sos_unresolved_user', table_name='documents')
    op.drop_index('ix_documents_data', table_name='documents')
    op.create_index(
        'ix_documents_data_path_ops',
        'documents',
        ['data'],
        postgresql_using='gin',
        postgresql_ops={'data': 'jsonb_path_ops'},
    )


def downgrade() -> None:
    op.drop_index('ix_documents_data_path_ops', table_name='documents')
    op.create_index('ix_documents_data', 'documents', ['data'], postgresql_using='gin')
    op.create_index(
        'ix_documents_sos_unresolved_user',
        'documents',
        [sa.text("(data->>'userId')")],
        postgresql_where=sa.text(
            "collection = 'sos_events' AND (data->'status'->>'resolved') = 'false'"
        ),
    )
