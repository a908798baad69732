"""initial schema

Revision ID: 2026_10_19_0000
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB


# revision identifiers, used by Alembic.
revision: str = '2026_10_19_0000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the documents table."""

    # ========================================================================
    # Create documents table
    # ========================================================================
    op.create_table(
        'documents',
        sa.Column('path', sa.String(512), primary_key=True),
        sa.Column('parent', sa.String(512), nullable=False),
        sa.Column('value', JSONB(), nullable=False),
        sa.Column('version', sa.BigInteger(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint('version >= 1', name='ck_documents_version_positive'),
    )

    # Children of a collection are listed by parent
    op.create_index('idx_documents_parent', 'documents', ['parent'])


def downgrade() -> None:
    """Drop the documents table."""
    op.drop_index('idx_documents_parent', table_name='documents')
    op.drop_table('documents')
