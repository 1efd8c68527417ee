"""Add analytics cache

Revision ID: 3f2a9c1d7e45
Revises:
Create Date: 2026-10-19 10:12:41.208713

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import sqlmodel


# revision identifiers, used by Alembic.
revision: str = '3f2a9c1d7e45'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('analytics_cache',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('faculty_id', sqlmodel.sql.sqltypes.AutoString(length=64), nullable=False),
        sa.Column('data_json', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('computed_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_analytics_cache_faculty_id'), 'analytics_cache', ['faculty_id'], unique=True)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_analytics_cache_faculty_id'), table_name='analytics_cache')
    op.drop_table('analytics_cache')
