"""Seed global categories

Revision ID: 002
Revises: 001
Create Date: 2026-10-01 09:05:00

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '002'
down_revision = '001'
branch_labels = None
depends_on = None

GLOBAL_CATEGORIES = [
    'Educational',
    'Entertainment',
    'Technology',
    'Music',
    'Gaming',
    'News',
    'Other',
]


def upgrade() -> None:
    conn = op.get_bind()
    for name in GLOBAL_CATEGORIES:
        conn.execute(
            sa.text("""
                INSERT INTO categories (name, user_id, is_global)
                SELECT :name, NULL, TRUE
                WHERE NOT EXISTS (
                    SELECT 1 FROM categories WHERE is_global AND name = :name
                )
            """),
            {"name": name},
        )


def downgrade() -> None:
    op.execute("DELETE FROM categories WHERE is_global")
