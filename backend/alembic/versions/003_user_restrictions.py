"""Add per-user feature restriction columns

Revision ID: 003
Revises: 002
Create Date: 2025-02-17

"""
from typing import Sequence, Union

from alembic import op
from sqlalchemy import text

revision: str = '003'
down_revision: Union[str, None] = '002'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()

    # Check existing columns
    columns = {row[1] for row in conn.execute(text("PRAGMA table_info(users)")).fetchall()}

    if "is_restricted" not in columns:
        conn.execute(text("ALTER TABLE users ADD COLUMN is_restricted INTEGER DEFAULT 0"))
    # Comma-separated subset of chat,calendar,tasks,news,map
    if "restricted_features" not in columns:
        conn.execute(text("ALTER TABLE users ADD COLUMN restricted_features TEXT"))
    if "restriction_reason" not in columns:
        conn.execute(text("ALTER TABLE users ADD COLUMN restriction_reason TEXT"))


def downgrade() -> None:
    # SQLite doesn't support DROP COLUMN easily; downgrade is a no-op
    pass
