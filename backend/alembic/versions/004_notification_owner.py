"""Add owner column for non-global notifications

Revision ID: 004
Revises: 003
Create Date: 2025-03-03

"""
from typing import Sequence, Union

from alembic import op
from sqlalchemy import text

revision: str = '004'
down_revision: Union[str, None] = '003'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()

    # Check existing columns
    columns = {row[1] for row in conn.execute(text("PRAGMA table_info(notifications)")).fetchall()}

    # NULL for global notifications
    if "user_id" not in columns:
        conn.execute(text(
            "ALTER TABLE notifications ADD COLUMN user_id TEXT REFERENCES users(id) ON DELETE CASCADE"
        ))


def downgrade() -> None:
    # SQLite doesn't support DROP COLUMN easily; downgrade is a no-op
    pass
