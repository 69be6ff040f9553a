"""Add notifications with attachments, links and read receipts

Revision ID: 002
Revises: 001
Create Date: 2025-02-03

"""
from typing import Sequence, Union

from alembic import op
from sqlalchemy import text

revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()

    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS notifications (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            content TEXT NOT NULL,
            type TEXT NOT NULL DEFAULT 'info',
            is_global INTEGER DEFAULT 1,
            created_at TEXT NOT NULL
        )
    """))

    # filepath is relative to UPLOAD_DIR
    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS notification_attachments (
            id TEXT PRIMARY KEY,
            notification_id TEXT NOT NULL REFERENCES notifications(id) ON DELETE CASCADE,
            filename TEXT NOT NULL,
            filepath TEXT NOT NULL,
            mimetype TEXT NOT NULL,
            size INTEGER NOT NULL,
            text_content TEXT,
            dify_document_id TEXT,
            created_at TEXT NOT NULL
        )
    """))

    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS notification_links (
            id TEXT PRIMARY KEY,
            notification_id TEXT NOT NULL REFERENCES notifications(id) ON DELETE CASCADE,
            title TEXT NOT NULL,
            url TEXT NOT NULL
        )
    """))

    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS notification_reads (
            notification_id TEXT NOT NULL REFERENCES notifications(id) ON DELETE CASCADE,
            user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            read_at TEXT NOT NULL,
            PRIMARY KEY (notification_id, user_id)
        )
    """))


def downgrade() -> None:
    conn = op.get_bind()
    conn.execute(text("DROP TABLE IF EXISTS notification_reads"))
    conn.execute(text("DROP TABLE IF EXISTS notification_links"))
    conn.execute(text("DROP TABLE IF EXISTS notification_attachments"))
    conn.execute(text("DROP TABLE IF EXISTS notifications"))
