"""
Shared pytest fixtures for backend tests.
Each test gets its own SQLite file; the Dify client is replaced by a fake.
"""
import pytest
import sqlite3
import sys
import os

# Add backend to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import database
from dify import ChatReply
from models import Role


@pytest.fixture
def test_db(monkeypatch, tmp_path):
    """
    Create an isolated test database for each test.
    Uses a temp file (not :memory:) because database.py opens new connections per operation.
    """
    db_path = str(tmp_path / "test.db")
    monkeypatch.setattr(database, "DATABASE_PATH", db_path)
    monkeypatch.setattr(database, "init_db", lambda *args, **kwargs: None)

    # Create tables directly (skip alembic for tests)
    conn = sqlite3.connect(db_path)
    conn.executescript("""
        CREATE TABLE users (
            id TEXT PRIMARY KEY,
            email TEXT NOT NULL UNIQUE,
            name TEXT,
            role TEXT NOT NULL DEFAULT 'STUDENT',
            is_restricted INTEGER DEFAULT 0,
            restricted_features TEXT,
            restriction_reason TEXT,
            created_at TEXT NOT NULL
        );

        CREATE TABLE tasks (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            title TEXT NOT NULL,
            description TEXT,
            status TEXT NOT NULL DEFAULT 'PENDING',
            priority TEXT NOT NULL DEFAULT 'MEDIUM',
            due_date TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE events (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            title TEXT NOT NULL,
            description TEXT,
            start_date TEXT NOT NULL,
            end_date TEXT,
            all_day INTEGER DEFAULT 0,
            color TEXT DEFAULT '#3b82f6',
            created_at TEXT NOT NULL
        );

        CREATE TABLE map_markers (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            description TEXT,
            directions TEXT,
            floor TEXT,
            building TEXT,
            nearby_info TEXT,
            latitude REAL NOT NULL,
            longitude REAL NOT NULL,
            category TEXT,
            created_at TEXT NOT NULL
        );

        CREATE TABLE conversations (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            title TEXT NOT NULL,
            dify_conversation_id TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE chat_messages (
            id TEXT PRIMARY KEY,
            conversation_id TEXT NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
            role TEXT NOT NULL,
            content TEXT NOT NULL,
            markers TEXT,
            created_at TEXT NOT NULL
        );

        CREATE TABLE notifications (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            content TEXT NOT NULL,
            type TEXT NOT NULL DEFAULT 'info',
            is_global INTEGER DEFAULT 1,
            user_id TEXT REFERENCES users(id) ON DELETE CASCADE,
            created_at TEXT NOT NULL
        );

        CREATE TABLE notification_attachments (
            id TEXT PRIMARY KEY,
            notification_id TEXT NOT NULL REFERENCES notifications(id) ON DELETE CASCADE,
            filename TEXT NOT NULL,
            filepath TEXT NOT NULL,
            mimetype TEXT NOT NULL,
            size INTEGER NOT NULL,
            text_content TEXT,
            dify_document_id TEXT,
            created_at TEXT NOT NULL
        );

        CREATE TABLE notification_links (
            id TEXT PRIMARY KEY,
            notification_id TEXT NOT NULL REFERENCES notifications(id) ON DELETE CASCADE,
            title TEXT NOT NULL,
            url TEXT NOT NULL
        );

        CREATE TABLE notification_reads (
            notification_id TEXT NOT NULL REFERENCES notifications(id) ON DELETE CASCADE,
            user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            read_at TEXT NOT NULL,
            PRIMARY KEY (notification_id, user_id)
        );
    """)
    conn.commit()
    conn.close()

    yield db_path


class FakeDify:
    """Stands in for DifyClient; records what the chat route sent."""

    def __init__(self):
        self.calls = []
        self.answer = "了解しました"
        self.conversation_ref = "dify-conv-1"
        self.error = None
        self.dataset_configured = False
        self.uploaded = []
        self.deleted = []

    @property
    def chat_configured(self):
        return True

    async def send_chat_message(self, query, user_id, user_name=None, context="", conversation_ref=None):
        self.calls.append({
            "query": query,
            "user_id": user_id,
            "user_name": user_name,
            "context": context,
            "conversation_ref": conversation_ref,
        })
        if self.error:
            raise self.error
        return ChatReply(answer=self.answer, conversation_ref=self.conversation_ref)

    async def upload_document(self, filename, content, mime_type):
        if self.error:
            raise self.error
        self.uploaded.append(filename)
        return f"doc-{len(self.uploaded)}"

    async def delete_document(self, document_id):
        self.deleted.append(document_id)


@pytest.fixture
def fake_dify():
    return FakeDify()


@pytest.fixture
def app_client(test_db, monkeypatch, tmp_path, fake_dify):
    """
    Create a test client for the FastAPI app.
    Mocks init_db to skip alembic migrations.
    """
    from fastapi.testclient import TestClient
    import main

    # Skip alembic in tests - tables already created by test_db fixture
    monkeypatch.setattr(database, "init_db", lambda *args, **kwargs: None)
    monkeypatch.setattr(main.settings, "upload_dir", str(tmp_path / "uploads"))
    monkeypatch.setattr(main.settings, "admin_emails", ["admin@example.ac.jp"])
    monkeypatch.setattr(main, "dify_client", fake_dify)

    with TestClient(main.app) as client:
        yield client


@pytest.fixture
def student(test_db):
    return database.create_user_db("student@example.ac.jp", "学生 太郎")


@pytest.fixture
def admin(test_db):
    return database.create_user_db("admin@example.ac.jp", "管理者", Role.ADMIN)

