import sqlite3
import json
import uuid
from datetime import datetime
from typing import Optional
from contextlib import contextmanager

from models import (
    Attachment,
    ChatMessage,
    Conversation,
    Event,
    Link,
    MapMarker,
    Notification,
    Priority,
    Role,
    Task,
    TaskStatus,
    User,
)

DATABASE_PATH = "campus.db"

BULK_DELETE_TARGETS = (
    "all-users",
    "all-notifications",
    "all-events",
    "all-tasks",
    "all-conversations",
    "all-markers",
    "reset-database",
)

@contextmanager
def get_db():
    """Context manager for database connections."""
    conn = sqlite3.connect(DATABASE_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
    finally:
        conn.close()

def init_db(database_path: Optional[str] = None):
    """Initialize database by running Alembic migrations."""
    import subprocess
    import os

    global DATABASE_PATH
    if database_path:
        DATABASE_PATH = database_path

    # Run alembic upgrade from the backend directory
    backend_dir = os.path.dirname(os.path.abspath(__file__))
    subprocess.run(
        ["alembic", "-x", f"db={os.path.abspath(DATABASE_PATH)}", "upgrade", "head"],
        cwd=backend_dir,
        check=True
    )

def _new_id() -> str:
    return str(uuid.uuid4())

def _now() -> str:
    return datetime.now().isoformat()

def to_db_datetime(value: Optional[datetime]) -> Optional[str]:
    """
    Normalise a datetime for storage so string comparison orders correctly.
    Aware values are converted to local time and stored naive, without microseconds.
    """
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone().replace(tzinfo=None)
    return value.replace(microsecond=0).isoformat()


# Row conversion

def _row_to_user(row) -> User:
    keys = row.keys()
    features = row["restricted_features"] or ""
    return User(
        id=row["id"],
        email=row["email"],
        name=row["name"],
        role=Role(row["role"]),
        is_restricted=bool(row["is_restricted"]),
        restricted_features=[f for f in features.split(",") if f],
        restriction_reason=row["restriction_reason"],
        created_at=row["created_at"],
        event_count=row["event_count"] if "event_count" in keys else None,
        task_count=row["task_count"] if "task_count" in keys else None,
        conversation_count=row["conversation_count"] if "conversation_count" in keys else None,
    )

def _row_to_task(row) -> Task:
    return Task(
        id=row["id"],
        user_id=row["user_id"],
        title=row["title"],
        description=row["description"],
        status=TaskStatus(row["status"]),
        priority=Priority(row["priority"]),
        due_date=row["due_date"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )

def _row_to_event(row) -> Event:
    return Event(
        id=row["id"],
        user_id=row["user_id"],
        title=row["title"],
        description=row["description"],
        start_date=row["start_date"],
        end_date=row["end_date"],
        all_day=bool(row["all_day"]),
        color=row["color"],
        created_at=row["created_at"],
    )

def _row_to_marker(row) -> MapMarker:
    return MapMarker(
        id=row["id"],
        title=row["title"],
        description=row["description"],
        directions=row["directions"],
        floor=row["floor"],
        building=row["building"],
        nearby_info=row["nearby_info"],
        latitude=row["latitude"],
        longitude=row["longitude"],
        category=row["category"],
        created_at=row["created_at"],
    )

def _row_to_attachment(row) -> Attachment:
    return Attachment(
        id=row["id"],
        notification_id=row["notification_id"],
        filename=row["filename"],
        filepath=row["filepath"],
        mimetype=row["mimetype"],
        size=row["size"],
        text_content=row["text_content"],
        dify_document_id=row["dify_document_id"],
        created_at=row["created_at"],
    )

def _row_to_conversation(row) -> Conversation:
    return Conversation(
        id=row["id"],
        user_id=row["user_id"],
        title=row["title"],
        dify_conversation_id=row["dify_conversation_id"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )

def _row_to_message(row) -> ChatMessage:
    return ChatMessage(
        id=row["id"],
        conversation_id=row["conversation_id"],
        role=row["role"],
        content=row["content"],
        markers=json.loads(row["markers"]) if row["markers"] else [],
        created_at=row["created_at"],
    )

def _apply_updates(conn, table: str, record_id: str, row, updates: dict) -> None:
    """
    UPDATE only the columns whose value actually changes.
    Unknown fields are ignored; bools and datetimes are converted for storage.
    """
    keys = row.keys()
    changes = {}
    for field, new_value in updates.items():
        if field not in keys:
            continue
        if isinstance(new_value, bool):
            new_value = int(new_value)
        elif isinstance(new_value, datetime):
            new_value = to_db_datetime(new_value)
        elif hasattr(new_value, "value"):
            new_value = new_value.value
        if new_value != row[field]:
            changes[field] = new_value

    if "updated_at" in keys and changes:
        changes["updated_at"] = _now()

    if changes:
        set_clause = ", ".join(f"{field} = ?" for field in changes.keys())
        values = list(changes.values()) + [record_id]
        conn.execute(f"UPDATE {table} SET {set_clause} WHERE id = ?", values)
        conn.commit()


# User operations

def create_user_db(email: str, name: Optional[str] = None, role: Role = Role.STUDENT) -> User:
    user_id = _new_id()
    created_at = _now()
    with get_db() as conn:
        conn.execute(
            "INSERT INTO users (id, email, name, role, is_restricted, created_at) VALUES (?, ?, ?, ?, 0, ?)",
            (user_id, email.lower(), name, role.value, created_at)
        )
        conn.commit()
    return User(id=user_id, email=email.lower(), name=name, role=role, created_at=created_at)

def get_user_db(user_id: str) -> Optional[User]:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return _row_to_user(row) if row else None

def get_user_by_email_db(email: str) -> Optional[User]:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM users WHERE email = ?", (email.lower(),)).fetchone()
        return _row_to_user(row) if row else None

def list_users_db() -> list[User]:
    """All users, newest first, with how many events/tasks/conversations each owns."""
    with get_db() as conn:
        rows = conn.execute("""
            SELECT users.*,
                (SELECT COUNT(*) FROM events WHERE events.user_id = users.id) AS event_count,
                (SELECT COUNT(*) FROM tasks WHERE tasks.user_id = users.id) AS task_count,
                (SELECT COUNT(*) FROM conversations WHERE conversations.user_id = users.id) AS conversation_count
            FROM users
            ORDER BY created_at DESC
        """).fetchall()
        return [_row_to_user(row) for row in rows]

def update_user_restriction_db(
    user_id: str,
    is_restricted: bool,
    restricted_features: list[str],
    restriction_reason: Optional[str] = None
) -> Optional[User]:
    with get_db() as conn:
        cursor = conn.execute(
            "UPDATE users SET is_restricted = ?, restricted_features = ?, restriction_reason = ? WHERE id = ?",
            (int(is_restricted), ",".join(restricted_features) or None, restriction_reason or None, user_id)
        )
        conn.commit()
        if cursor.rowcount == 0:
            return None
    return get_user_db(user_id)

def delete_user_db(user_id: str) -> bool:
    """Delete a user; tasks, events and conversations go with them (ON DELETE CASCADE)."""
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
        conn.commit()
        return cursor.rowcount > 0


# Task operations

def create_task_db(
    user_id: str,
    title: str,
    description: Optional[str] = None,
    priority: Priority = Priority.MEDIUM,
    due_date: Optional[datetime] = None
) -> Task:
    task_id = _new_id()
    created_at = _now()
    due = to_db_datetime(due_date)
    with get_db() as conn:
        conn.execute(
            """INSERT INTO tasks
               (id, user_id, title, description, status, priority, due_date, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (task_id, user_id, title, description, TaskStatus.PENDING.value, priority.value, due, created_at, created_at)
        )
        conn.commit()
    return Task(
        id=task_id,
        user_id=user_id,
        title=title,
        description=description,
        priority=priority,
        due_date=due,
        created_at=created_at,
        updated_at=created_at,
    )

def get_task_db(task_id: str, user_id: str) -> Optional[Task]:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM tasks WHERE id = ? AND user_id = ?", (task_id, user_id)).fetchone()
        return _row_to_task(row) if row else None

def get_tasks_db(user_id: str, status: Optional[TaskStatus] = None) -> list[Task]:
    """A user's tasks, highest priority first, then soonest due (undated last)."""
    query = "SELECT * FROM tasks WHERE user_id = ?"
    params: list = [user_id]
    if status:
        query += " AND status = ?"
        params.append(status.value)
    query += """
        ORDER BY
            CASE priority
                WHEN 'HIGH' THEN 1
                WHEN 'MEDIUM' THEN 2
                ELSE 3
            END,
            due_date IS NULL,
            due_date
    """
    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()
        return [_row_to_task(row) for row in rows]

def get_tasks_in_range_db(user_id: str, start: datetime, end: datetime, limit: int = 10) -> list[Task]:
    """Incomplete tasks due within [start, end], soonest first."""
    with get_db() as conn:
        rows = conn.execute(
            """SELECT * FROM tasks
               WHERE user_id = ? AND status != ? AND due_date >= ? AND due_date <= ?
               ORDER BY due_date
               LIMIT ?""",
            (user_id, TaskStatus.COMPLETED.value, to_db_datetime(start), to_db_datetime(end), limit)
        ).fetchall()
        return [_row_to_task(row) for row in rows]

def update_task_db(task_id: str, user_id: str, **updates) -> Optional[Task]:
    """
    Update a task owned by user_id with any fields provided.
    Only updates fields that differ from current values.
    """
    with get_db() as conn:
        row = conn.execute("SELECT * FROM tasks WHERE id = ? AND user_id = ?", (task_id, user_id)).fetchone()
        if not row:
            return None
        _apply_updates(conn, "tasks", task_id, row, updates)
        updated_row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return _row_to_task(updated_row)

def delete_task_db(task_id: str, user_id: str) -> bool:
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM tasks WHERE id = ? AND user_id = ?", (task_id, user_id))
        conn.commit()
        return cursor.rowcount > 0


# Event operations

def create_event_db(
    user_id: str,
    title: str,
    start_date: datetime,
    all_day: bool = False,
    description: Optional[str] = None,
    end_date: Optional[datetime] = None,
    color: str = "#3b82f6"
) -> Event:
    event_id = _new_id()
    created_at = _now()
    start = to_db_datetime(start_date)
    end = to_db_datetime(end_date)
    with get_db() as conn:
        conn.execute(
            """INSERT INTO events
               (id, user_id, title, description, start_date, end_date, all_day, color, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (event_id, user_id, title, description, start, end, int(all_day), color, created_at)
        )
        conn.commit()
    return Event(
        id=event_id,
        user_id=user_id,
        title=title,
        description=description,
        start_date=start,
        end_date=end,
        all_day=all_day,
        color=color,
        created_at=created_at,
    )

def get_event_db(event_id: str, user_id: str) -> Optional[Event]:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM events WHERE id = ? AND user_id = ?", (event_id, user_id)).fetchone()
        return _row_to_event(row) if row else None

def get_events_db(user_id: str, year: Optional[int] = None, month: Optional[int] = None) -> list[Event]:
    """A user's events by start date, optionally limited to one calendar month."""
    if year and month:
        import calendar
        last_day = calendar.monthrange(year, month)[1]
        return get_events_in_range_db(
            user_id,
            datetime(year, month, 1),
            datetime(year, month, last_day, 23, 59, 59),
            limit=-1
        )
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM events WHERE user_id = ? ORDER BY start_date", (user_id,)
        ).fetchall()
        return [_row_to_event(row) for row in rows]

def get_events_in_range_db(user_id: str, start: datetime, end: datetime, limit: int = 10) -> list[Event]:
    """Events starting within [start, end]. A negative limit means no limit."""
    with get_db() as conn:
        rows = conn.execute(
            """SELECT * FROM events
               WHERE user_id = ? AND start_date >= ? AND start_date <= ?
               ORDER BY start_date
               LIMIT ?""",
            (user_id, to_db_datetime(start), to_db_datetime(end), limit)
        ).fetchall()
        return [_row_to_event(row) for row in rows]

def update_event_db(event_id: str, user_id: str, **updates) -> Optional[Event]:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM events WHERE id = ? AND user_id = ?", (event_id, user_id)).fetchone()
        if not row:
            return None
        _apply_updates(conn, "events", event_id, row, updates)
        updated_row = conn.execute("SELECT * FROM events WHERE id = ?", (event_id,)).fetchone()
        return _row_to_event(updated_row)

def delete_event_db(event_id: str, user_id: str) -> bool:
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM events WHERE id = ? AND user_id = ?", (event_id, user_id))
        conn.commit()
        return cursor.rowcount > 0


# Map marker operations

def create_marker_db(title: str, latitude: float, longitude: float, **fields) -> MapMarker:
    marker_id = _new_id()
    created_at = _now()
    columns = ("description", "directions", "floor", "building", "nearby_info", "category")
    values = [fields.get(column) or None for column in columns]
    with get_db() as conn:
        conn.execute(
            f"""INSERT INTO map_markers
                (id, title, latitude, longitude, {", ".join(columns)}, created_at)
                VALUES (?, ?, ?, ?, {", ".join("?" for _ in columns)}, ?)""",
            (marker_id, title, latitude, longitude, *values, created_at)
        )
        conn.commit()
    return MapMarker(
        id=marker_id,
        title=title,
        latitude=latitude,
        longitude=longitude,
        created_at=created_at,
        **dict(zip(columns, values)),
    )

def get_markers_db() -> list[MapMarker]:
    with get_db() as conn:
        rows = conn.execute("SELECT * FROM map_markers ORDER BY created_at DESC").fetchall()
        return [_row_to_marker(row) for row in rows]

def update_marker_db(marker_id: str, **updates) -> Optional[MapMarker]:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM map_markers WHERE id = ?", (marker_id,)).fetchone()
        if not row:
            return None
        _apply_updates(conn, "map_markers", marker_id, row, updates)
        updated_row = conn.execute("SELECT * FROM map_markers WHERE id = ?", (marker_id,)).fetchone()
        return _row_to_marker(updated_row)

def delete_marker_db(marker_id: str) -> bool:
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM map_markers WHERE id = ?", (marker_id,))
        conn.commit()
        return cursor.rowcount > 0


# Notification operations

def create_notification_db(
    title: str,
    content: str,
    type: str = "info",
    is_global: bool = True,
    user_id: Optional[str] = None
) -> Notification:
    """A global notification has no owner; any other is visible to user_id only."""
    notification_id = _new_id()
    created_at = _now()
    owner = None if is_global else user_id
    with get_db() as conn:
        conn.execute(
            "INSERT INTO notifications (id, title, content, type, is_global, user_id, created_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (notification_id, title, content, type, int(is_global), owner, created_at)
        )
        conn.commit()
    return Notification(
        id=notification_id,
        title=title,
        content=content,
        type=type,
        is_global=is_global,
        user_id=owner,
        created_at=created_at,
    )

def _load_notifications(conn, rows, user_id: Optional[str] = None) -> list[Notification]:
    """Attach attachments, links and (for user_id) read state to notification rows."""
    read_ids = set()
    if user_id:
        read_ids = {
            r["notification_id"] for r in conn.execute(
                "SELECT notification_id FROM notification_reads WHERE user_id = ?", (user_id,)
            ).fetchall()
        }

    notifications = []
    for row in rows:
        attachments = conn.execute(
            "SELECT * FROM notification_attachments WHERE notification_id = ? ORDER BY created_at",
            (row["id"],)
        ).fetchall()
        links = conn.execute(
            "SELECT * FROM notification_links WHERE notification_id = ?", (row["id"],)
        ).fetchall()
        notifications.append(Notification(
            id=row["id"],
            title=row["title"],
            content=row["content"],
            type=row["type"],
            is_global=bool(row["is_global"]),
            user_id=row["user_id"],
            created_at=row["created_at"],
            is_read=row["id"] in read_ids,
            attachments=[_row_to_attachment(a) for a in attachments],
            links=[Link(id=l["id"], notification_id=l["notification_id"], title=l["title"], url=l["url"]) for l in links],
        ))
    return notifications

def get_notifications_db(limit: Optional[int] = None, user_id: Optional[str] = None, global_only: bool = False) -> list[Notification]:
    """
    Newest first, with attachments and links.
    With user_id: only global notifications and those addressed to that user,
    with read state filled in. With neither filter: every notification.
    """
    query = "SELECT * FROM notifications"
    params: list = []
    if global_only:
        query += " WHERE is_global = 1"
    elif user_id:
        query += " WHERE is_global = 1 OR user_id = ?"
        params.append(user_id)
    query += " ORDER BY created_at DESC LIMIT ?"
    params.append(limit if limit is not None else -1)
    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()
        return _load_notifications(conn, rows, user_id)

def get_notification_db(notification_id: str) -> Optional[Notification]:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM notifications WHERE id = ?", (notification_id,)).fetchone()
        if not row:
            return None
        return _load_notifications(conn, [row])[0]

def delete_notification_db(notification_id: str) -> bool:
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM notifications WHERE id = ?", (notification_id,))
        conn.commit()
        return cursor.rowcount > 0

def add_attachment_db(
    notification_id: str,
    filename: str,
    filepath: str,
    mimetype: str,
    size: int,
    text_content: Optional[str] = None
) -> Attachment:
    attachment_id = _new_id()
    created_at = _now()
    with get_db() as conn:
        conn.execute(
            """INSERT INTO notification_attachments
               (id, notification_id, filename, filepath, mimetype, size, text_content, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (attachment_id, notification_id, filename, filepath, mimetype, size, text_content, created_at)
        )
        conn.commit()
    return Attachment(
        id=attachment_id,
        notification_id=notification_id,
        filename=filename,
        filepath=filepath,
        mimetype=mimetype,
        size=size,
        text_content=text_content,
        created_at=created_at,
    )

def get_attachment_db(attachment_id: str) -> Optional[Attachment]:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM notification_attachments WHERE id = ?", (attachment_id,)).fetchone()
        return _row_to_attachment(row) if row else None

def get_pending_attachments_db() -> list[Attachment]:
    """PDF attachments not yet uploaded to the knowledge base."""
    with get_db() as conn:
        rows = conn.execute(
            """SELECT * FROM notification_attachments
               WHERE dify_document_id IS NULL
                 AND (mimetype LIKE '%pdf%' OR lower(filename) LIKE '%.pdf')
               ORDER BY created_at"""
        ).fetchall()
        return [_row_to_attachment(row) for row in rows]

def set_attachment_document_id_db(attachment_id: str, document_id: str) -> bool:
    with get_db() as conn:
        cursor = conn.execute(
            "UPDATE notification_attachments SET dify_document_id = ? WHERE id = ?",
            (document_id, attachment_id)
        )
        conn.commit()
        return cursor.rowcount > 0

def add_link_db(notification_id: str, title: str, url: str) -> Link:
    link_id = _new_id()
    with get_db() as conn:
        conn.execute(
            "INSERT INTO notification_links (id, notification_id, title, url) VALUES (?, ?, ?, ?)",
            (link_id, notification_id, title, url)
        )
        conn.commit()
    return Link(id=link_id, notification_id=notification_id, title=title, url=url)

def mark_notification_read_db(notification_id: str, user_id: str) -> bool:
    """Returns False if the notification doesn't exist; marking twice is harmless."""
    with get_db() as conn:
        if not conn.execute("SELECT id FROM notifications WHERE id = ?", (notification_id,)).fetchone():
            return False
        conn.execute(
            "INSERT OR IGNORE INTO notification_reads (notification_id, user_id, read_at) VALUES (?, ?, ?)",
            (notification_id, user_id, _now())
        )
        conn.commit()
        return True

def mark_all_notifications_read_db(user_id: str) -> int:
    """Mark every notification visible to user_id as read. Returns how many were newly marked."""
    with get_db() as conn:
        cursor = conn.execute(
            """INSERT OR IGNORE INTO notification_reads (notification_id, user_id, read_at)
               SELECT id, ?, ? FROM notifications WHERE is_global = 1 OR user_id = ?""",
            (user_id, _now(), user_id)
        )
        conn.commit()
        return cursor.rowcount


# Conversation operations

def create_conversation_db(user_id: str, title: str = "新しい会話") -> Conversation:
    conversation_id = _new_id()
    now = _now()
    with get_db() as conn:
        conn.execute(
            "INSERT INTO conversations (id, user_id, title, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
            (conversation_id, user_id, title, now, now)
        )
        conn.commit()
    return Conversation(id=conversation_id, user_id=user_id, title=title, created_at=now, updated_at=now)

def get_conversation_db(conversation_id: str, user_id: str) -> Optional[Conversation]:
    """Fetch a conversation only if user_id owns it."""
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM conversations WHERE id = ? AND user_id = ?", (conversation_id, user_id)
        ).fetchone()
        return _row_to_conversation(row) if row else None

def list_conversations_db(user_id: str) -> list[Conversation]:
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM conversations WHERE user_id = ? ORDER BY updated_at DESC", (user_id,)
        ).fetchall()
        return [_row_to_conversation(row) for row in rows]

def set_dify_conversation_id_db(conversation_id: str, dify_conversation_id: str):
    with get_db() as conn:
        conn.execute(
            "UPDATE conversations SET dify_conversation_id = ? WHERE id = ?",
            (dify_conversation_id, conversation_id)
        )
        conn.commit()

def touch_conversation_db(conversation_id: str):
    with get_db() as conn:
        conn.execute("UPDATE conversations SET updated_at = ? WHERE id = ?", (_now(), conversation_id))
        conn.commit()

def delete_conversation_db(conversation_id: str, user_id: str) -> bool:
    with get_db() as conn:
        cursor = conn.execute(
            "DELETE FROM conversations WHERE id = ? AND user_id = ?", (conversation_id, user_id)
        )
        conn.commit()
        return cursor.rowcount > 0

def add_chat_message_db(conversation_id: str, role: str, content: str, markers: Optional[list[dict]] = None) -> ChatMessage:
    message_id = _new_id()
    created_at = _now()
    with get_db() as conn:
        conn.execute(
            "INSERT INTO chat_messages (id, conversation_id, role, content, markers, created_at) VALUES (?, ?, ?, ?, ?, ?)",
            (message_id, conversation_id, role, content, json.dumps(markers, ensure_ascii=False) if markers else None, created_at)
        )
        conn.commit()
    return ChatMessage(
        id=message_id,
        conversation_id=conversation_id,
        role=role,
        content=content,
        markers=markers or [],
        created_at=created_at,
    )

def get_chat_messages_db(conversation_id: str) -> list[ChatMessage]:
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM chat_messages WHERE conversation_id = ? ORDER BY created_at", (conversation_id,)
        ).fetchall()
        return [_row_to_message(row) for row in rows]


# Admin bulk deletion

def _attachment_paths(conn) -> list[str]:
    return [row["filepath"] for row in conn.execute("SELECT filepath FROM notification_attachments").fetchall()]

def bulk_delete_db(target: str) -> tuple[int, list[str]]:
    """
    Delete everything in one category. Admin accounts are never deleted.

    Returns (deleted row count, attachment file paths the caller should unlink).
    The count is -1 for "reset-database".
    """
    if target not in BULK_DELETE_TARGETS:
        raise ValueError(f"Unknown bulk delete target: {target}")

    files: list[str] = []
    with get_db() as conn:
        if target == "all-users":
            count = conn.execute("DELETE FROM users WHERE role != ?", (Role.ADMIN.value,)).rowcount
        elif target == "all-notifications":
            files = _attachment_paths(conn)
            count = conn.execute("DELETE FROM notifications").rowcount
        elif target == "all-events":
            count = conn.execute("DELETE FROM events").rowcount
        elif target == "all-tasks":
            count = conn.execute("DELETE FROM tasks").rowcount
        elif target == "all-conversations":
            count = conn.execute("DELETE FROM conversations").rowcount
        elif target == "all-markers":
            count = conn.execute("DELETE FROM map_markers").rowcount
        else:
            files = _attachment_paths(conn)
            # Children first, then everything but the admin accounts
            for table in ("chat_messages", "conversations", "notifications", "events", "tasks", "map_markers"):
                conn.execute(f"DELETE FROM {table}")
            conn.execute("DELETE FROM users WHERE role != ?", (Role.ADMIN.value,))
            count = -1
        conn.commit()
    return count, files
