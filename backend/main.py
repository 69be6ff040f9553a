from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI, File, Header, HTTPException, Query, UploadFile
from fastapi.responses import FileResponse
from fastapi.middleware.cors import CORSMiddleware
from datetime import datetime
from pathlib import Path
from typing import Optional, Union
import logging
import os
import uuid

import database
from config import Settings
from context import (
    build_map_context,
    build_notifications_context,
    build_schedule_context,
    compose_query,
    describe_created,
    wants_location,
    wants_notifications,
    wants_schedule,
)
from database import (
    BULK_DELETE_TARGETS,
    add_attachment_db,
    add_chat_message_db,
    add_link_db,
    bulk_delete_db,
    create_conversation_db,
    create_event_db,
    create_marker_db,
    create_notification_db,
    create_task_db,
    create_user_db,
    delete_conversation_db,
    delete_event_db,
    delete_marker_db,
    delete_notification_db,
    delete_task_db,
    delete_user_db,
    get_attachment_db,
    get_chat_messages_db,
    get_conversation_db,
    get_events_db,
    get_events_in_range_db,
    get_markers_db,
    get_notification_db,
    get_notifications_db,
    get_pending_attachments_db,
    get_tasks_db,
    get_tasks_in_range_db,
    get_user_by_email_db,
    get_user_db,
    list_conversations_db,
    list_users_db,
    mark_all_notifications_read_db,
    mark_notification_read_db,
    set_attachment_document_id_db,
    set_dify_conversation_id_db,
    touch_conversation_db,
    update_event_db,
    update_marker_db,
    update_task_db,
    update_user_restriction_db,
)
from dify import DifyClient, DifyError
from models import (
    RESTRICTABLE_FEATURES,
    AccountDelete,
    BulkDeleteRequest,
    ChatRequest,
    CreationIntent,
    Event,
    EventCreate,
    EventUpdate,
    IntentKind,
    LinkCreate,
    MarkerCreate,
    MarkerUpdate,
    NotificationCreate,
    Priority,
    RestrictionUpdate,
    Role,
    Task,
    TaskCreate,
    TaskStatus,
    TaskUpdate,
    User,
    UserCreate,
)
from prompts import FALLBACK_ANSWER, NO_ANSWER
from resolver import parse_creation_intent, resolve_date_range

logger = logging.getLogger(__name__)

settings = Settings.from_env()
dify_client = DifyClient(settings)

@asynccontextmanager
async def lifespan(_app: FastAPI):
    # Startup
    database.init_db(settings.database_path)
    Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
    yield
    # Shutdown (nothing to do)

app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Uploads accepted as notification attachments (checked by MIME type or extension)
ALLOWED_MIME_TYPES = {
    "application/pdf",
    "application/x-pdf",
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "text/plain",
}
ALLOWED_EXTENSIONS = {".pdf", ".jpg", ".jpeg", ".png", ".gif", ".webp", ".doc", ".docx", ".xls", ".xlsx", ".txt"}
MAX_UPLOAD_BYTES = 10 * 1024 * 1024
MAX_TEXT_CONTENT = 10000

BULK_DELETE_MESSAGES = {
    "all-users": "{count}人のユーザーを削除しました",
    "all-notifications": "{count}件のお知らせを削除しました",
    "all-events": "{count}件の予定を削除しました",
    "all-tasks": "{count}件の課題を削除しました",
    "all-conversations": "{count}件の会話を削除しました",
    "all-markers": "{count}件のマーカーを削除しました",
    "reset-database": "データベースをリセットしました",
}


# Identity. Sessions are issued upstream; the proxy forwards the user id.

def get_current_user(x_user_id: Optional[str] = Header(default=None)) -> User:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="認証が必要です")
    user = get_user_db(x_user_id)
    if not user:
        raise HTTPException(status_code=401, detail="ユーザーが見つかりません。再ログインしてください。")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role is not Role.ADMIN:
        raise HTTPException(status_code=403, detail="権限がありません")
    return user


def ensure_allowed(user: User, feature: str):
    if user.is_feature_restricted(feature):
        raise HTTPException(status_code=403, detail="この機能は制限されています")


def _upload_path(filepath: str) -> Path:
    return Path(settings.upload_dir) / filepath


def _remove_uploads(filepaths: list[str]):
    for filepath in filepaths:
        try:
            _upload_path(filepath).unlink()
        except OSError as e:
            logger.warning("Failed to delete file %s: %s", filepath, e)


# Users

@app.post("/users", status_code=201)
def register_user(user_data: UserCreate) -> User:
    if get_user_by_email_db(user_data.email):
        raise HTTPException(status_code=400, detail="このメールアドレスは既に登録されています")
    role = Role.ADMIN if user_data.email.lower() in settings.admin_emails else Role.STUDENT
    return create_user_db(user_data.email, user_data.name, role)


@app.get("/user")
def get_me(user: User = Depends(get_current_user)) -> User:
    return user


@app.delete("/user")
def delete_me(request: AccountDelete, user: User = Depends(get_current_user)) -> dict:
    """Delete the caller's own account; tasks, events and conversations go with it."""
    if not request.confirmed:
        raise HTTPException(status_code=400, detail="削除の確認が必要です")
    delete_user_db(user.id)
    logger.info("User %s deleted their account", user.id)
    return {"message": "アカウントを削除しました"}


# Tasks

@app.get("/tasks")
def get_tasks(status: Optional[TaskStatus] = None, user: User = Depends(get_current_user)) -> list[Task]:
    return get_tasks_db(user.id, status)


@app.post("/tasks", status_code=201)
def create_task(task_data: TaskCreate, user: User = Depends(get_current_user)) -> Task:
    ensure_allowed(user, "tasks")
    if not task_data.title.strip():
        raise HTTPException(status_code=400, detail="タイトルは必須です")
    return create_task_db(
        user.id,
        task_data.title,
        task_data.description,
        task_data.priority,
        task_data.due_date
    )


@app.patch("/tasks/{task_id}")
def update_task(task_id: str, task_data: TaskUpdate, user: User = Depends(get_current_user)) -> Task:
    result = update_task_db(task_id, user.id, **task_data.model_dump(exclude_unset=True))
    if not result:
        raise HTTPException(status_code=404, detail="課題が見つかりません")
    return result


@app.delete("/tasks/{task_id}")
def delete_task(task_id: str, user: User = Depends(get_current_user)) -> dict:
    if not delete_task_db(task_id, user.id):
        raise HTTPException(status_code=404, detail="課題が見つかりません")
    return {"status": "deleted"}


# Events

@app.get("/events")
def get_events(
    year: Optional[int] = Query(default=None, ge=1, le=9999),
    month: Optional[int] = Query(default=None, ge=1, le=12),
    user: User = Depends(get_current_user)
) -> list[Event]:
    return get_events_db(user.id, year, month)


@app.post("/events", status_code=201)
def create_event(event_data: EventCreate, user: User = Depends(get_current_user)) -> Event:
    ensure_allowed(user, "calendar")
    if not event_data.title.strip():
        raise HTTPException(status_code=400, detail="タイトルと開始日は必須です")
    return create_event_db(
        user.id,
        event_data.title,
        event_data.start_date,
        all_day=event_data.all_day,
        description=event_data.description,
        end_date=event_data.end_date,
        color=event_data.color
    )


@app.patch("/events/{event_id}")
def update_event(event_id: str, event_data: EventUpdate, user: User = Depends(get_current_user)) -> Event:
    result = update_event_db(event_id, user.id, **event_data.model_dump(exclude_unset=True))
    if not result:
        raise HTTPException(status_code=404, detail="イベントが見つかりません")
    return result


@app.delete("/events/{event_id}")
def delete_event(event_id: str, user: User = Depends(get_current_user)) -> dict:
    if not delete_event_db(event_id, user.id):
        raise HTTPException(status_code=404, detail="イベントが見つかりません")
    return {"status": "deleted"}


# Map markers

@app.get("/markers")
def get_markers(user: User = Depends(get_current_user)) -> list[dict]:
    return [marker.model_dump() for marker in get_markers_db()]


@app.post("/markers", status_code=201)
def create_marker(marker_data: MarkerCreate, admin: User = Depends(require_admin)) -> dict:
    fields = marker_data.model_dump(exclude={"title", "latitude", "longitude"})
    return create_marker_db(marker_data.title, marker_data.latitude, marker_data.longitude, **fields).model_dump()


@app.patch("/markers/{marker_id}")
def update_marker(marker_id: str, marker_data: MarkerUpdate, admin: User = Depends(require_admin)) -> dict:
    result = update_marker_db(marker_id, **marker_data.model_dump(exclude_unset=True))
    if not result:
        raise HTTPException(status_code=404, detail="マーカーが見つかりません")
    return result.model_dump()


@app.delete("/markers/{marker_id}")
def delete_marker(marker_id: str, admin: User = Depends(require_admin)) -> dict:
    if not delete_marker_db(marker_id):
        raise HTTPException(status_code=404, detail="マーカーが見つかりません")
    return {"status": "deleted"}


# Notifications

@app.get("/notifications")
def get_notifications(user: User = Depends(get_current_user)) -> list[dict]:
    return [n.model_dump() for n in get_notifications_db(user_id=user.id)]


@app.post("/notifications", status_code=201)
def create_notification(notification_data: NotificationCreate, admin: User = Depends(require_admin)) -> dict:
    recipient = None
    if not notification_data.is_global:
        recipient = notification_data.user_id or admin.id
        if not get_user_db(recipient):
            raise HTTPException(status_code=404, detail="ユーザーが見つかりません")
    return create_notification_db(
        notification_data.title,
        notification_data.content,
        notification_data.type,
        notification_data.is_global,
        recipient
    ).model_dump()


@app.post("/notifications/read-all")
def mark_all_read(user: User = Depends(get_current_user)) -> dict:
    return {"status": "read", "marked": mark_all_notifications_read_db(user.id)}


@app.get("/notifications/attachments/{attachment_id}")
def download_attachment(attachment_id: str, user: User = Depends(get_current_user)) -> FileResponse:
    attachment = get_attachment_db(attachment_id)
    notification = get_notification_db(attachment.notification_id) if attachment else None
    if not notification or not (notification.is_global or notification.user_id == user.id):
        raise HTTPException(status_code=404, detail="添付ファイルが見つかりません")

    path = _upload_path(attachment.filepath)
    if not path.is_file():
        logger.error("Attachment %s missing on disk: %s", attachment.id, path)
        raise HTTPException(status_code=404, detail="ファイルが見つかりません")
    return FileResponse(path, media_type=attachment.mimetype, filename=attachment.filename)


@app.delete("/notifications/{notification_id}")
async def delete_notification(notification_id: str, admin: User = Depends(require_admin)) -> dict:
    notification = get_notification_db(notification_id)
    if not notification:
        raise HTTPException(status_code=404, detail="お知らせが見つかりません")

    delete_notification_db(notification_id)
    _remove_uploads([a.filepath for a in notification.attachments])

    if dify_client.dataset_configured:
        for attachment in notification.attachments:
            if not attachment.dify_document_id:
                continue
            try:
                await dify_client.delete_document(attachment.dify_document_id)
            except DifyError as e:
                logger.warning("Could not remove %s from Dify: %s", attachment.filename, e)
    return {"status": "deleted"}


@app.post("/notifications/{notification_id}/attachments", status_code=201)
async def upload_attachment(
    notification_id: str,
    file: UploadFile = File(...),
    admin: User = Depends(require_admin)
) -> dict:
    if not get_notification_db(notification_id):
        raise HTTPException(status_code=404, detail="お知らせが見つかりません")

    filename = os.path.basename(file.filename or "")
    extension = os.path.splitext(filename)[1].lower()
    mimetype = file.content_type or "application/octet-stream"
    logger.info("File upload: %s (%s)", filename, mimetype)
    if not filename or (mimetype not in ALLOWED_MIME_TYPES and extension not in ALLOWED_EXTENSIONS):
        raise HTTPException(
            status_code=400,
            detail=f"対応しているファイル形式: PDF, 画像, Word, Excel, テキスト (受信: {mimetype})"
        )

    content = await file.read()
    if len(content) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail="ファイルサイズは10MB以下にしてください")

    stored_name = f"{uuid.uuid4().hex}{extension}"
    path = _upload_path(stored_name)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)

    # PDF/Office text extraction happens outside this service; only plain text is read here
    text_content = None
    if mimetype.startswith("text/") or extension == ".txt":
        text_content = content.decode("utf-8", errors="replace")[:MAX_TEXT_CONTENT]

    return add_attachment_db(notification_id, filename, stored_name, mimetype, len(content), text_content).model_dump()


@app.post("/notifications/{notification_id}/links", status_code=201)
def add_link(notification_id: str, link_data: LinkCreate, admin: User = Depends(require_admin)) -> dict:
    if not get_notification_db(notification_id):
        raise HTTPException(status_code=404, detail="お知らせが見つかりません")
    if not link_data.url.startswith(("http://", "https://")):
        raise HTTPException(status_code=400, detail="URLはhttp://またはhttps://で始まる必要があります")
    return add_link_db(notification_id, link_data.title, link_data.url).model_dump()


@app.post("/notifications/{notification_id}/read")
def mark_read(notification_id: str, user: User = Depends(get_current_user)) -> dict:
    if not mark_notification_read_db(notification_id, user.id):
        raise HTTPException(status_code=404, detail="お知らせが見つかりません")
    return {"status": "read"}


# Conversations

@app.get("/conversations")
def get_conversations(user: User = Depends(get_current_user)) -> list[dict]:
    return [c.model_dump() for c in list_conversations_db(user.id)]


@app.post("/conversations", status_code=201)
def create_conversation(user: User = Depends(get_current_user)) -> dict:
    return create_conversation_db(user.id).model_dump()


@app.delete("/conversations/{conversation_id}")
def delete_conversation(conversation_id: str, user: User = Depends(get_current_user)) -> dict:
    if not delete_conversation_db(conversation_id, user.id):
        raise HTTPException(status_code=404, detail="会話が見つかりません")
    return {"status": "deleted"}


# Chat

def _conversation_title(message: str) -> str:
    return message[:30] + "..." if len(message) > 30 else message


def create_from_intent(intent: Optional[CreationIntent], user: User) -> Optional[Union[Task, Event]]:
    """
    Persist what the chat message asked to add, if anything.
    Events need a date; tasks may be open-ended. Restricted features are skipped.
    """
    if intent is None:
        return None
    if intent.kind is IntentKind.TASK:
        if user.is_feature_restricted("tasks"):
            return None
        return create_task_db(user.id, intent.title, priority=intent.priority or Priority.MEDIUM, due_date=intent.target_date)
    if intent.target_date is None or user.is_feature_restricted("calendar"):
        return None
    return create_event_db(user.id, intent.title, intent.target_date, all_day=intent.all_day)


@app.get("/chat")
def get_chat_messages(conversation_id: Optional[str] = None, user: User = Depends(get_current_user)) -> dict:
    if not conversation_id:
        return {"messages": []}
    if not get_conversation_db(conversation_id, user.id):
        raise HTTPException(status_code=404, detail="会話が見つかりません")
    return {"messages": [m.model_dump() for m in get_chat_messages_db(conversation_id)]}


@app.post("/chat")
async def chat(chat_request: ChatRequest, user: User = Depends(get_current_user)) -> dict:
    """Answer a chat message through Dify, with context from the user's own data."""
    message = chat_request.message.strip()
    if not message:
        raise HTTPException(status_code=400, detail="メッセージが必要です")
    ensure_allowed(user, "chat")

    conversation = None
    if chat_request.conversation_id:
        conversation = get_conversation_db(chat_request.conversation_id, user.id)
    if not conversation:
        conversation = create_conversation_db(user.id, _conversation_title(message))

    add_chat_message_db(conversation.id, "user", message)

    # One clock read per request; everything below is derived from it
    now = datetime.now()
    sections = []

    if wants_schedule(message):
        date_range = resolve_date_range(message, now)
        tasks = get_tasks_in_range_db(user.id, date_range.start, date_range.end)
        events = get_events_in_range_db(user.id, date_range.start, date_range.end)
        schedule_context = build_schedule_context(tasks, events, date_range)
        if schedule_context:
            sections.append(schedule_context)

    intent = parse_creation_intent(message, now)
    created = create_from_intent(intent, user)
    if created:
        logger.info("Created %s %s from chat", intent.kind.value, created.id)
        sections.append(describe_created(created))

    if wants_notifications(message):
        notifications = get_notifications_db(limit=10, global_only=True)
        sections.append(build_notifications_context(notifications, message))

    matched_markers = []
    if wants_location(message):
        map_context, matched_markers = build_map_context(get_markers_db(), message)
        if map_context:
            sections.append(map_context)

    full_context = "\n".join(sections)
    if full_context:
        logger.debug("Context preview: %s...", full_context[:200])

    created_payload = {"kind": intent.kind.value, "item": created.model_dump()} if created else None

    try:
        reply = await dify_client.send_chat_message(
            compose_query(full_context, message),
            user_id=user.id,
            user_name=user.name,
            context=full_context,
            conversation_ref=conversation.dify_conversation_id,
        )
    except DifyError as e:
        answer = FALLBACK_ANSWER.format(reason=e.status_code or "接続失敗")
        add_chat_message_db(conversation.id, "assistant", answer)
        return {"answer": answer, "conversation_id": conversation.id, "markers": [], "created": created_payload}

    if reply.conversation_ref and not conversation.dify_conversation_id:
        set_dify_conversation_id_db(conversation.id, reply.conversation_ref)
    touch_conversation_db(conversation.id)

    markers = [m.model_dump(exclude={"created_at"}) for m in matched_markers]
    answer = reply.answer or NO_ANSWER
    add_chat_message_db(conversation.id, "assistant", answer, markers)

    return {
        "answer": answer,
        "conversation_id": conversation.id,
        "markers": markers,
        "created": created_payload,
    }


# Admin

@app.get("/admin/users")
def admin_list_users(admin: User = Depends(require_admin)) -> list[User]:
    return list_users_db()


@app.patch("/admin/users")
def admin_restrict_user(update: RestrictionUpdate, admin: User = Depends(require_admin)) -> dict:
    if update.user_id == admin.id:
        raise HTTPException(status_code=400, detail="自分自身を制限することはできません")
    unknown = [f for f in update.restricted_features if f not in RESTRICTABLE_FEATURES]
    if unknown:
        raise HTTPException(status_code=400, detail=f"不明な機能です: {', '.join(unknown)}")

    user = update_user_restriction_db(
        update.user_id,
        update.is_restricted,
        update.restricted_features,
        update.restriction_reason
    )
    if not user:
        raise HTTPException(status_code=404, detail="ユーザーが見つかりません")
    message = "ユーザーを制限しました" if update.is_restricted else "制限を解除しました"
    return {"user": user.model_dump(), "message": message}


@app.delete("/admin/users/{user_id}")
def admin_delete_user(user_id: str, admin: User = Depends(require_admin)) -> dict:
    if user_id == admin.id:
        raise HTTPException(status_code=400, detail="自分自身を削除することはできません")
    if not delete_user_db(user_id):
        raise HTTPException(status_code=404, detail="ユーザーが見つかりません")
    return {"status": "deleted"}


@app.delete("/admin/database")
def admin_bulk_delete(request: BulkDeleteRequest, admin: User = Depends(require_admin)) -> dict:
    if not request.confirmed:
        raise HTTPException(status_code=400, detail="削除の確認が必要です")
    if request.target not in BULK_DELETE_TARGETS:
        raise HTTPException(status_code=400, detail="不明な対象です")

    count, files = bulk_delete_db(request.target)
    _remove_uploads(files)
    logger.warning("Admin %s bulk-deleted %s (%s rows)", admin.email, request.target, count)
    return {
        "message": BULK_DELETE_MESSAGES[request.target].format(count=count),
        "deleted_count": count,
    }


@app.post("/admin/dify-sync")
async def admin_dify_sync(
    attachment_id: Optional[str] = None,
    upload_all: bool = Query(default=False, alias="all"),
    admin: User = Depends(require_admin)
) -> dict:
    """Upload one attachment, or every pending PDF, to the Dify knowledge base."""
    if not dify_client.dataset_configured:
        raise HTTPException(
            status_code=400,
            detail="Dify連携が設定されていません。.envにDIFY_DATASET_API_KEYとDIFY_DATASET_IDを設定してください。"
        )

    if upload_all:
        attachments = get_pending_attachments_db()
    elif attachment_id:
        attachment = get_attachment_db(attachment_id)
        if not attachment:
            raise HTTPException(status_code=404, detail="添付ファイルが見つかりません")
        attachments = [attachment]
    else:
        raise HTTPException(status_code=400, detail="attachment_idまたはall=trueを指定してください")

    results = []
    for attachment in attachments:
        result = {"id": attachment.id, "filename": attachment.filename}
        try:
            content = _upload_path(attachment.filepath).read_bytes()
            document_id = await dify_client.upload_document(attachment.filename, content, attachment.mimetype)
        except (DifyError, OSError) as e:
            result.update(success=False, error=str(e))
        else:
            set_attachment_document_id_db(attachment.id, document_id)
            result.update(success=True, document_id=document_id)
        results.append(result)

    return {
        "results": results,
        "uploaded": sum(1 for r in results if r["success"]),
    }


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(app, host="0.0.0.0", port=8000)
