from datetime import datetime
from enum import Enum
from pydantic import BaseModel
from typing import Literal, Optional


class Priority(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class Role(str, Enum):
    STUDENT = "STUDENT"
    ADMIN = "ADMIN"


RESTRICTABLE_FEATURES = ("chat", "calendar", "tasks", "news", "map")


# Resolver output

class DateRange(BaseModel):
    start: datetime
    end: datetime
    label: str


class IntentKind(str, Enum):
    TASK = "task"
    EVENT = "event"


class CreationIntent(BaseModel):
    kind: IntentKind
    title: str
    target_date: Optional[datetime] = None
    priority: Optional[Priority] = None  # tasks only
    all_day: bool = True


# Stored records

class User(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    role: Role = Role.STUDENT
    is_restricted: bool = False
    restricted_features: list[str] = []
    restriction_reason: Optional[str] = None
    created_at: str
    event_count: Optional[int] = None
    task_count: Optional[int] = None
    conversation_count: Optional[int] = None

    def is_feature_restricted(self, feature: str) -> bool:
        return self.is_restricted and feature in self.restricted_features


class Task(BaseModel):
    id: str
    user_id: str
    title: str
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.PENDING
    priority: Priority = Priority.MEDIUM
    due_date: Optional[str] = None  # ISO format: YYYY-MM-DDTHH:MM:SS
    created_at: str
    updated_at: str


class Event(BaseModel):
    id: str
    user_id: str
    title: str
    description: Optional[str] = None
    start_date: str
    end_date: Optional[str] = None
    all_day: bool = False
    color: str = "#3b82f6"
    created_at: str


class MapMarker(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    directions: Optional[str] = None
    floor: Optional[str] = None
    building: Optional[str] = None
    nearby_info: Optional[str] = None
    latitude: float
    longitude: float
    category: Optional[str] = None
    created_at: str


class Attachment(BaseModel):
    id: str
    notification_id: str
    filename: str
    filepath: str
    mimetype: str
    size: int
    text_content: Optional[str] = None
    dify_document_id: Optional[str] = None
    created_at: str


class Link(BaseModel):
    id: str
    notification_id: str
    title: str
    url: str


class Notification(BaseModel):
    id: str
    title: str
    content: str
    type: str = "info"  # info | success | warning | error
    is_global: bool = True
    user_id: Optional[str] = None  # recipient of a non-global notification
    created_at: str
    is_read: bool = False
    attachments: list[Attachment] = []
    links: list[Link] = []


class Conversation(BaseModel):
    id: str
    user_id: str
    title: str
    dify_conversation_id: Optional[str] = None
    created_at: str
    updated_at: str


class ChatMessage(BaseModel):
    id: str
    conversation_id: str
    role: str  # "user" or "assistant"
    content: str
    markers: list[dict] = []
    created_at: str


# Request bodies

class UserCreate(BaseModel):
    email: str
    name: Optional[str] = None


class RestrictionUpdate(BaseModel):
    user_id: str
    is_restricted: bool
    restricted_features: list[str] = []
    restriction_reason: Optional[str] = None


class TaskCreate(BaseModel):
    title: str
    description: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    due_date: Optional[datetime] = None


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[Priority] = None
    due_date: Optional[datetime] = None


class EventCreate(BaseModel):
    title: str
    start_date: datetime
    description: Optional[str] = None
    end_date: Optional[datetime] = None
    all_day: bool = False
    color: str = "#3b82f6"


class EventUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    all_day: Optional[bool] = None
    color: Optional[str] = None


class MarkerCreate(BaseModel):
    title: str
    latitude: float
    longitude: float
    description: Optional[str] = None
    directions: Optional[str] = None
    floor: Optional[str] = None
    building: Optional[str] = None
    nearby_info: Optional[str] = None
    category: Optional[str] = None


class MarkerUpdate(BaseModel):
    title: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    description: Optional[str] = None
    directions: Optional[str] = None
    floor: Optional[str] = None
    building: Optional[str] = None
    nearby_info: Optional[str] = None
    category: Optional[str] = None


class NotificationCreate(BaseModel):
    title: str
    content: str
    type: Literal["info", "success", "warning", "error"] = "info"
    is_global: bool = True
    user_id: Optional[str] = None  # recipient when not global; defaults to the author


class LinkCreate(BaseModel):
    title: str
    url: str


class AccountDelete(BaseModel):
    confirmed: bool = False


class ChatRequest(BaseModel):
    message: str
    conversation_id: Optional[str] = None


class BulkDeleteRequest(BaseModel):
    target: str
    confirmed: bool = False
