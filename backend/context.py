"""
Context snippets handed to the AI service with each chat message.

Everything here formats records that the chat route has already loaded;
nothing touches the database.
"""
from datetime import datetime
from typing import Union

import prompts
from models import DateRange, Event, MapMarker, Notification, Task

MAX_CONTEXT_LENGTH = 2500
MAX_ATTACHMENT_LENGTH = 1500
MAX_DETAILED_MARKERS = 3
MAX_FACILITIES = 10


def format_date(value: str) -> str:
    """ISO string -> 2025/1/5"""
    dt = datetime.fromisoformat(value)
    return f"{dt.year}/{dt.month}/{dt.day}"


def format_time(value: str) -> str:
    return datetime.fromisoformat(value).strftime("%H:%M")


def mentions_any(message: str, keywords: tuple[str, ...]) -> bool:
    lowered = message.lower()
    return any(keyword in lowered for keyword in keywords)


def wants_schedule(message: str) -> bool:
    return mentions_any(message, prompts.SCHEDULE_KEYWORDS)


def wants_notifications(message: str) -> bool:
    return mentions_any(message, prompts.NOTIFICATION_KEYWORDS)


def wants_location(message: str) -> bool:
    return mentions_any(message, prompts.LOCATION_KEYWORDS)


def build_schedule_context(tasks: list[Task], events: list[Event], date_range: DateRange) -> str:
    lines = []
    if tasks:
        lines.append(prompts.TASKS_HEADING.format(label=date_range.label))
        for task in tasks:
            due = format_date(task.due_date) if task.due_date else prompts.NO_DUE_DATE
            priority = prompts.PRIORITY_LABELS[task.priority.value]
            lines.append(f"- {task.title}（期限: {due}, 優先度: {priority}）")
        lines.append("")

    if events:
        lines.append(prompts.EVENTS_HEADING.format(label=date_range.label))
        for event in events:
            time = prompts.ALL_DAY if event.all_day else format_time(event.start_date)
            lines.append(f"- {event.title}（{format_date(event.start_date)} {time}）")

    if not lines:
        return ""
    return "\n".join(lines) + "\n"


def _attachment_is_relevant(notification: Notification, filename: str, query: str) -> bool:
    return (
        query in notification.title.lower()
        or query in notification.content.lower()
        or query in filename.lower()
        or filename.lower() in query
        or any(keyword in query for keyword in prompts.ATTACHMENT_KEYWORDS)
    )


def _format_notification(notification: Notification, query: str) -> str:
    type_label = prompts.NOTIFICATION_TYPE_LABELS.get(notification.type, prompts.NOTIFICATION_TYPE_LABELS["info"])
    block = f"\n━━━ {type_label} [{format_date(notification.created_at)}] {notification.title} ━━━\n"
    block += f"{notification.content}\n"

    for attachment in notification.attachments:
        text = attachment.text_content
        if not text:
            block += f"📎 添付ファイル: {attachment.filename}\n"
        elif _attachment_is_relevant(notification, attachment.filename, query):
            block += f"\n【添付: {attachment.filename}】\n{text[:MAX_ATTACHMENT_LENGTH]}\n"
            if len(text) > MAX_ATTACHMENT_LENGTH:
                block += "...(省略)\n"
        else:
            block += f"📎 添付ファイル: {attachment.filename}（詳細は「{attachment.filename}について教えて」と聞いてください）\n"

    if notification.links:
        block += f"🔗 参考リンク: {', '.join(link.title for link in notification.links)}\n"
    return block


def build_notifications_context(notifications: list[Notification], query: str) -> str:
    """
    Newest-first notification digest, capped at MAX_CONTEXT_LENGTH characters.
    Attachment text is only inlined when it looks relevant to the query.
    """
    if not notifications:
        return prompts.NO_NOTIFICATIONS

    query = query.lower()
    context = prompts.NOTIFICATIONS_HEADING + "\n"
    total = 0
    for notification in notifications:
        block = _format_notification(notification, query)
        if total + len(block) > MAX_CONTEXT_LENGTH:
            context += prompts.NOTIFICATIONS_TRUNCATED
            break
        context += block
        total += len(block)
    return context


def _marker_matches(marker: MapMarker, query: str) -> bool:
    for value in (marker.title, marker.building, marker.category):
        if value and (query in value.lower() or value.lower() in query):
            return True
    return bool(marker.description and query in marker.description.lower())


def build_map_context(markers: list[MapMarker], query: str) -> tuple[str, list[MapMarker]]:
    """
    Returns (context, matched markers). Up to MAX_DETAILED_MARKERS matches get
    full directions; a general location question gets the facility list.
    """
    if not markers:
        return "", []

    lowered = query.lower()
    matched = [marker for marker in markers if _marker_matches(marker, lowered)]

    if 0 < len(matched) <= MAX_DETAILED_MARKERS:
        context = prompts.LOCATION_HEADING + "\n"
        for marker in matched:
            context += f"📍 {marker.title}\n"
            if marker.building:
                context += f"  建物: {marker.building}\n"
            if marker.floor:
                context += f"  階数: {marker.floor}\n"
            if marker.description:
                context += f"  説明: {marker.description}\n"
            if marker.directions:
                context += f"  🚶行き方: {marker.directions}\n"
            if marker.nearby_info:
                context += f"  目印: {marker.nearby_info}\n"
            context += "\n"
        return context, matched

    if mentions_any(query, prompts.GENERAL_LOCATION_KEYWORDS):
        context = prompts.FACILITIES_HEADING + "\n"
        for marker in markers[:MAX_FACILITIES]:
            context += f"- {marker.title}"
            if marker.building:
                context += f" ({marker.building})"
            context += "\n"
        context += "\n" + prompts.FACILITIES_HINT + "\n"
        return context, []

    return "", []


def describe_created(record: Union[Task, Event]) -> str:
    """One-line note telling the assistant what the chat just created."""
    if isinstance(record, Task):
        due = format_date(record.due_date) if record.due_date else prompts.NO_DUE_DATE
        priority = prompts.PRIORITY_LABELS[record.priority.value]
        line = f"課題「{record.title}」を追加しました（期限: {due}, 優先度: {priority}）"
    else:
        time = prompts.ALL_DAY if record.all_day else format_time(record.start_date)
        line = f"予定「{record.title}」をカレンダーに追加しました（{format_date(record.start_date)} {time}）"
    return f"{prompts.CREATED_HEADING}\n{line}\n"


def compose_query(context: str, message: str) -> str:
    if not context:
        return message
    return prompts.QUERY_WITH_CONTEXT.format(context=context, message=message)
