# Text sent to the AI service alongside the user's message.
# Context sections are Japanese because the assistant answers in Japanese.

QUERY_WITH_CONTEXT = """以下は参考情報です：
{context}

ユーザーの質問: {message}"""

FALLBACK_ANSWER = "AIアシスタントに接続できませんでした。(エラー: {reason})"
NO_ANSWER = "No response"

TASKS_HEADING = "【今後の課題（{label}）】"
EVENTS_HEADING = "【今後の予定（{label}）】"
NOTIFICATIONS_HEADING = "【お知らせ一覧】"
NO_NOTIFICATIONS = "お知らせはありません。"
NOTIFICATIONS_TRUNCATED = "\n...(他のお知らせは省略されました)\n"
LOCATION_HEADING = "【場所情報】"
FACILITIES_HEADING = "【学内施設一覧】"
FACILITIES_HINT = "※ 詳しい行き方を知りたい場合は、具体的な場所名を教えてください。"
CREATED_HEADING = "【登録結果】"

NO_DUE_DATE = "期限なし"
ALL_DAY = "終日"

PRIORITY_LABELS = {
    "HIGH": "🔴高",
    "MEDIUM": "🟡中",
    "LOW": "🟢低",
}

NOTIFICATION_TYPE_LABELS = {
    "error": "🚨緊急",
    "warning": "⚠️警告",
    "success": "✅完了",
    "info": "ℹ️情報",
}

# Keyword gates deciding which context sections a message gets
SCHEDULE_KEYWORDS = (
    "予定", "課題", "タスク", "スケジュール", "今日", "明日", "今週", "来週",
    "今月", "来月", "やること", "締め切り", "期限",
)
NOTIFICATION_KEYWORDS = ("お知らせ", "通知", "ニュース", "連絡", "告知", "情報", "奨学", "pdf", "書類", "添付")
# Attachment text is included for these even when the title doesn't match
ATTACHMENT_KEYWORDS = ("奨学", "pdf", "添付", "書類")
LOCATION_KEYWORDS = (
    "どこ", "場所", "行き方", "行きたい", "マップ", "地図", "施設", "教室",
    "棟", "建物", "館", "案内", "への",
)
# Subset that asks about locations in general, answered with a facility list
GENERAL_LOCATION_KEYWORDS = ("場所", "施設", "どこ", "行き方", "行きたい", "マップ", "地図", "案内")
