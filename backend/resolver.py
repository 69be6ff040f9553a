"""
Date-range and creation-intent resolution for chat messages.

Both entry points are pure functions of (query, now). Nothing here reads the
clock: callers pass `now` so results are reproducible.

Recognised phrases are kept in ordered rule tables. Order is priority:
a message like "来月の3月の予定" resolves through the "来月" rule because it
comes first.
"""
import calendar
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Union

from models import CreationIntent, DateRange, IntentKind, Priority


@dataclass(frozen=True)
class Keywords:
    """Matches when any of the words occurs in the text. Yields no values."""
    words: tuple[str, ...]

    def search(self, text: str) -> Optional[tuple]:
        if any(word in text for word in self.words):
            return ()
        return None

    def strip(self, text: str) -> str:
        # Longest first so "明後日" is removed before a shorter overlap could be
        for word in sorted(self.words, key=len, reverse=True):
            text = text.replace(word, " ")
        return text


@dataclass(frozen=True)
class Numbers:
    """Matches a pattern and yields its groups as ints."""
    pattern: re.Pattern

    def search(self, text: str) -> Optional[tuple]:
        match = self.pattern.search(text)
        if not match:
            return None
        return tuple(int(group) for group in match.groups())

    def strip(self, text: str) -> str:
        return self.pattern.sub(" ", text)


Matcher = Union[Keywords, Numbers]


# Date helpers

def start_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=23, minute=59, second=59, microsecond=0)


def add_months(dt: datetime, months: int) -> datetime:
    """Shift by calendar months, clamping the day to the target month's length."""
    index = dt.month - 1 + months
    year = dt.year + index // 12
    month = index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def sunday_weekday(dt: datetime) -> int:
    """Weekday with Sunday=0 .. Saturday=6."""
    return (dt.weekday() + 1) % 7


def days_until_next_monday(dt: datetime) -> int:
    days = (8 - sunday_weekday(dt)) % 7
    return days or 7


def _end_of_month(year: int, month: int) -> datetime:
    return datetime(year, month, calendar.monthrange(year, month)[1], 23, 59, 59)


# Date range rules

def _next_year(_groups, today: datetime) -> DateRange:
    year = today.year + 1
    return DateRange(start=datetime(year, 1, 1), end=_end_of_month(year, 12), label="来年")


def _this_year(_groups, today: datetime) -> DateRange:
    return DateRange(start=today, end=_end_of_month(today.year, 12), label="今年")


def _months_later(groups, today: datetime) -> DateRange:
    months = groups[0]
    return DateRange(
        start=today,
        end=end_of_day(add_months(today, months)),
        label=f"{months}ヶ月以内",
    )


def _next_month(_groups, today: datetime) -> DateRange:
    first = add_months(today.replace(day=1), 1)
    return DateRange(start=first, end=_end_of_month(first.year, first.month), label="来月")


def _this_month(_groups, today: datetime) -> DateRange:
    return DateRange(start=today, end=_end_of_month(today.year, today.month), label="今月")


def _next_week(_groups, today: datetime) -> DateRange:
    monday = today + timedelta(days=days_until_next_monday(today))
    return DateRange(start=monday, end=end_of_day(monday + timedelta(days=6)), label="来週")


def _this_week(_groups, today: datetime) -> DateRange:
    sunday = today + timedelta(days=7 - sunday_weekday(today))
    return DateRange(start=today, end=end_of_day(sunday), label="今週")


def _tomorrow(_groups, today: datetime) -> DateRange:
    tomorrow = today + timedelta(days=1)
    return DateRange(start=tomorrow, end=end_of_day(tomorrow), label="明日")


def _today(_groups, today: datetime) -> DateRange:
    return DateRange(start=today, end=end_of_day(today), label="今日")


def _named_month(groups, today: datetime) -> Optional[DateRange]:
    month = groups[0]
    if not 1 <= month <= 12:
        return None
    # A month that has already passed this year means next year's
    year = today.year + 1 if month < today.month else today.year
    return DateRange(start=datetime(year, month, 1), end=_end_of_month(year, month), label=f"{month}月")


def _default_range(today: datetime) -> DateRange:
    return DateRange(start=today, end=end_of_day(add_months(today, 1)), label="今後1ヶ月")


RangeBuilder = Callable[[tuple, datetime], Optional[DateRange]]

MONTHS_LATER = Numbers(re.compile(r"(\d+)\s*[ヶかカケヵ箇]\s*月\s*後"))
NAMED_MONTH = Numbers(re.compile(r"(?<!\d)(\d{1,2})月"))

DATE_RANGE_RULES: list[tuple[str, Matcher, RangeBuilder]] = [
    ("next_year", Keywords(("来年",)), _next_year),
    ("this_year", Keywords(("今年", "本年")), _this_year),
    ("months_later", MONTHS_LATER, _months_later),
    ("next_month", Keywords(("来月",)), _next_month),
    ("this_month", Keywords(("今月",)), _this_month),
    ("next_week", Keywords(("来週",)), _next_week),
    ("this_week", Keywords(("今週",)), _this_week),
    ("tomorrow", Keywords(("明日",)), _tomorrow),
    ("today", Keywords(("今日", "本日")), _today),
    ("month", NAMED_MONTH, _named_month),
]


def resolve_date_range(query: str, now: datetime) -> DateRange:
    """
    Work out which period a chat message is asking about.
    Rules are tried in DATE_RANGE_RULES order; the first one that matches and
    yields a range wins. Falls back to the coming month.
    """
    today = start_of_day(now)
    for _tag, matcher, build in DATE_RANGE_RULES:
        try:
            groups = matcher.search(query)
            date_range = None if groups is None else build(groups, today)
        except (ValueError, OverflowError):
            # Numbers too long for int or too large for datetime: treat as no match
            date_range = None
        if date_range is not None:
            return date_range
    return _default_range(today)


# Creation intent

ADD_MARKERS = Keywords((
    "追加", "登録", "入れて", "いれて", "入れといて", "作成", "作って",
    "つくって", "設定", "予約", "加えて", "セット",
))
TASK_NOUNS = Keywords(("課題", "タスク", "宿題", "レポート", "提出"))
EVENT_NOUNS = Keywords(("予定", "イベント", "スケジュール", "カレンダー", "会議", "ミーティング", "授業"))
HIGH_PRIORITY = Keywords(("重要", "緊急", "至急", "急ぎ", "優先度高", "優先度が高", "高優先"))
LOW_PRIORITY = Keywords(("優先度低", "優先度が低", "低優先", "ゆっくり", "余裕", "いつでも"))
POLITE_SUFFIXES = Keywords((
    "してください", "してくれる", "してくれ", "しておいて", "しといて", "して",
    "お願いします", "お願い", "ください", "よろしく",
))

DEFAULT_TITLES = {
    IntentKind.TASK: "新しい課題",
    IntentKind.EVENT: "新しい予定",
}

MONTH_DAY = Numbers(re.compile(r"(?<!\d)(\d{1,2})月(\d{1,2})日"))
DAYS_LATER = Numbers(re.compile(r"(\d+)日後"))
TIME_OF_DAY = re.compile(r"(午前|午後)?(\d{1,2})時(?!間)(?:(\d{1,2})分|(半))?")
QUOTED_TITLE = re.compile(r"[「『]([^」』]*)[」』]")
TITLE_BEFORE_NOUN = re.compile(
    r"([^\s、。,をにはがでと]+?)(?:の|という|って)(?:%s)"
    % "|".join(re.escape(word) for word in TASK_NOUNS.words + EVENT_NOUNS.words)
)
EDGE_PARTICLES = re.compile(r"^(?:[\sをにのではがとへも、。,.!！?？]|まで)+|(?:[\sをにのではがとへも、。,.!！?？]|まで)+$")

DEFAULT_HOUR = 9


def _at_default_hour(dt: datetime) -> datetime:
    return dt.replace(hour=DEFAULT_HOUR, minute=0, second=0, microsecond=0)


def _explicit_date(groups, now: datetime) -> Optional[datetime]:
    month, day = groups
    try:
        target = datetime(now.year, month, day, DEFAULT_HOUR, 0)
    except ValueError:
        return None
    if target < now:
        target = target.replace(year=now.year + 1)
    return target


def _day_after(days: int):
    def build(_groups, now: datetime) -> datetime:
        return _at_default_hour(now + timedelta(days=days))
    return build


def _next_monday(_groups, now: datetime) -> datetime:
    return _at_default_hour(now + timedelta(days=days_until_next_monday(now)))


def _days_later(groups, now: datetime) -> datetime:
    return _at_default_hour(now + timedelta(days=groups[0]))


@dataclass(frozen=True)
class DateRule:
    tag: str
    matcher: Matcher
    build: Callable[[tuple, datetime], Optional[datetime]]
    only_if_unset: bool = False


# Every rule runs and a later match replaces an earlier one; only "this_week"
# is skipped once a date is already known.
TARGET_DATE_RULES: list[DateRule] = [
    DateRule("month_day", MONTH_DAY, _explicit_date),
    DateRule("tomorrow", Keywords(("明日",)), _day_after(1)),
    DateRule("day_after_tomorrow", Keywords(("明後日", "あさって")), _day_after(2)),
    DateRule("next_week", Keywords(("来週",)), _next_monday),
    DateRule("this_week", Keywords(("今週",)), _day_after(3), only_if_unset=True),
    DateRule("days_later", DAYS_LATER, _days_later),
]

DATE_AND_PRIORITY_NOISE: list[Union[Matcher, re.Pattern]] = [
    MONTH_DAY,
    DAYS_LATER,
    MONTHS_LATER,
    TIME_OF_DAY,
    Keywords(("明後日", "あさって", "明日", "今日", "本日", "今週", "来週", "今月", "来月", "今年", "来年")),
    HIGH_PRIORITY,
    LOW_PRIORITY,
]

# Everything removed from a message before what remains is used as a title
TITLE_NOISE = DATE_AND_PRIORITY_NOISE + [
    TASK_NOUNS,
    EVENT_NOUNS,
    ADD_MARKERS,
    POLITE_SUFFIXES,
]


def _resolve_target_date(query: str, now: datetime) -> Optional[datetime]:
    target = None
    for rule in TARGET_DATE_RULES:
        if rule.only_if_unset and target is not None:
            continue
        try:
            groups = rule.matcher.search(query)
            candidate = None if groups is None else rule.build(groups, now)
        except (ValueError, OverflowError):
            candidate = None
        if candidate is not None:
            target = candidate
    return target


def match_time_of_day(query: str) -> Optional[tuple[int, int]]:
    """Return (hour, minute) for the first "H時M分" style expression, if valid."""
    match = TIME_OF_DAY.search(query)
    if not match:
        return None
    meridiem, hour, minute, half = match.groups()
    hour = int(hour)
    minute = 30 if half else int(minute or 0)
    if meridiem == "午後" and hour < 12:
        hour += 12
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        return None
    return hour, minute


def _resolve_priority(query: str) -> Priority:
    if HIGH_PRIORITY.search(query) is not None:
        return Priority.HIGH
    if LOW_PRIORITY.search(query) is not None:
        return Priority.LOW
    return Priority.MEDIUM


def _clean(text: str) -> str:
    text = " ".join(text.split())
    return EDGE_PARTICLES.sub("", text)


def _strip_noise(text: str, matchers: list) -> str:
    for matcher in matchers:
        if isinstance(matcher, re.Pattern):
            text = matcher.sub(" ", text)
        else:
            text = matcher.strip(text)
    return _clean(text)


def _extract_title(query: str, kind: IntentKind) -> str:
    quoted = QUOTED_TITLE.search(query)
    if quoted:
        title = quoted.group(1)
    else:
        title = ""
        before_noun = TITLE_BEFORE_NOUN.search(query)
        if before_noun:
            title = _strip_noise(before_noun.group(1), DATE_AND_PRIORITY_NOISE)
        if len(title.strip()) < 2:
            title = _strip_noise(query, TITLE_NOISE)

    if len(title.strip()) < 2:
        return DEFAULT_TITLES[kind]
    return title


def parse_creation_intent(query: str, now: datetime) -> Optional[CreationIntent]:
    """
    Detect an implicit "add this task/event" request in a chat message.

    Returns None when the message has no add/register wording or names
    neither a task nor an event. An event intent may come back without a
    target_date; callers must not create such an event.
    """
    if ADD_MARKERS.search(query) is None:
        return None

    if TASK_NOUNS.search(query) is not None:
        kind = IntentKind.TASK
    elif EVENT_NOUNS.search(query) is not None:
        kind = IntentKind.EVENT
    else:
        return None

    target_date = _resolve_target_date(query, now)
    time_of_day = match_time_of_day(query)
    if time_of_day and target_date is not None:
        hour, minute = time_of_day
        target_date = target_date.replace(hour=hour, minute=minute)

    return CreationIntent(
        kind=kind,
        title=_extract_title(query, kind),
        target_date=target_date,
        priority=_resolve_priority(query) if kind is IntentKind.TASK else None,
        all_day=time_of_day is None,
    )
