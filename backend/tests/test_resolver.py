"""
Tests for resolver.py - date ranges asked about in chat, and implicit
"add this task/event" requests.
All tests pass a fixed `now`; Wednesday 2025-01-15 14:30 unless noted.
"""
import pytest
import sys
import os
from datetime import datetime

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models import IntentKind, Priority
from resolver import (
    add_months,
    days_until_next_monday,
    match_time_of_day,
    parse_creation_intent,
    resolve_date_range,
    sunday_weekday,
)

NOW = datetime(2025, 1, 15, 14, 30, 12, 345)


class TestDateHelpers:
    """Tests for calendar arithmetic helpers."""

    def test_sunday_is_zero(self):
        assert sunday_weekday(datetime(2025, 1, 19)) == 0
        assert sunday_weekday(datetime(2025, 1, 15)) == 3
        assert sunday_weekday(datetime(2025, 1, 18)) == 6

    def test_next_monday_from_monday_is_a_week_away(self):
        assert days_until_next_monday(datetime(2025, 1, 20)) == 7

    def test_next_monday_from_sunday_is_tomorrow(self):
        assert days_until_next_monday(datetime(2025, 1, 19)) == 1

    def test_add_months_clamps_day(self):
        assert add_months(datetime(2025, 1, 31), 1) == datetime(2025, 2, 28)
        assert add_months(datetime(2024, 1, 31), 1) == datetime(2024, 2, 29)

    def test_add_months_crosses_year(self):
        assert add_months(datetime(2025, 11, 15), 3) == datetime(2026, 2, 15)


class TestResolveDateRange:
    """Tests for resolve_date_range rule order and range bounds."""

    def test_default_is_coming_month(self):
        result = resolve_date_range("予定を教えて", NOW)

        assert result.label == "今後1ヶ月"
        assert result.start == datetime(2025, 1, 15)
        assert result.end == datetime(2025, 2, 15, 23, 59, 59)

    def test_start_is_midnight(self):
        """The time of day in `now` never leaks into a range start."""
        result = resolve_date_range("今月の予定", NOW)
        assert result.start == datetime(2025, 1, 15, 0, 0, 0)

    def test_today(self):
        result = resolve_date_range("今日の予定", NOW)

        assert result.label == "今日"
        assert result.start == datetime(2025, 1, 15)
        assert result.end == datetime(2025, 1, 15, 23, 59, 59)

    def test_honjitsu_is_today(self):
        assert resolve_date_range("本日の予定", NOW).label == "今日"

    def test_tomorrow(self):
        result = resolve_date_range("明日の課題は？", NOW)

        assert result.label == "明日"
        assert result.start == datetime(2025, 1, 16)
        assert result.end == datetime(2025, 1, 16, 23, 59, 59)

    def test_this_week_ends_sunday(self):
        result = resolve_date_range("今週の予定", NOW)

        assert result.label == "今週"
        assert result.start == datetime(2025, 1, 15)
        assert result.end == datetime(2025, 1, 19, 23, 59, 59)

    def test_next_week_is_monday_to_sunday(self):
        result = resolve_date_range("来週の予定", NOW)

        assert result.label == "来週"
        assert result.start == datetime(2025, 1, 20)
        assert result.end == datetime(2025, 1, 26, 23, 59, 59)

    def test_next_week_on_a_sunday(self):
        result = resolve_date_range("来週の予定", datetime(2025, 1, 19, 10, 0))

        assert result.start == datetime(2025, 1, 20)
        assert result.end == datetime(2025, 1, 26, 23, 59, 59)

    def test_this_month(self):
        result = resolve_date_range("今月の課題", NOW)

        assert result.label == "今月"
        assert result.end == datetime(2025, 1, 31, 23, 59, 59)

    def test_next_month(self):
        result = resolve_date_range("来月の課題", NOW)

        assert result.label == "来月"
        assert result.start == datetime(2025, 2, 1)
        assert result.end == datetime(2025, 2, 28, 23, 59, 59)

    def test_next_month_in_december(self):
        result = resolve_date_range("来月の課題", datetime(2025, 12, 31, 9, 0))

        assert result.start == datetime(2026, 1, 1)
        assert result.end == datetime(2026, 1, 31, 23, 59, 59)

    def test_months_later(self):
        result = resolve_date_range("3ヶ月後までの課題", NOW)

        assert result.label == "3ヶ月以内"
        assert result.start == datetime(2025, 1, 15)
        assert result.end == datetime(2025, 4, 15, 23, 59, 59)

    @pytest.mark.parametrize("query", ["2か月後", "2カ月後", "2ケ月後", "2 ヶ 月 後"])
    def test_months_later_spellings(self, query):
        assert resolve_date_range(query, NOW).label == "2ヶ月以内"

    def test_this_year(self):
        result = resolve_date_range("今年の予定", NOW)

        assert result.label == "今年"
        assert result.start == datetime(2025, 1, 15)
        assert result.end == datetime(2025, 12, 31, 23, 59, 59)

    def test_next_year(self):
        result = resolve_date_range("来年の予定", NOW)

        assert result.label == "来年"
        assert result.start == datetime(2026, 1, 1)
        assert result.end == datetime(2026, 12, 31, 23, 59, 59)

    def test_named_month_this_year(self):
        result = resolve_date_range("3月の予定", NOW)

        assert result.label == "3月"
        assert result.start == datetime(2025, 3, 1)
        assert result.end == datetime(2025, 3, 31, 23, 59, 59)

    def test_named_month_already_passed_means_next_year(self):
        result = resolve_date_range("3月の予定", datetime(2025, 5, 10))

        assert result.start == datetime(2026, 3, 1)
        assert result.end == datetime(2026, 3, 31, 23, 59, 59)

    def test_current_named_month_stays_this_year(self):
        result = resolve_date_range("1月の予定", NOW)
        assert result.start == datetime(2025, 1, 1)

    def test_invalid_month_falls_back_to_default(self):
        result = resolve_date_range("13月の予定", NOW)
        assert result.label == "今後1ヶ月"

    def test_huge_month_count_falls_back_to_default(self):
        result = resolve_date_range("99999999ヶ月後の予定", NOW)
        assert result.label == "今後1ヶ月"

    def test_earlier_rule_wins(self):
        """"来月" is listed before the named-month rule."""
        result = resolve_date_range("来月の3月の予定", NOW)
        assert result.label == "来月"

    def test_next_year_beats_this_month(self):
        assert resolve_date_range("来年と今月", NOW).label == "来年"

    def test_overlong_month_count_falls_back_to_default(self):
        """Digit runs too long for int() are treated as no match."""
        result = resolve_date_range("9" * 5000 + "ヶ月後の予定", NOW)
        assert result.label == "今後1ヶ月"

    def test_same_input_same_output(self):
        assert resolve_date_range("来週の予定", NOW) == resolve_date_range("来週の予定", NOW)


class TestTimeOfDay:
    """Tests for match_time_of_day."""

    def test_plain_hour(self):
        assert match_time_of_day("10時に") == (10, 0)

    def test_hour_and_minute(self):
        assert match_time_of_day("10時15分") == (10, 15)

    def test_half_past(self):
        assert match_time_of_day("3時半") == (3, 30)

    def test_afternoon_adds_twelve(self):
        assert match_time_of_day("午後3時") == (15, 0)

    def test_afternoon_noon_unchanged(self):
        assert match_time_of_day("午後12時") == (12, 0)

    def test_morning(self):
        assert match_time_of_day("午前9時") == (9, 0)

    def test_duration_is_not_a_time(self):
        assert match_time_of_day("2時間かかる") is None

    def test_out_of_range_hour(self):
        assert match_time_of_day("25時") is None

    def test_out_of_range_minute(self):
        assert match_time_of_day("10時75分") is None


class TestCreationIntentDetection:
    """Tests for whether a message is an add request at all."""

    def test_question_is_not_an_add_request(self):
        assert parse_creation_intent("明日の予定は？", NOW) is None

    def test_add_without_task_or_event_noun(self):
        assert parse_creation_intent("アラームを設定して", NOW) is None

    def test_task_noun_wins_over_event_noun(self):
        intent = parse_creation_intent("課題の予定を追加して", NOW)
        assert intent.kind is IntentKind.TASK

    def test_event(self):
        intent = parse_creation_intent("会議の予定を追加して", NOW)

        assert intent.kind is IntentKind.EVENT
        assert intent.priority is None

    def test_event_without_date_has_no_target(self):
        intent = parse_creation_intent("会議の予定を追加して", NOW)

        assert intent.target_date is None
        assert intent.all_day is True


class TestCreationIntentDates:
    """Tests for target date resolution in add requests."""

    def test_tomorrow_defaults_to_nine(self):
        intent = parse_creation_intent("明日までにレポートの課題を追加して", NOW)
        assert intent.target_date == datetime(2025, 1, 16, 9, 0)

    def test_day_after_tomorrow(self):
        intent = parse_creation_intent("明後日に課題を追加", NOW)
        assert intent.target_date == datetime(2025, 1, 17, 9, 0)

    def test_asatte(self):
        intent = parse_creation_intent("あさってに課題を追加", NOW)
        assert intent.target_date == datetime(2025, 1, 17, 9, 0)

    def test_next_week_is_next_monday(self):
        intent = parse_creation_intent("来週に課題を追加", NOW)
        assert intent.target_date == datetime(2025, 1, 20, 9, 0)

    def test_this_week_is_three_days_out(self):
        intent = parse_creation_intent("今週中に課題を追加", NOW)
        assert intent.target_date == datetime(2025, 1, 18, 9, 0)

    def test_days_later(self):
        intent = parse_creation_intent("5日後に課題を追加", NOW)
        assert intent.target_date == datetime(2025, 1, 20, 9, 0)

    def test_explicit_month_day(self):
        intent = parse_creation_intent("3月5日に課題を追加", NOW)
        assert intent.target_date == datetime(2025, 3, 5, 9, 0)

    def test_explicit_date_in_the_past_rolls_to_next_year(self):
        intent = parse_creation_intent("1月10日に課題を追加", NOW)
        assert intent.target_date == datetime(2026, 1, 10, 9, 0)

    def test_impossible_date_is_ignored(self):
        intent = parse_creation_intent("2月30日に課題を追加", NOW)
        assert intent.target_date is None

    def test_later_rule_overwrites_earlier(self):
        """Both "明日" and "来週" match; the later rule in the table wins."""
        intent = parse_creation_intent("明日じゃなくて来週に課題を追加", NOW)
        assert intent.target_date == datetime(2025, 1, 20, 9, 0)

    def test_this_week_does_not_overwrite(self):
        intent = parse_creation_intent("明日か今週中に課題を追加", NOW)
        assert intent.target_date == datetime(2025, 1, 16, 9, 0)

    def test_time_sets_hour_and_minute(self):
        intent = parse_creation_intent("明日の午後3時に会議の予定を入れて", NOW)

        assert intent.kind is IntentKind.EVENT
        assert intent.target_date == datetime(2025, 1, 16, 15, 0)
        assert intent.all_day is False

    def test_half_past(self):
        intent = parse_creation_intent("明日10時半に会議の予定を追加", NOW)
        assert intent.target_date == datetime(2025, 1, 16, 10, 30)

    def test_time_without_date_has_no_target(self):
        intent = parse_creation_intent("3時に課題を追加", NOW)

        assert intent.target_date is None
        assert intent.all_day is False

    def test_no_time_is_all_day(self):
        intent = parse_creation_intent("明日に課題を追加", NOW)
        assert intent.all_day is True

    def test_same_input_same_output(self):
        query = "明日の午後3時に会議の予定を入れて"
        assert parse_creation_intent(query, NOW) == parse_creation_intent(query, NOW)


class TestCreationIntentPriority:
    """Tests for task priority keywords."""

    def test_default_medium(self):
        intent = parse_creation_intent("明日に課題を追加", NOW)
        assert intent.priority is Priority.MEDIUM

    def test_high(self):
        intent = parse_creation_intent("重要なレポート課題を追加", NOW)
        assert intent.priority is Priority.HIGH

    def test_urgent_is_high(self):
        intent = parse_creation_intent("至急、課題を追加して", NOW)
        assert intent.priority is Priority.HIGH

    def test_low(self):
        intent = parse_creation_intent("いつでもいいので読書の課題を追加", NOW)
        assert intent.priority is Priority.LOW


class TestCreationIntentTitle:
    """Tests for title extraction."""

    def test_quoted_title(self):
        intent = parse_creation_intent("「数学演習」の課題を来週追加して", NOW)
        assert intent.title == "数学演習"

    def test_double_quoted_title(self):
        intent = parse_creation_intent("『ゼミ発表』の予定を3月5日に登録", NOW)
        assert intent.title == "ゼミ発表"

    def test_word_before_noun(self):
        intent = parse_creation_intent("明日までにレポートの課題を追加して", NOW)
        assert intent.title == "レポート"

    def test_word_before_event_noun(self):
        intent = parse_creation_intent("明日の午後3時に会議の予定を入れて", NOW)
        assert intent.title == "会議"

    def test_word_before_noun_after_other_words(self):
        intent = parse_creation_intent("いつでもいいので読書の課題を追加", NOW)
        assert intent.title == "読書"

    def test_fallback_task_title(self):
        intent = parse_creation_intent("課題を追加して", NOW)
        assert intent.title == "新しい課題"

    def test_fallback_event_title(self):
        intent = parse_creation_intent("明日に予定を追加して", NOW)
        assert intent.title == "新しい予定"


class TestRangeBounds:
    """Every rule yields start <= end, whatever day `now` falls on."""

    QUERIES = [
        "来年の予定",
        "今年の予定",
        "3ヶ月後までの予定",
        "来月の予定",
        "今月の予定",
        "来週の予定",
        "今週の予定",
        "明日の予定",
        "今日の予定",
        "2月の予定",
        "予定を教えて",
    ]
    NOWS = [
        datetime(2025, 1, 31, 23, 59, 59),
        datetime(2024, 2, 29, 12, 0),
        datetime(2025, 1, 19, 8, 0),
        datetime(2025, 1, 18, 8, 0),
        datetime(2025, 12, 31, 23, 0),
        datetime(2025, 11, 30, 0, 0),
    ]

    @pytest.mark.parametrize("query", QUERIES)
    @pytest.mark.parametrize("now", NOWS)
    def test_start_not_after_end(self, query, now):
        result = resolve_date_range(query, now)
        assert result.start <= result.end

    @pytest.mark.parametrize("now", NOWS)
    def test_every_rule_has_its_own_label(self, now):
        labels = {resolve_date_range(query, now).label for query in self.QUERIES}
        assert len(labels) == len(self.QUERIES)


class TestMalformedNumbers:
    """Oversized or nonsensical numbers fall through without raising."""

    def test_overlong_days_later(self):
        intent = parse_creation_intent("課題を" + "9" * 5000 + "日後に追加して", NOW)

        assert intent.kind is IntentKind.TASK
        assert intent.target_date is None

    def test_days_later_beyond_datetime(self):
        intent = parse_creation_intent("99999999日後に課題を追加", NOW)
        assert intent.target_date is None

    def test_overlong_digits_keep_earlier_date(self):
        intent = parse_creation_intent("明日、" + "1" * 5000 + "日後に課題を追加", NOW)
        assert intent.target_date == datetime(2025, 1, 16, 9, 0)

    @pytest.mark.parametrize("query", ["0月の予定", "99月の予定", "0ヶ月後の予定", "00月00日の予定を追加"])
    def test_odd_numbers_do_not_raise(self, query):
        resolve_date_range(query, NOW)
        parse_creation_intent(query, NOW)
