from datetime import date, datetime, timezone

from ideaflow.dates import (
    date_hints,
    due_date_to_timestamp,
    next_week_start,
    start_of_tomorrow,
    upcoming_weekday,
    weekday_name,
)
from ideaflow.prompts import build_date_confirmation_prompt, build_decomposition_prompt

WEDNESDAY = date(2026, 10, 21)
SUNDAY = date(2026, 10, 25)


def test_weekday_name():
    assert weekday_name(WEDNESDAY) == "Wednesday"
    assert weekday_name(SUNDAY) == "Sunday"


def test_upcoming_weekday():
    assert upcoming_weekday(WEDNESDAY, 6) == SUNDAY
    assert upcoming_weekday(WEDNESDAY, 4) == date(2026, 10, 23)
    # Same weekday means today
    assert upcoming_weekday(SUNDAY, 6) == SUNDAY
    # Monday already passed this week
    assert upcoming_weekday(WEDNESDAY, 0) == date(2026, 10, 26)


def test_next_week_start_is_following_monday():
    assert next_week_start(WEDNESDAY) == date(2026, 10, 26)
    assert next_week_start(date(2026, 10, 26)) == date(2026, 11, 2)
    assert next_week_start(SUNDAY) == date(2026, 10, 26)


def test_date_hints():
    hints = date_hints(WEDNESDAY)
    assert hints["today"] == "2026-10-21"
    assert hints["tomorrow"] == "2026-10-22"
    assert hints["this Saturday"] == "2026-10-24"
    assert hints["this Sunday"] == "2026-10-25"
    assert hints["next week"] == "2026-10-26"
    assert hints["no rush"] is None


def test_hints_cross_month_boundary():
    hints = date_hints(date(2026, 12, 31))
    assert hints["tomorrow"] == "2027-01-01"


def test_due_date_to_timestamp():
    assert due_date_to_timestamp("2026-10-25") == datetime(2026, 10, 25, tzinfo=timezone.utc)
    assert due_date_to_timestamp(None) is None


def test_start_of_tomorrow():
    now = datetime(2026, 10, 21, 23, 59, tzinfo=timezone.utc)
    assert start_of_tomorrow(now) == datetime(2026, 10, 22, tzinfo=timezone.utc)


def test_decomposition_prompt_lists_vocabularies():
    prompt = build_decomposition_prompt(WEDNESDAY)
    assert "2026-10-21 (Wednesday)" in prompt
    assert "high | medium | low" in prompt
    assert "15m | 30m | 1h | 2h | 4h | 1d" in prompt


def test_date_confirmation_prompt_is_distinct():
    prompt = build_date_confirmation_prompt(WEDNESDAY)
    assert prompt != build_decomposition_prompt(WEDNESDAY)
    assert '"tomorrow" → 2026-10-22' in prompt
    assert '"no rush" → null (leave unscheduled)' in prompt
    assert '"needs_user_input": false' in prompt
