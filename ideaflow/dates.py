"""
Date helpers for relative-date interpretation.

The LLM resolves the user's wording, but the reference dates it should map
common phrases to are computed here so that they do not depend on the model's
calendar arithmetic.
"""
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, Optional

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


def weekday_name(day: date) -> str:
    # Locale-independent, unlike strftime("%A")
    return WEEKDAYS[day.weekday()]


def upcoming_weekday(today: date, weekday: int) -> date:
    """The next date falling on `weekday` (Monday=0), today included."""
    return today + timedelta(days=(weekday - today.weekday()) % 7)


def next_week_start(today: date) -> date:
    """Monday of the following week. Always strictly after today."""
    return today + timedelta(days=7 - today.weekday())


def date_hints(today: date) -> Dict[str, Optional[str]]:
    """Reference mapping from common timing phrases to YYYY-MM-DD (None = leave unscheduled)."""
    return {
        "today": today.isoformat(),
        "start today": today.isoformat(),
        "tomorrow": (today + timedelta(days=1)).isoformat(),
        "by Friday": upcoming_weekday(today, 4).isoformat(),
        "this Saturday": upcoming_weekday(today, 5).isoformat(),
        "this Sunday": upcoming_weekday(today, 6).isoformat(),
        "this weekend": upcoming_weekday(today, 5).isoformat(),
        "next week": next_week_start(today).isoformat(),
        "no rush": None,
        "whenever": None,
    }


def due_date_to_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Convert a YYYY-MM-DD suggestion to midnight UTC, or None."""
    if not value:
        return None
    return datetime.combine(date.fromisoformat(value), time.min, tzinfo=timezone.utc)


def start_of_tomorrow(now: datetime) -> datetime:
    return datetime.combine(now.date() + timedelta(days=1), time.min, tzinfo=now.tzinfo or timezone.utc)
