"""
Relative date and time helpers for task parsing.

Understands English and Turkish expressions: today/bugün, tomorrow/yarın,
yesterday/dün, next <weekday>/haftaya <gün>, next week/gelecek hafta,
"in N days"/"N gün sonra".
"""

from __future__ import annotations

import os
import re
from datetime import date, datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

APP_TIMEZONE = os.getenv("APP_TIMEZONE", "UTC")

DAYS_EN = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
DAYS_TR = ["Pazartesi", "Salı", "Çarşamba", "Perşembe", "Cuma", "Cumartesi", "Pazar"]

WEEKDAYS = {name.lower(): i for i, name in enumerate(DAYS_EN)}
WEEKDAYS.update({name.lower(): i for i, name in enumerate(DAYS_TR)})

_NEXT_DAY = re.compile(r"^(next|haftaya)\s+(\w+)$", re.IGNORECASE)
_IN_DAYS = re.compile(r"(\d+)\s*(days?|gün|gun)", re.IGNORECASE)
_TIME = re.compile(r"(\d{1,2}):(\d{2})")

# Words that hint the input carries a date even when parsing failed
RELATIVE_HINT = re.compile(r"(tomorrow|yarın|next|haftaya)", re.IGNORECASE)


def app_tz() -> ZoneInfo:
    return ZoneInfo(APP_TIMEZONE)


def now_local() -> datetime:
    return datetime.now(app_tz())


def current_date_context(now: Optional[datetime] = None) -> dict:
    now = now or now_local()
    return {
        "date": now.strftime("%Y-%m-%d"),
        "time": now.strftime("%H:%M"),
        "day_of_week": DAYS_EN[now.weekday()],
        "day_of_week_tr": DAYS_TR[now.weekday()],
        "iso": now.isoformat(),
    }


def parse_relative_date(expression: str, reference: Optional[date] = None) -> Optional[date]:
    expr = (expression or "").strip().lower()
    today = reference or now_local().date()

    if expr in ("today", "bugün"):
        return today
    if expr in ("tomorrow", "yarın"):
        return today + timedelta(days=1)
    if expr in ("yesterday", "dün"):
        return today - timedelta(days=1)
    if expr in ("next week today", "haftaya bugün"):
        return today + timedelta(weeks=1)

    m = _NEXT_DAY.match(expr)
    if m and m.group(2) in WEEKDAYS:
        # Strictly after today: "next monday" on a Monday is a week away
        ahead = (WEEKDAYS[m.group(2)] - today.weekday()) % 7 or 7
        return today + timedelta(days=ahead)

    m = _IN_DAYS.search(expr)
    if m:
        return today + timedelta(days=int(m.group(1)))

    if expr in ("next week", "gelecek hafta"):
        return today + timedelta(weeks=1)

    return None


def parse_date(value: Optional[str], reference: Optional[date] = None) -> Optional[date]:
    """ISO date (YYYY-MM-DD or a full timestamp) or a relative expression."""
    if not value:
        return None
    value = str(value).strip()
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return parse_relative_date(value, reference)


def parse_time(value: Optional[str]) -> Optional[str]:
    """First HH:MM in the string, normalized to two digits each, or None."""
    if not value:
        return None
    m = _TIME.search(str(value))
    if not m:
        return None
    hours, minutes = int(m.group(1)), int(m.group(2))
    if 0 <= hours < 24 and 0 <= minutes < 60:
        return f"{hours:02d}:{minutes:02d}"
    return None


def combine_date_time(day: date, hhmm: Optional[str], tz: Optional[ZoneInfo] = None) -> datetime:
    """Deadline for a day; end of day (23:59:59.999) when there is no time."""
    tz = tz or app_tz()
    if hhmm:
        hours, minutes = (int(p) for p in hhmm.split(":"))
        return datetime.combine(day, time(hours, minutes), tzinfo=tz)
    return datetime.combine(day, time(23, 59, 59, 999000), tzinfo=tz)


def guess_date_in_text(text: str, reference: Optional[date] = None) -> Optional[date]:
    """Find a relative date expression anywhere in free text."""
    lowered = (text or "").lower()
    for phrase in ("next week today", "haftaya bugün", "gelecek hafta", "next week"):
        if phrase in lowered:
            return parse_relative_date(phrase, reference)
    for word in re.findall(r"(?:next|haftaya)\s+\w+", lowered):
        found = parse_relative_date(word, reference)
        if found:
            return found
    for word in ("tomorrow", "yarın", "today", "bugün", "yesterday", "dün"):
        if re.search(rf"(?<!\w){word}(?!\w)", lowered):
            return parse_relative_date(word, reference)
    m = re.search(r"in\s+\d+\s*days?|\d+\s*gün\s+sonra", lowered)
    if m:
        return parse_relative_date(m.group(0), reference)
    return None
