from __future__ import annotations

from datetime import datetime, timezone
from typing import List

from pydantic import BaseModel

from taskspace.models import CalendarEvent


class OverlapGroup(BaseModel):
    event_ids: List[str]
    start: str
    end: str


def _parse(value: str) -> datetime:
    # All-day events come as YYYY-MM-DD
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def detect_overlaps(events: List[CalendarEvent]) -> List[OverlapGroup]:
    """Group events whose time ranges chain into each other.

    Only groups with two or more events are returned. Touching ranges
    (one ends exactly when the next starts) do not overlap.
    """
    timed = []
    for e in events:
        try:
            timed.append((_parse(e.start), _parse(e.end), e))
        except ValueError:
            continue
    timed.sort(key=lambda item: item[0])

    groups: List[OverlapGroup] = []
    current: list = []
    group_end = None

    def _flush() -> None:
        if len(current) > 1:
            groups.append(
                OverlapGroup(
                    event_ids=[e.id for _, _, e in current],
                    start=current[0][2].start,
                    end=max(current, key=lambda item: item[1])[2].end,
                )
            )

    for start, end, event in timed:
        if current and start < group_end:
            current.append((start, end, event))
            group_end = max(group_end, end)
            continue
        _flush()
        current = [(start, end, event)]
        group_end = end
    _flush()
    return groups
