import logging
import re
from datetime import datetime
from typing import List, Optional

from extraction.dates import (
    combine_date_time,
    current_date_context,
    guess_date_in_text,
    parse_date,
    parse_time,
)
from llm.llm_client import LLMClient, extract_json_object
from llm.prompts import PARSE_TASK_SYSTEM, parse_task_prompt
from llm.schemas import ParsedTask
from taskspace.errors import InvalidRequestError, UnreachableError

logger = logging.getLogger(__name__)

TAG_KEYWORDS = {
    "school": ["school", "okul", "homework", "ödev", "ders", "lesson", "exam", "sınav", "assignment"],
    "work": ["work", "iş", "meeting", "toplantı", "project", "proje", "report", "rapor", "business", "işletme"],
    "home": ["home", "ev", "shopping", "alışveriş", "house", "ev işi", "chore", "grocery", "market"],
}

PRIORITIES = {"high", "medium", "low"}


def _keyword_pattern(keyword: str) -> re.Pattern:
    # Two-letter words ("ev", "iş") only count as whole words
    if len(keyword) <= 2:
        return re.compile(rf"(?<!\w){re.escape(keyword)}(?!\w)")
    return re.compile(re.escape(keyword))


_TAG_PATTERNS = {tag: [_keyword_pattern(k) for k in words] for tag, words in TAG_KEYWORDS.items()}


def detect_tags(text: str) -> List[str]:
    lowered = (text or "").lower()
    return [tag for tag, patterns in _TAG_PATTERNS.items() if any(p.search(lowered) for p in patterns)]


def merge_tags(*groups) -> List[str]:
    out: List[str] = []
    for group in groups:
        for tag in group or []:
            if isinstance(tag, str) and tag.strip() and tag.strip().lower() not in out:
                out.append(tag.strip().lower())
    return out


class TaskParser:
    """Natural-language task input -> ParsedTask."""

    def __init__(self, llm_client: LLMClient):
        self.llm_client = llm_client

    def parse_task(self, text: str, now: Optional[datetime] = None) -> ParsedTask:
        text = (text or "").strip()
        if not text:
            raise InvalidRequestError("input is required")

        ctx = current_date_context(now)
        detected = detect_tags(text)
        today = now.date() if now else None

        try:
            raw = self.llm_client.complete(
                system=PARSE_TASK_SYSTEM,
                user=parse_task_prompt(text, ctx),
                temperature=0.3,
                max_tokens=300,
            )
        except UnreachableError as e:
            logger.warning(f"Task parsing fell back to raw input: {e}")
            return self.fallback(text, detected, today)

        data = extract_json_object(raw)
        if data is None:
            logger.warning("Task parsing got no JSON from the model, using raw input")
            return self.fallback(text, detected, today)

        title = str(data.get("title") or "").strip() or text
        description = str(data.get("description") or "").strip() or None
        priority = data.get("priority")
        priority = priority.lower() if isinstance(priority, str) and priority.lower() in PRIORITIES else None

        due = parse_date(data.get("dueDate") or data.get("due_date"), today)
        hhmm = parse_time(data.get("time"))
        deadline = combine_date_time(due, hhmm) if due else None

        return ParsedTask(
            title=title,
            description=description,
            priority=priority,
            due_date=due.isoformat() if due else None,
            time=hhmm,
            deadline=deadline,
            tags=merge_tags(detected, data.get("tags") if isinstance(data.get("tags"), list) else []),
        )

    def fallback(self, text: str, detected: List[str], today=None) -> ParsedTask:
        due = guess_date_in_text(text, today)
        return ParsedTask(
            title=text,
            due_date=due.isoformat() if due else None,
            deadline=combine_date_time(due, None) if due else None,
            tags=detected,
        )
