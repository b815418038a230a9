"""Prompt builders for the AI helpers."""

from __future__ import annotations

from typing import Optional

PARSE_TASK_SYSTEM = (
    "You turn messy task notes into clean task records. Titles are short "
    "(2-5 words), typo-free and without filler. Input may be English, Turkish "
    "or a mix of both. Answer with JSON only."
)

SUBTASKS_SYSTEM = (
    "You break tasks into practical subtasks. When the user lists their own "
    "subtask ideas, keep every one of them and phrase it so its link to the "
    "main task is clear. Answer with a JSON array of strings only."
)

PHOTO_SYSTEM = ""


def parse_task_prompt(text: str, ctx: dict) -> str:
    return f"""Current date: {ctx['date']}
Current day: {ctx['day_of_week']} ({ctx['day_of_week_tr']})
Current time: {ctx['time']}

User input: "{text}"

Parse this task and return JSON shaped like:
{{"title": "...", "description": null, "dueDate": "YYYY-MM-DD or null", "time": "HH:MM or null",
 "tags": ["school" | "work" | "home"], "priority": "low" | "medium" | "high" | null}}

- Resolve relative dates ("tomorrow", "yarın", "next Thursday", "haftaya perşembe") against the current date.
- priority is high for urgent/asap/acil/önemli, medium for tasks with a deadline, otherwise low.
"""


def subtasks_prompt(title: str, description: Optional[str], user_input: Optional[str]) -> str:
    parts = [f'Task: "{title}"']
    if description:
        parts.append(f"Description: {description}")
    ideas = (user_input or "").strip()
    if ideas:
        parts.append(f'User\'s subtask ideas: "{ideas}"')
        parts.append("Include every idea above, then add 2-4 complementary subtasks. Do not repeat items.")
    else:
        parts.append("Suggest 5-7 specific, actionable subtasks.")
    parts.append("Order them logically and keep each title short. Return only a JSON array of strings.")
    return "\n".join(parts)


def photo_prompt(ctx: dict) -> str:
    return f"""Extract every task from this photo of a to-do list, note or whiteboard.

Current date: {ctx['date']}
Current day: {ctx['day_of_week']}
Current time: {ctx['time']}

Return JSON shaped like:
{{"tasks": [{{"title": "...", "description": "...", "location": "...", "time": "...",
  "due_date": "YYYY-MM-DD", "type": "main", "priority": "low|medium|high",
  "suggested_tags": ["..."], "subtasks": [{{"title": "...", "notes": "..."}}]}}]}}

Indented or numbered sub-items are subtasks of the item above them. Resolve
relative dates against the current date. Return {{"tasks": []}} when nothing is found.
"""
