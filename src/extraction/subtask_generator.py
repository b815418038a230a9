import logging
import re
from typing import List, Optional

from llm.llm_client import LLMClient, extract_json_array
from llm.prompts import SUBTASKS_SYSTEM, subtasks_prompt
from taskspace.errors import InvalidRequestError, TaskspaceError

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 7

_BULLET = re.compile(r"^[-•\d]")
_BULLET_PREFIX = re.compile(r"^[-•\d.\s]+")


def suggestions_from_lines(text: str) -> List[str]:
    """Bulleted or numbered lines of a non-JSON answer."""
    out = []
    for line in (text or "").splitlines():
        line = line.strip()
        if line and _BULLET.match(line):
            cleaned = _BULLET_PREFIX.sub("", line).strip()
            if cleaned:
                out.append(cleaned)
    return out


class SubtaskGenerator:
    def __init__(self, llm_client: LLMClient):
        self.llm_client = llm_client

    def generate_subtasks(
        self, title: str, description: Optional[str] = None, user_input: Optional[str] = None
    ) -> List[str]:
        if not title or not title.strip():
            raise InvalidRequestError("taskTitle is required")

        raw = self.llm_client.complete(
            system=SUBTASKS_SYSTEM,
            user=subtasks_prompt(title.strip(), description, user_input),
            temperature=0.7,
            max_tokens=500,
        )

        items = extract_json_array(raw)
        if items is None:
            items = suggestions_from_lines(raw)
            if not items:
                raise TaskspaceError("Could not parse suggestions from response", status_code=500)

        cleaned = [str(s).strip() for s in items if s is not None]
        cleaned = [s for s in cleaned if s][:MAX_SUGGESTIONS]
        if not cleaned:
            raise TaskspaceError("Could not parse suggestions from response", status_code=500)
        logger.info(f"Generated {len(cleaned)} subtask suggestions for '{title.strip()}'")
        return cleaned
