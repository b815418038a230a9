from __future__ import annotations
import json
from typing import List, Optional

from .base import ImageInput, LLMProvider


class MockProvider(LLMProvider):
    def generate(
        self,
        *,
        system: str,
        user: str,
        images: Optional[List[ImageInput]] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """
        Returns canned responses chosen from the prompt content.
        """
        if images:
            return json.dumps({
                "tasks": [
                    {
                        "title": "Buy groceries",
                        "description": "Items for dinner",
                        "location": "Market",
                        "time": "18:00",
                        "type": "main",
                        "subtasks": [{"title": "Milk"}, {"title": "Bread"}],
                        "suggested_tags": ["home"],
                        "priority": "medium",
                    }
                ]
            })

        if "JSON array" in user:
            return json.dumps([
                "Outline the steps",
                "Gather materials",
                "Do the first step",
                "Review the result",
            ])

        if "User input:" in user:
            title = user.split('User input: "', 1)[-1].split('"', 1)[0]
            return json.dumps({
                "title": title.strip().capitalize() or "Untitled",
                "dueDate": None,
                "time": None,
                "tags": [],
                "priority": "low",
            })

        # Default fallback
        return "{}"
