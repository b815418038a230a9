from __future__ import annotations
import os
from typing import List, Optional

import httpx

from taskspace.errors import UpstreamError
from .base import ImageInput, LLMProvider
from .openai_provider import upstream_error


class OllamaProvider(LLMProvider):
    def __init__(self):
        self.model = os.getenv("OLLAMA_MODEL", "llama3.1").strip()
        self.base_url = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434").strip()

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
        url = f"{self.base_url}/api/chat"
        user_message = {"role": "user", "content": user}
        if images:
            # Ollama takes raw base64 without the data: prefix
            user_message["images"] = [img.data_base64 for img in images]

        options = {"temperature": 0.2 if temperature is None else temperature}
        if max_tokens is not None:
            options["num_predict"] = max_tokens

        payload = {
            "model": model or self.model,
            "stream": False,
            "messages": [
                {"role": "system", "content": system},
                user_message,
            ],
            "options": options,
        }

        with httpx.Client(timeout=60.0) as client:
            r = client.post(url, json=payload)
            if r.is_error:
                raise upstream_error(r, service="Ollama")
            data = r.json()

        content = (data.get("message") or {}).get("content")
        if not content:
            raise UpstreamError("No response from Ollama", status_code=500)
        return content
