from __future__ import annotations
import logging
import os
from typing import List, Optional

import httpx

from taskspace.errors import NotConfiguredError, UpstreamError
from .base import ImageInput, LLMProvider

logger = logging.getLogger(__name__)


def upstream_error(r: httpx.Response, service: str = "OpenAI") -> UpstreamError:
    """Turn an error response into an UpstreamError carrying its status."""
    try:
        message = (r.json().get("error") or {}).get("message")
    except (ValueError, AttributeError):
        message = None
    return UpstreamError(
        message or f"{service} API error: {r.reason_phrase}",
        status_code=r.status_code,
        details=r.text[:500],
    )


class OpenAIProvider(LLMProvider):
    def __init__(self):
        self.api_key = os.getenv("OPENAI_API_KEY", "").strip()
        self.model = os.getenv("OPENAI_MODEL", "gpt-4").strip()
        self.vision_model = os.getenv("OPENAI_VISION_MODEL", "gpt-4o").strip()
        self.base_url = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1").strip()

        if not self.api_key:
            raise NotConfiguredError("OpenAI API key is not configured")

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
        url = f"{self.base_url}/chat/completions"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        if images:
            content = [{"type": "text", "text": user}] + [
                {"type": "image_url", "image_url": {"url": img.data_url}} for img in images
            ]
        else:
            content = user

        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": content})

        payload = {
            "model": model or (self.vision_model if images else self.model),
            "messages": messages,
            "temperature": 0.2 if temperature is None else temperature,
        }
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens

        with httpx.Client(timeout=60.0 if images else 30.0) as client:
            r = client.post(url, headers=headers, json=payload)
            if r.is_error:
                logger.error(f"OpenAI returned {r.status_code}")
                raise upstream_error(r)
            data = r.json()

        content = (data.get("choices") or [{}])[0].get("message", {}).get("content")
        if not content:
            raise UpstreamError("No response from OpenAI", status_code=500)
        return content
