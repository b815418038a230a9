import json
import logging
import os
import re
from typing import Any, List, Optional

import httpx

from llm.providers.base import ImageInput, LLMProvider
from taskspace.errors import NotConfiguredError, UnreachableError

logger = logging.getLogger(__name__)

LLM_PROVIDER = os.getenv("LLM_PROVIDER", "openai").strip().lower()

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")
_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")


def build_provider(name: Optional[str] = None) -> LLMProvider:
    name = (name or LLM_PROVIDER).strip().lower()
    if name == "openai":
        from llm.providers.openai_provider import OpenAIProvider

        return OpenAIProvider()
    if name == "ollama":
        from llm.providers.ollama_provider import OllamaProvider

        return OllamaProvider()
    if name == "mock":
        from llm.providers.mock_provider import MockProvider

        return MockProvider()
    raise NotConfiguredError(f"Unknown LLM_PROVIDER: {name}")


def extract_json_object(text: str) -> Optional[dict]:
    """Pull the outermost {...} out of a model answer (code fences, chatter around it)."""
    match = _JSON_OBJECT.search(text or "")
    try:
        value = json.loads(match.group(0) if match else text)
    except (TypeError, ValueError):
        return None
    return value if isinstance(value, dict) else None


def extract_json_array(text: str) -> Optional[list]:
    match = _JSON_ARRAY.search(text or "")
    try:
        value = json.loads(match.group(0) if match else text)
    except (TypeError, ValueError):
        return None
    return value if isinstance(value, list) else None


class LLMClient:
    """Thin wrapper over a provider: one place for transport errors and JSON salvage."""

    def __init__(self, provider: Optional[LLMProvider] = None):
        self.provider = provider if provider is not None else build_provider()

    def complete(
        self,
        *,
        system: str,
        user: str,
        images: Optional[List[ImageInput]] = None,
        **options: Any,
    ) -> str:
        try:
            if images:
                return self.provider.generate(system=system, user=user, images=images, **options)
            return self.provider.generate(system=system, user=user, **options)
        except httpx.TransportError as e:
            logger.error(f"LLM transport error: {e}")
            raise UnreachableError("AI service unreachable", details=str(e)) from e

    def complete_json(self, *, system: str, user: str, **options: Any) -> Optional[dict]:
        return extract_json_object(self.complete(system=system, user=user, **options))
