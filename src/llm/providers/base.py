from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class ImageInput:
    data_base64: str
    mime_type: str = "image/jpeg"

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data_base64}"


class LLMProvider(ABC):
    @abstractmethod
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
        Must return the model output as TEXT (callers parse/validate JSON).
        HTTP error answers are raised as UpstreamError.
        """
        raise NotImplementedError
