"""
generation/types.py — Generation service wire types
"""

from __future__ import annotations

from typing import Awaitable, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field


class GeneratedImage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: str
    seed: Optional[int] = None
    nsfw: bool = False


class GenerationResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    images: list[GeneratedImage] = Field(default_factory=list)

    @property
    def urls(self) -> list[str]:
        return [img.url for img in self.images if img.url]


class RetryNotice(BaseModel):
    """Sent before each backoff wait after the first."""

    attempt: int
    wait_seconds: float
    status_code: int


RetryCallback = Callable[[RetryNotice], Awaitable[None]]
