"""
agent/updates.py — Live turn updates

A TurnUpdate is what the orchestrator pushes to an attached transport while a
turn is running. The caller passes a `notify` coroutine function per call;
there is no default listener.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable


class UpdateKind(str, Enum):
    STATE = "state"
    TEXT = "text"
    PROGRESS = "progress"
    IMAGES = "images"


@dataclass(frozen=True)
class TurnUpdate:
    kind: UpdateKind
    text: str = ""
    waiting_for_images: bool = False
    image_urls: tuple[str, ...] = ()
    metadata: dict = field(default_factory=dict)

    def __str__(self) -> str:
        return self.text

    @classmethod
    def state(cls, text: str, waiting_for_images: bool = False) -> "TurnUpdate":
        return cls(kind=UpdateKind.STATE, text=text, waiting_for_images=waiting_for_images)

    @classmethod
    def summary(cls, text: str) -> "TurnUpdate":
        return cls(kind=UpdateKind.TEXT, text=text)

    @classmethod
    def progress(cls, attempt: int, wait_seconds: float) -> "TurnUpdate":
        return cls(
            kind=UpdateKind.PROGRESS,
            text=f"The image service is busy, retrying in {wait_seconds:g} seconds (attempt {attempt})...",
            waiting_for_images=True,
            metadata={"attempt": attempt, "wait_seconds": wait_seconds},
        )

    @classmethod
    def images(cls, urls: list[str]) -> "TurnUpdate":
        return cls(kind=UpdateKind.IMAGES, image_urls=tuple(urls))


Notify = Callable[[TurnUpdate], Awaitable[None]]
