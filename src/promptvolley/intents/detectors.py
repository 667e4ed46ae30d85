"""
intents/detectors.py — Detector registry

A DetectorSpec pairs the id sent to the classification gateway with the id its
results are decoded under. The extended wrong-content detector is requested
separately (its instructions embed the previous prompt) but its children are
merged under the image-quality detector id.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from promptvolley.intents import prompts
from promptvolley.intents.types import DetectorId


@dataclass(frozen=True)
class DetectorSpec:
    request_id: str
    result_id: DetectorId
    template: str

    def render(self, previous_prompt: Optional[str] = None) -> str:
        return self.template.format(previous_prompt=previous_prompt or "")


EXTENDED_WRONG_CONTENT_ID = "extended_wrong_content"

DEFAULT_DETECTORS: tuple[DetectorSpec, ...] = (
    DetectorSpec(DetectorId.TEXT_WANTED.value, DetectorId.TEXT_WANTED, prompts.TEXT_WANTED),
    DetectorSpec(DetectorId.IMAGE_QUALITY.value, DetectorId.IMAGE_QUALITY, prompts.IMAGE_QUALITY),
    DetectorSpec(
        DetectorId.GENERATION_SPEED.value, DetectorId.GENERATION_SPEED, prompts.GENERATION_SPEED
    ),
    DetectorSpec(
        DetectorId.START_NEW_IMAGE.value, DetectorId.START_NEW_IMAGE, prompts.START_NEW_IMAGE
    ),
    DetectorSpec(EXTENDED_WRONG_CONTENT_ID, DetectorId.IMAGE_QUALITY, prompts.EXTENDED_WRONG_CONTENT),
)
