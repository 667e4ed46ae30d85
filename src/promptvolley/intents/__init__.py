"""
intents/ — Intent detection for promptvolley

Public API:
    from promptvolley.intents import DEFAULT_DETECTORS, LLMClassificationGateway, DetectionSet
"""

from promptvolley.intents.detectors import DEFAULT_DETECTORS, EXTENDED_WRONG_CONTENT_ID, DetectorSpec
from promptvolley.intents.gateway import (
    ClassificationGateway,
    ClassificationResult,
    LLMClassificationGateway,
    extract_children,
)
from promptvolley.intents.types import (
    ComplaintResult,
    ComplaintType,
    Detection,
    DetectionSet,
    DetectorId,
    StartNewImageResult,
    TextWantedResult,
    decode_detection,
)

__all__ = [
    "DEFAULT_DETECTORS",
    "EXTENDED_WRONG_CONTENT_ID",
    "DetectorSpec",
    "ClassificationGateway",
    "ClassificationResult",
    "LLMClassificationGateway",
    "extract_children",
    "ComplaintResult",
    "ComplaintType",
    "Detection",
    "DetectionSet",
    "DetectorId",
    "StartNewImageResult",
    "TextWantedResult",
    "decode_detection",
]
