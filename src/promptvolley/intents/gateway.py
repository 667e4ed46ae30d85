"""
intents/gateway.py — Intent Classification Gateway

Sends one detector's instructions plus the user's text to a classifier and
returns its raw child objects. Failures are reported in-band
(is_error=True) rather than raised, so a fan-out of detectors always yields
one result per detector and the caller decides what an error means.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import BaseModel, Field

from promptvolley.brain.llm_client import BaseLLMClient, LLMError
from promptvolley.brain.llm_json import LLMJSONError, parse_llm_json
from promptvolley.brain.types import LLMConfig, instruction_pair
from promptvolley.observability.logger import get_logger

log = get_logger(__name__)

_CHILD_KEYS = ("child_results", "results", "detections")


class ClassificationResult(BaseModel):
    detector_id: str
    is_error: bool = False
    error_message: str = ""
    child_results: list[Any] = Field(default_factory=list)

    @classmethod
    def error(cls, detector_id: str, message: str) -> "ClassificationResult":
        return cls(detector_id=detector_id, is_error=True, error_message=message)


class ClassificationGateway(ABC):
    @abstractmethod
    async def classify(
        self, detector_id: str, instruction: str, user_text: str
    ) -> ClassificationResult:
        ...


def extract_children(data: Any) -> Optional[list[Any]]:
    """
    Normalise a classifier's JSON payload into a list of child objects.

    Accepts a bare list, an object wrapping the list under a known key, or a
    single child object. Returns None when no list can be found.
    """
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in _CHILD_KEYS:
            if key in data:
                value = data[key]
                return value if isinstance(value, list) else None
        return [data] if data else []
    return None


class LLMClassificationGateway(ClassificationGateway):
    """Runs detectors as JSON-mode chat completions."""

    def __init__(self, llm: BaseLLMClient, config: LLMConfig) -> None:
        self._llm = llm
        self._config = config.structured(temperature=0.0)

    async def classify(
        self, detector_id: str, instruction: str, user_text: str
    ) -> ClassificationResult:
        messages = instruction_pair(instruction, user_text)
        try:
            response = await self._llm.generate(messages, self._config)
        except LLMError as e:
            log.warning("intents.llm_failed", detector_id=detector_id, error=str(e))
            return ClassificationResult.error(detector_id, f"LLM call failed: {e}")

        try:
            data = parse_llm_json(response.text)
        except LLMJSONError as e:
            log.warning("intents.bad_json", detector_id=detector_id, error=str(e))
            return ClassificationResult.error(detector_id, str(e))

        children = extract_children(data)
        if children is None:
            return ClassificationResult.error(
                detector_id, "classifier response does not contain a list of child results"
            )

        log.debug("intents.classified", detector_id=detector_id, children=len(children))
        return ClassificationResult(detector_id=detector_id, child_results=children)
