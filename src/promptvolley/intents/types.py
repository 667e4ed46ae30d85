"""
intents/types.py — Detector identifiers and typed detection results

Every detector returns a list of child results. Each detector has exactly one
expected child shape; decode_detection() validates raw LLM output against it
so the rule engine only ever sees typed values, never a bag of optional keys.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Iterable, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, ValidationError

from promptvolley.exceptions import DetectionDecodeError


class DetectorId(str, Enum):
    TEXT_WANTED = "is_text_wanted_on_image"
    IMAGE_QUALITY = "user_complaint_image_quality_or_content"
    GENERATION_SPEED = "user_complaint_speed_image_generation_speed"
    START_NEW_IMAGE = "start_new_image"


class ComplaintType(str, Enum):
    BLURRY = "blurry"
    WRONG_CONTENT = "wrong_content"
    BORING = "boring"
    PROBLEMS_WITH_TEXT = "problems_with_text"
    TOO_SLOW = "generate_image_too_slow"


# ─────────────────────────────────────────────────────────────────────────────
# Child results
# ─────────────────────────────────────────────────────────────────────────────

class TextWantedResult(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    kind: Literal["text_wanted"] = "text_wanted"
    is_text_wanted_on_image: StrictBool


class StartNewImageResult(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    kind: Literal["start_new_image"] = "start_new_image"
    start_new_image: StrictBool


class ComplaintResult(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    kind: Literal["complaint"] = "complaint"
    complaint_type: StrictStr
    complaint_text: Optional[StrictStr] = None

    @property
    def complaint(self) -> Optional[ComplaintType]:
        """The known complaint type, or None for anything the rules don't act on."""
        try:
            return ComplaintType(self.complaint_type.strip().lower())
        except ValueError:
            return None


ChildResult = Annotated[
    Union[TextWantedResult, StartNewImageResult, ComplaintResult],
    Field(discriminator="kind"),
]

_CHILD_MODELS: dict[DetectorId, type[BaseModel]] = {
    DetectorId.TEXT_WANTED: TextWantedResult,
    DetectorId.IMAGE_QUALITY: ComplaintResult,
    DetectorId.GENERATION_SPEED: ComplaintResult,
    DetectorId.START_NEW_IMAGE: StartNewImageResult,
}


class Detection(BaseModel):
    """The decoded output of one detector for one turn."""

    model_config = ConfigDict(frozen=True)

    detector_id: DetectorId
    child_results: tuple[ChildResult, ...] = ()


def decode_detection(detector_id: DetectorId | str, raw_children: Iterable[object]) -> Detection:
    """
    Validate raw child objects against the shape expected for `detector_id`.

    Raises DetectionDecodeError on an unknown detector, a non-object child,
    or a child missing / mistyping its expected field.
    """
    try:
        did = DetectorId(detector_id)
    except ValueError:
        raise DetectionDecodeError(str(detector_id), "unknown detector id") from None

    model = _CHILD_MODELS[did]
    children = []
    for index, raw in enumerate(raw_children):
        if not isinstance(raw, dict):
            raise DetectionDecodeError(
                did.value, f"child result #{index} is {type(raw).__name__}, expected an object"
            )
        payload = {k: v for k, v in raw.items() if k != "kind"}
        try:
            children.append(model.model_validate(payload))
        except ValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            raise DetectionDecodeError(
                did.value, f"child result #{index} failed validation ({fields})"
            ) from e
    return Detection(detector_id=did, child_results=tuple(children))


# ─────────────────────────────────────────────────────────────────────────────
# Query helpers
# ─────────────────────────────────────────────────────────────────────────────

class DetectionSet:
    """Read-only view over a turn's detections. Several detections may share an id."""

    def __init__(self, detections: Iterable[Detection] = ()) -> None:
        self._detections: tuple[Detection, ...] = tuple(detections)

    def __iter__(self):
        return iter(self._detections)

    def __len__(self) -> int:
        return len(self._detections)

    @property
    def detections(self) -> tuple[Detection, ...]:
        return self._detections

    def _children(self, detector_id: DetectorId):
        for detection in self._detections:
            if detection.detector_id == detector_id:
                yield from detection.child_results

    def wants_text(self) -> bool:
        return any(
            isinstance(c, TextWantedResult) and c.is_text_wanted_on_image
            for c in self._children(DetectorId.TEXT_WANTED)
        )

    def starts_new_image(self) -> bool:
        return any(
            isinstance(c, StartNewImageResult) and c.start_new_image
            for c in self._children(DetectorId.START_NEW_IMAGE)
        )

    def complaints(self, detector_id: DetectorId) -> list[ComplaintResult]:
        return [c for c in self._children(detector_id) if isinstance(c, ComplaintResult)]

    def has_complaint(self, detector_id: DetectorId, complaint: ComplaintType) -> bool:
        return any(c.complaint is complaint for c in self.complaints(detector_id))

    def complaint_text(self, detector_id: DetectorId, complaint: ComplaintType) -> Optional[str]:
        """First non-blank free text attached to a complaint of this type."""
        for c in self.complaints(detector_id):
            if c.complaint is complaint and c.complaint_text and c.complaint_text.strip():
                return c.complaint_text.strip()
        return None
