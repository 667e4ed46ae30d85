"""
agent/rules.py — Parameter adjustment rules

adjust() is a pure function: (current state, detections, policy) in,
(next state, change descriptions) out. Rules run in a fixed order:

  1. text wanted       → text-capable model, raise steps/guidance to text floors
  2. blurry            → more steps
  3. too slow          → fewer steps, never below min_steps
  4. variation         → wrong content / bad text win over boring
  5. bounds            → clamp everything into the policy's range

Each rule that fires contributes one entry to the change list. The list may
contain duplicates; the response assembler de-duplicates on output.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, NamedTuple, Union

from promptvolley.agent.state import ParameterPolicy, ParameterState
from promptvolley.intents.types import ComplaintType, Detection, DetectionSet, DetectorId
from promptvolley.observability.logger import get_logger

log = get_logger(__name__)


class ChangeDescription(str, Enum):
    LESS_CREATIVE = "* I have told the engine to be less creative"
    MORE_CREATIVE = "* I have told the engine to be more creative"
    USE_TEXT_ENGINE = (
        "* I have switched to a text capable engine.  "
        "Note, image generations will take much longer to generate"
    )
    FEWER_STEPS = "* I have decreased the time spent on image generation to make things faster"
    MORE_STEPS = "* I have increased the time spent on image generation to improve quality"
    FIX_WRONG_CONTENT = "* I will try to fix the incorrect content"
    MANY_MORE_STEPS = (
        "* I have greatly increased the time spent on image generation.  Please be patient..."
    )
    CREATIVE_LATER = (
        "Let's concentrate on getting the image content correct before trying to be more creative."
    )


class Adjustment(NamedTuple):
    state: ParameterState
    changes: list[str]


def _as_set(detections: Union[DetectionSet, Iterable[Detection]]) -> DetectionSet:
    return detections if isinstance(detections, DetectionSet) else DetectionSet(detections)


def adjust(
    state: ParameterState,
    detections: Union[DetectionSet, Iterable[Detection]],
    policy: ParameterPolicy,
) -> Adjustment:
    """Apply every adjustment rule to `state` and return the new state plus what changed."""
    found = _as_set(detections)
    changes: list[str] = []

    model_id = state.model_id
    steps = state.steps
    guidance = state.guidance_scale

    # 1. Text on the image needs the text-capable model and its floors
    if found.wants_text():
        model_id = policy.text_model_id
        changes.append(ChangeDescription.USE_TEXT_ENGINE.value)
        if steps < policy.text_min_steps:
            steps = policy.text_min_steps
            changes.append(ChangeDescription.MORE_STEPS.value)
        if guidance < policy.text_min_guidance_scale:
            guidance = policy.text_min_guidance_scale
            changes.append(ChangeDescription.LESS_CREATIVE.value)

    # 2. Blurry
    if found.has_complaint(DetectorId.IMAGE_QUALITY, ComplaintType.BLURRY):
        steps += policy.steps_adjustment
        changes.append(ChangeDescription.MORE_STEPS.value)

    # 3. Too slow
    if found.has_complaint(DetectorId.GENERATION_SPEED, ComplaintType.TOO_SLOW):
        steps = max(policy.min_steps, steps - policy.steps_adjustment)
        changes.append(ChangeDescription.FEWER_STEPS.value)

    # 4. Variation: fixing content always beats adding creativity
    wrong_content = found.has_complaint(DetectorId.IMAGE_QUALITY, ComplaintType.WRONG_CONTENT)
    bad_text = found.has_complaint(DetectorId.IMAGE_QUALITY, ComplaintType.PROBLEMS_WITH_TEXT)
    boring = found.has_complaint(DetectorId.IMAGE_QUALITY, ComplaintType.BORING)

    if wrong_content or bad_text:
        guidance += policy.guidance_adjustment
        changes.append(ChangeDescription.LESS_CREATIVE.value)
        if wrong_content and found.complaint_text(DetectorId.IMAGE_QUALITY, ComplaintType.WRONG_CONTENT):
            changes.append(ChangeDescription.FIX_WRONG_CONTENT.value)
        if bad_text:
            if model_id != policy.text_model_id:
                model_id = policy.text_model_id
                changes.append(ChangeDescription.USE_TEXT_ENGINE.value)
            steps += 3 * policy.steps_adjustment
            changes.append(ChangeDescription.MANY_MORE_STEPS.value)
        if boring:
            changes.append(ChangeDescription.CREATIVE_LATER.value)
    elif boring:
        guidance -= policy.guidance_adjustment
        changes.append(ChangeDescription.MORE_CREATIVE.value)

    # 5. Bounds
    new_state = state.model_copy(
        update={
            "model_id": model_id,
            "steps": policy.clamp_steps(steps),
            "guidance_scale": policy.clamp_guidance(guidance),
        }
    )

    if changes:
        log.debug(
            "rules.adjusted",
            model_id=new_state.model_id,
            steps_from=state.steps,
            steps_to=new_state.steps,
            guidance_from=state.guidance_scale,
            guidance_to=new_state.guidance_scale,
            changes=len(changes),
        )
    return Adjustment(state=new_state, changes=changes)
