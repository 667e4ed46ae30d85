"""
agent/state.py — Generation parameters, volleys and session history

ParameterState is the only mutable-looking thing a turn carries forward, and
it is a frozen value: rules return new states, nothing edits one in place.
A Volley records one committed turn; SessionHistory is a user's ordered list
of volleys and knows how to render itself as rewriter context.
"""

from __future__ import annotations

import time
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from promptvolley.intents.types import Detection


# ─────────────────────────────────────────────────────────────────────────────
# Parameters
# ─────────────────────────────────────────────────────────────────────────────

class ParameterState(BaseModel):
    """Generation parameters in effect for one request."""

    model_config = ConfigDict(frozen=True)

    model_id: str
    lora_model_id: str = ""
    guidance_scale: float
    steps: int


class ParameterPolicy(BaseModel):
    """Defaults, step sizes and bounds used by the adjustment rules."""

    model_config = ConfigDict(frozen=True)

    default_state: ParameterState
    text_model_id: str
    min_steps: int = 1
    max_steps: int = 50
    steps_adjustment: int = 3
    min_guidance_scale: float = 1.0
    max_guidance_scale: float = 35.0
    guidance_adjustment: float = 3.0
    text_min_steps: int = 21
    text_min_guidance_scale: float = 28.0

    @model_validator(mode="after")
    def _check_bounds(self) -> "ParameterPolicy":
        if self.min_steps < 1:
            raise ValueError("min_steps must be >= 1")
        if self.min_steps > self.max_steps:
            raise ValueError("min_steps must not exceed max_steps")
        if self.min_guidance_scale > self.max_guidance_scale:
            raise ValueError("min_guidance_scale must not exceed max_guidance_scale")
        return self

    def clamp_steps(self, steps: int) -> int:
        return max(self.min_steps, min(self.max_steps, steps))

    def clamp_guidance(self, guidance: float) -> float:
        return max(self.min_guidance_scale, min(self.max_guidance_scale, guidance))


# ─────────────────────────────────────────────────────────────────────────────
# History
# ─────────────────────────────────────────────────────────────────────────────

class Volley(BaseModel):
    """One committed turn: what the user said, what we asked for, and with what parameters."""

    model_config = ConfigDict(frozen=True)

    is_new_session: bool = False
    timestamp: float = Field(default_factory=time.time)
    user_input: str
    system_response: str                      # refined prompt sent to the generator
    negative_prompt: str = ""
    response_to_user: str = ""
    start_state: ParameterState
    end_state: ParameterState
    detections: tuple[Detection, ...] = ()
    image_urls: tuple[str, ...] = ()


_CONTEXT_PREAMBLE = (
    "Here is the recent conversation between the user and the image prompt "
    "assistant, oldest first. Each SYSTEM RESPONSE is the image prompt that "
    "was generated for the USER INPUT before it.\n\n"
)


class SessionHistory(BaseModel):
    """A user's volleys in commit order."""

    volleys: list[Volley] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.volleys)

    @property
    def last_volley(self) -> Optional[Volley]:
        return self.volleys[-1] if self.volleys else None

    def append(self, volley: Volley) -> None:
        self.volleys.append(volley)

    def recent(self, n: int) -> list[Volley]:
        """Up to the last `n` volleys, stopping at the most recent new-session boundary."""
        if n <= 0:
            return []
        window = self.volleys[-n:]
        for index in range(len(window) - 1, -1, -1):
            if window[index].is_new_session:
                return window[index:]
        return window

    def build_context_prompt(self, n: int) -> str:
        """Render the last `n` volleys as rewriter context. Empty string when there is nothing."""
        volleys = self.recent(n)
        if not volleys:
            return ""
        lines = [
            f"USER INPUT: {v.user_input}\nSYSTEM RESPONSE: {v.system_response}"
            for v in volleys
        ]
        return _CONTEXT_PREAMBLE + "\n\n".join(lines)

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, payload: str) -> "SessionHistory":
        return cls.model_validate_json(payload)


def starting_state(history: SessionHistory, policy: ParameterPolicy) -> ParameterState:
    """Continue from the last committed volley, or start from the policy defaults."""
    last = history.last_volley
    return last.end_state if last is not None else policy.default_state
