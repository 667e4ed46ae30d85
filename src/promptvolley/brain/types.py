"""
brain/types.py — Chat request and response shapes

Only two conversations ever happen here: a detector instruction plus the
user's message, and the rewriter's system prompt plus the user's message.
Both are a system turn followed by a user turn, so the model stays small.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Role
    content: str = ""

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=Role.USER, content=content)

    def as_chat(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


def instruction_pair(instruction: str, user_text: str) -> list[Message]:
    """The [system, user] message list every caller sends."""
    return [Message.system(instruction), Message.user(user_text)]


class LLMConfig(BaseModel):
    """Per-request options for one chat completion."""

    model_config = ConfigDict(frozen=True)

    model: str
    temperature: float = 0.5
    max_tokens: int = 600
    json_mode: bool = False
    timeout_seconds: float = 60.0

    def structured(self, temperature: Optional[float] = None) -> "LLMConfig":
        """Copy of this config that asks the provider for a JSON object."""
        update: dict = {"json_mode": True}
        if temperature is not None:
            update["temperature"] = temperature
        return self.model_copy(update=update)


class LLMResponse(BaseModel):
    content: Optional[str] = None
    truncated: bool = False             # provider stopped at max_tokens
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""

    @property
    def text(self) -> str:
        return self.content or ""

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens
