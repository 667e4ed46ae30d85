"""
rewriter/service.py — Text Rewriting Service

Turns the user's message (plus recent conversation) into the refined prompt
sent to the generation service. The LLM answers in JSON; malformed JSON is
repaired by parse_llm_json and anything unusable becomes a RewriteError.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel

from promptvolley.brain.llm_client import BaseLLMClient, LLMError
from promptvolley.brain.llm_json import LLMJSONError, parse_llm_json
from promptvolley.brain.types import LLMConfig, instruction_pair
from promptvolley.exceptions import RewriteError
from promptvolley.observability.logger import get_logger
from promptvolley.rewriter.prompts import build_system_prompt

log = get_logger(__name__)


class RewriteContext(BaseModel):
    """Everything the rewriter knows about the conversation besides the new message."""

    history_context: str = ""
    wrong_content_text: Optional[str] = None
    is_new_session: bool = False


class RewriteResult(BaseModel):
    prompt: str
    negative_prompt: str = ""
    has_complaints: bool = False


class TextRewriter(ABC):
    @abstractmethod
    async def rewrite(self, context: RewriteContext, user_text: str) -> RewriteResult:
        ...


def decode_rewrite(data: object) -> RewriteResult:
    """Validate the rewriter's JSON payload. Raises RewriteError."""
    if not isinstance(data, dict):
        raise RewriteError(f"Rewriter returned {type(data).__name__}, expected a JSON object")

    prompt = data.get("prompt")
    if not isinstance(prompt, str) or not prompt.strip():
        raise RewriteError("Rewriter returned an empty or missing prompt")

    negative = data.get("negative_prompt")
    if negative is None:
        negative = ""
    elif not isinstance(negative, str):
        raise RewriteError("Rewriter returned a non-string negative_prompt")

    complaints = data.get("user_input_has_complaints", data.get("has_complaints", False))
    return RewriteResult(
        prompt=prompt.strip(),
        negative_prompt=negative.strip(),
        has_complaints=complaints is True,
    )


class LLMTextRewriter(TextRewriter):
    def __init__(self, llm: BaseLLMClient, config: LLMConfig) -> None:
        self._llm = llm
        self._config = config.structured()

    async def rewrite(self, context: RewriteContext, user_text: str) -> RewriteResult:
        system = build_system_prompt(
            context.history_context,
            wrong_content_text=context.wrong_content_text,
            is_new_session=context.is_new_session,
        )
        messages = instruction_pair(system, user_text)

        try:
            response = await self._llm.generate(messages, self._config)
        except LLMError as e:
            raise RewriteError(f"Rewriter LLM call failed: {e}") from e

        try:
            data = parse_llm_json(response.text)
        except LLMJSONError as e:
            raise RewriteError(f"Rewriter response could not be parsed: {e}") from e

        result = decode_rewrite(data)
        log.info(
            "rewriter.done",
            prompt_len=len(result.prompt),
            has_negative=bool(result.negative_prompt),
            has_complaints=result.has_complaints,
        )
        return result
