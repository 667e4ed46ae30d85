"""
brain/openai_client.py — OpenAI chat completions

Also serves any OpenAI-compatible endpoint via llm.base_url. SDK exceptions
become LLMError subclasses; only connection failures, 5xx and 429 are
marked retryable.
"""

from __future__ import annotations

from typing import Optional

import openai
from openai import AsyncOpenAI

from promptvolley.brain.llm_client import (
    BaseLLMClient,
    LLMConnectionError,
    LLMError,
    LLMInvalidRequestError,
    LLMRateLimitError,
)
from promptvolley.brain.types import LLMConfig, LLMResponse, Message
from promptvolley.observability.logger import get_logger

log = get_logger(__name__)

_JSON_OBJECT = {"type": "json_object"}


def _translate(e: openai.OpenAIError) -> LLMError:
    if isinstance(e, openai.RateLimitError):
        return LLMRateLimitError(str(e), provider="openai")
    if isinstance(e, openai.BadRequestError):
        return LLMInvalidRequestError(str(e), provider="openai", status_code=400)
    if isinstance(e, openai.APIConnectionError):
        return LLMConnectionError(str(e), provider="openai")
    if isinstance(e, openai.APIStatusError):
        cls = LLMConnectionError if e.status_code >= 500 else LLMError
        return cls(str(e), provider="openai", status_code=e.status_code)
    return LLMError(str(e), provider="openai")


class OpenAIClient(BaseLLMClient):
    provider = "openai"

    def __init__(self, api_key: Optional[str], base_url: Optional[str] = None):
        if not api_key:
            raise LLMError("OPENAI_API_KEY is not set.", provider="openai", status_code=401)
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url)

    async def generate(self, messages: list[Message], config: LLMConfig) -> LLMResponse:
        try:
            completion = await self._client.chat.completions.create(
                model=config.model,
                messages=[m.as_chat() for m in messages],
                temperature=config.temperature,
                max_tokens=config.max_tokens,
                response_format=_JSON_OBJECT if config.json_mode else openai.NOT_GIVEN,
                timeout=config.timeout_seconds,
            )
        except openai.OpenAIError as e:
            raise _translate(e) from e

        choice = completion.choices[0]
        usage = completion.usage
        response = LLMResponse(
            content=choice.message.content,
            truncated=choice.finish_reason == "length",
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            model=completion.model,
        )
        if response.truncated:
            log.warning("openai.truncated", model=response.model, max_tokens=config.max_tokens)
        log.debug(
            "openai.completed",
            model=response.model,
            json_mode=config.json_mode,
            tokens=response.total_tokens,
        )
        return response

    async def aclose(self) -> None:
        await self._client.close()
