"""
brain/ — LLM access for intent detectors and the prompt rewriter

    llm = create_llm_client(settings)
    response = await llm.generate(instruction_pair(system, text), request_config(settings))
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from promptvolley.brain.llm_client import (
    BaseLLMClient,
    LLMConnectionError,
    LLMError,
    LLMInvalidRequestError,
    LLMRateLimitError,
    RetryingLLMClient,
    RetryPolicy,
)
from promptvolley.brain.llm_json import LLMJSONError, parse_llm_json
from promptvolley.brain.types import LLMConfig, LLMResponse, Message, Role, instruction_pair

if TYPE_CHECKING:
    from promptvolley.config.settings import Settings


def create_llm_client(settings: "Settings") -> BaseLLMClient:
    """OpenAI client wrapped with the configured retry policy."""
    from promptvolley.brain.openai_client import OpenAIClient

    retry = settings.llm.retry
    return RetryingLLMClient(
        OpenAIClient(api_key=settings.openai_api_key, base_url=settings.llm.base_url),
        RetryPolicy(
            max_attempts=retry.max_attempts,
            base_delay=retry.base_delay,
            max_delay=retry.max_delay,
        ),
    )


def request_config(settings: "Settings") -> LLMConfig:
    section = settings.llm
    return LLMConfig(
        model=section.model,
        temperature=section.temperature,
        max_tokens=section.max_tokens,
        timeout_seconds=section.timeout_seconds,
    )


__all__ = [
    "BaseLLMClient",
    "RetryingLLMClient",
    "RetryPolicy",
    "create_llm_client",
    "request_config",
    "LLMError",
    "LLMConnectionError",
    "LLMRateLimitError",
    "LLMInvalidRequestError",
    "LLMJSONError",
    "parse_llm_json",
    "LLMConfig",
    "LLMResponse",
    "Message",
    "Role",
    "instruction_pair",
]
