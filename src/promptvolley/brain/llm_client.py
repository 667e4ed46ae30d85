"""
brain/llm_client.py — LLM client seam and transient-error retry

Detectors and the rewriter only see BaseLLMClient. Provider errors are
mapped into the LLMError classes below; each class says whether a second
attempt can help, and RetryingLLMClient acts on that.
"""

from __future__ import annotations

import asyncio
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from promptvolley.brain.types import LLMConfig, LLMResponse, Message
from promptvolley.observability.logger import get_logger

log = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


# ─────────────────────────────────────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────────────────────────────────────


class LLMError(Exception):
    """Any failure talking to the LLM provider."""

    retryable = False

    def __init__(self, message: str, provider: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class LLMConnectionError(LLMError):
    """Network failure, timeout or provider 5xx."""

    retryable = True


class LLMRateLimitError(LLMError):
    retryable = True

    def __init__(self, message: str, provider: str = "", retry_after: Optional[float] = None):
        super().__init__(message, provider, status_code=429)
        self.retry_after = retry_after


class LLMInvalidRequestError(LLMError):
    """The provider rejected the request itself (400)."""


# ─────────────────────────────────────────────────────────────────────────────
# Client seam
# ─────────────────────────────────────────────────────────────────────────────


class BaseLLMClient(ABC):
    provider = ""

    @abstractmethod
    async def generate(self, messages: list[Message], config: LLMConfig) -> LLMResponse:
        ...

    async def aclose(self) -> None:
        """Release provider connections. No-op by default."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"


# ─────────────────────────────────────────────────────────────────────────────
# Retry
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: float = 0.5

    def delay_for(self, attempt: int, error: LLMError) -> float:
        """Seconds to wait after the failed `attempt` (0-based)."""
        if isinstance(error, LLMRateLimitError) and error.retry_after:
            return min(error.retry_after, self.max_delay)
        spread = random.uniform(0, self.jitter) if self.jitter else 0.0
        return min(self.base_delay * (2 ** attempt) + spread, self.max_delay)


class RetryingLLMClient(BaseLLMClient):
    """Repeats retryable failures of `inner` according to `policy`."""

    def __init__(
        self,
        inner: BaseLLMClient,
        policy: Optional[RetryPolicy] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self._inner = inner
        self._policy = policy or RetryPolicy()
        self._sleep = sleep
        self.provider = inner.provider

    async def generate(self, messages: list[Message], config: LLMConfig) -> LLMResponse:
        policy = self._policy
        attempt = 0
        while True:
            try:
                return await self._inner.generate(messages, config)
            except LLMError as e:
                if not e.retryable or attempt + 1 >= policy.max_attempts:
                    raise
                delay = policy.delay_for(attempt, e)
                log.warning(
                    "llm.retrying",
                    provider=self.provider,
                    attempt=attempt + 1,
                    max_attempts=policy.max_attempts,
                    delay_s=round(delay, 2),
                    error_type=type(e).__name__,
                )
                await self._sleep(delay)
                attempt += 1

    async def aclose(self) -> None:
        await self._inner.aclose()

    def __repr__(self) -> str:
        return f"<RetryingLLMClient inner={self._inner!r} attempts={self._policy.max_attempts}>"
