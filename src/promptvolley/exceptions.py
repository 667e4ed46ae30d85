"""
exceptions.py — promptvolley Error Hierarchy

Every stage of a turn raises a typed subclass of PromptVolleyError, never a
bare Exception.

Import from here, not from individual modules:
    from promptvolley.exceptions import ClassificationError, GenerationFatalError

Hierarchy:
    PromptVolleyError
    ├── InputValidationError          empty user id / input, bad store key
    ├── ClassificationError           a detector reported an error
    │   └── DetectionDecodeError      detector output had the wrong shape
    ├── RewriteError                  empty or unparseable refined prompt
    ├── GenerationError
    │   ├── GenerationTransientError  overload status (retried)
    │   └── GenerationFatalError      any other failure, never retried
    │       └── GenerationOverloadedError   retry budget exhausted
    └── PersistenceError              session history could not be saved/loaded

LLM transport errors (re-exported, source of truth is brain.llm_client):
    LLMError ├── LLMConnectionError ├── LLMRateLimitError └── LLMInvalidRequestError
"""

from __future__ import annotations

from typing import Optional

from promptvolley.brain.llm_client import (  # noqa: F401  re-exported
    LLMConnectionError,
    LLMError,
    LLMInvalidRequestError,
    LLMRateLimitError,
)


# ─────────────────────────────────────────────────────────────────────────────
# Root
# ─────────────────────────────────────────────────────────────────────────────

class PromptVolleyError(Exception):
    """Base class for all promptvolley exceptions."""


class InputValidationError(PromptVolleyError):
    """A caller-supplied identifier or input failed validation. No side effects occurred."""


# ─────────────────────────────────────────────────────────────────────────────
# Classification
# ─────────────────────────────────────────────────────────────────────────────

class ClassificationError(PromptVolleyError):
    """One or more intent detectors failed; the turn is aborted before any state change."""

    def __init__(self, message: str, detector_ids: Optional[list[str]] = None) -> None:
        self.detector_ids = detector_ids or []
        super().__init__(message)


class DetectionDecodeError(ClassificationError):
    """A detector returned child results that do not match its expected shape."""

    def __init__(self, detector_id: str, message: str) -> None:
        super().__init__(f"Detector '{detector_id}': {message}", detector_ids=[detector_id])
        self.detector_id = detector_id


# ─────────────────────────────────────────────────────────────────────────────
# Rewriting
# ─────────────────────────────────────────────────────────────────────────────

class RewriteError(PromptVolleyError):
    """The text rewriting service returned no usable refined prompt."""


# ─────────────────────────────────────────────────────────────────────────────
# Generation
# ─────────────────────────────────────────────────────────────────────────────

class GenerationError(PromptVolleyError):
    """Base for generation service failures."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        status_text: str = "",
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.status_text = status_text
        self.endpoint = endpoint
        super().__init__(message)


class GenerationTransientError(GenerationError):
    """The generation service signalled it is busy. Retried with backoff."""


class GenerationFatalError(GenerationError):
    """Non-retryable generation failure (bad status, empty payload, transport error)."""


class GenerationOverloadedError(GenerationFatalError):
    """The service stayed overloaded past the retry budget."""

    def __init__(self, attempts: int, endpoint: str = "", status_code: Optional[int] = None) -> None:
        super().__init__(
            f"Generation service overloaded: gave up after {attempts} attempt(s) to {endpoint}",
            status_code=status_code,
            status_text="service overloaded",
            endpoint=endpoint,
        )
        self.attempts = attempts


# ─────────────────────────────────────────────────────────────────────────────
# Persistence
# ─────────────────────────────────────────────────────────────────────────────

class PersistenceError(PromptVolleyError):
    """Reading or writing a user's session history failed."""


__all__ = [
    "PromptVolleyError",
    "InputValidationError",
    "ClassificationError",
    "DetectionDecodeError",
    "RewriteError",
    "GenerationError",
    "GenerationTransientError",
    "GenerationFatalError",
    "GenerationOverloadedError",
    "PersistenceError",
    # LLM (re-exported)
    "LLMError",
    "LLMConnectionError",
    "LLMRateLimitError",
    "LLMInvalidRequestError",
]
