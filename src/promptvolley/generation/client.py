"""
generation/client.py — Resilient Generation Client

POSTs a text-to-image request and classifies the reply:

  2xx with images      → return the URLs
  2xx without images   → GenerationFatalError (never retried)
  overload status      → wait 2^attempt seconds and retry, up to max_retries
                         retries; then GenerationOverloadedError
  anything else        → GenerationFatalError with status, reason and endpoint

Waits go through an injectable async sleep so tests don't actually wait.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Awaitable, Callable, Iterable, Optional

import httpx
from pydantic import ValidationError

from promptvolley.agent.state import ParameterState
from promptvolley.exceptions import (
    GenerationFatalError,
    GenerationOverloadedError,
    GenerationTransientError,
)
from promptvolley.generation.types import GenerationResponse, RetryCallback, RetryNotice
from promptvolley.observability.logger import get_logger

if TYPE_CHECKING:
    from promptvolley.config.settings import Settings

log = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class GenerationClient:
    """Async client for the text-to-image gateway."""

    def __init__(
        self,
        url: str,
        api_key: Optional[str] = None,
        width: int = 1024,
        height: int = 1024,
        image_count: int = 2,
        overload_status_codes: Iterable[int] = (503,),
        timeout_seconds: Optional[float] = 180.0,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.url = url
        self.width = width
        self.height = height
        self.image_count = image_count
        self.overload_status_codes = frozenset(overload_status_codes)
        self._sleep = sleep

        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._headers = headers

        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout_seconds)

    @classmethod
    def from_settings(cls, settings: "Settings", **kwargs) -> "GenerationClient":
        gen = settings.generation
        return cls(
            url=gen.url,
            api_key=settings.generation_api_key,
            width=gen.width,
            height=gen.height,
            image_count=gen.image_count,
            overload_status_codes=gen.overload_status_codes,
            timeout_seconds=gen.timeout_seconds,
            **kwargs,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    # ── Request ───────────────────────────────────────────────────────────────

    def build_request_body(
        self, prompt: str, negative_prompt: str, state: ParameterState
    ) -> dict:
        body = {
            "prompt": prompt,
            "model_id": state.model_id,
            "guidance_scale": state.guidance_scale,
            "negative_prompt": negative_prompt or "",
            "width": self.width,
            "height": self.height,
            "num_images_per_prompt": self.image_count,
            "num_inference_steps": state.steps,
        }
        if state.lora_model_id:
            body["loras"] = {state.lora_model_id: 1.0}
        return body

    async def _send_once(self, body: dict) -> list[str]:
        try:
            response = await self._http.post(self.url, json=body, headers=self._headers)
        except httpx.HTTPError as e:
            raise GenerationFatalError(
                f"Request to generation service failed: {e}", endpoint=self.url
            ) from e

        status = response.status_code
        if status in self.overload_status_codes:
            raise GenerationTransientError(
                f"Generation service busy ({status})",
                status_code=status,
                status_text=response.reason_phrase,
                endpoint=self.url,
            )

        if not response.is_success:
            raise GenerationFatalError(
                f"Generation request failed: {status} {response.reason_phrase} from {self.url}",
                status_code=status,
                status_text=response.reason_phrase,
                endpoint=self.url,
            )

        try:
            payload = GenerationResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise GenerationFatalError(
                f"Generation service returned an unreadable body: {e}",
                status_code=status,
                status_text=response.reason_phrase,
                endpoint=self.url,
            ) from e

        urls = payload.urls
        if not urls:
            raise GenerationFatalError(
                "Generation service returned no images",
                status_code=status,
                status_text=response.reason_phrase,
                endpoint=self.url,
            )
        return urls

    # ── Public ────────────────────────────────────────────────────────────────

    async def generate(
        self,
        prompt: str,
        negative_prompt: str,
        state: ParameterState,
        max_retries: int,
        on_retry: Optional[RetryCallback] = None,
    ) -> list[str]:
        """Generate images and return their URLs. Makes at most max_retries + 1 requests."""
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")

        body = self.build_request_body(prompt, negative_prompt, state)
        attempt = 1
        while True:
            log.info("generation.request", attempt=attempt, model_id=state.model_id, steps=state.steps)
            try:
                urls = await self._send_once(body)
            except GenerationTransientError as e:
                if attempt > max_retries:
                    log.error("generation.overloaded", attempts=attempt, endpoint=self.url)
                    raise GenerationOverloadedError(
                        attempts=attempt, endpoint=self.url, status_code=e.status_code
                    ) from e

                wait = float(2 ** attempt)
                log.warning(
                    "generation.retrying",
                    attempt=attempt,
                    wait_seconds=wait,
                    status_code=e.status_code,
                )
                if attempt >= 2 and on_retry is not None:
                    await on_retry(
                        RetryNotice(attempt=attempt, wait_seconds=wait, status_code=e.status_code or 0)
                    )
                await self._sleep(wait)
                attempt += 1
                continue

            log.info("generation.done", attempts=attempt, images=len(urls))
            return urls
