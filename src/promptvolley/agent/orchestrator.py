"""
agent/orchestrator.py — Volley Orchestrator

Runs one user turn through the pipeline:

    1. Load      session history, derive the starting ParameterState
    2. Classify  every detector concurrently; any error aborts the turn
    3. Adjust    pure rules over the merged detections
    4. Rewrite   refined prompt from the conversation + user input
    5. Generate  resilient call to the image service
    6. Persist   append the new Volley (only after generation succeeded)
    7. Respond   return image URLs; summary and progress go to `notify`

Nothing is committed before stage 6, so a failing turn leaves history as it
was. Turns for the same user must be serialised by the caller.

Usage:
    orc = VolleyOrchestrator(gateway, rewriter, generator, store, policy)
    urls = await orc.process_turn("user-1", "a red fox in the snow", notify=send)
"""

from __future__ import annotations

import asyncio
import time
import uuid
from typing import TYPE_CHECKING, Optional, Sequence

from promptvolley.agent.response_assembler import assemble_summary
from promptvolley.agent.rules import adjust
from promptvolley.agent.state import ParameterPolicy, Volley, starting_state
from promptvolley.agent.updates import Notify, TurnUpdate
from promptvolley.exceptions import ClassificationError, InputValidationError
from promptvolley.generation.types import RetryNotice
from promptvolley.intents.detectors import DEFAULT_DETECTORS, DetectorSpec
from promptvolley.intents.gateway import ClassificationGateway, ClassificationResult
from promptvolley.intents.types import (
    ComplaintType,
    Detection,
    DetectionSet,
    DetectorId,
    decode_detection,
)
from promptvolley.observability.logger import bind_turn, clear_turn, get_logger
from promptvolley.rewriter.service import RewriteContext, TextRewriter

if TYPE_CHECKING:
    from promptvolley.config.settings import Settings
    from promptvolley.generation.client import GenerationClient
    from promptvolley.memory.history_store import HistoryStore

log = get_logger(__name__)

_THINKING = "Thinking..."
_REQUESTING = "Requesting image, may take a minute or so..."


class VolleyOrchestrator:
    """
    Coordinates one turn. All collaborators are injected; use from_settings()
    to build one from configuration.
    """

    def __init__(
        self,
        gateway: ClassificationGateway,
        rewriter: TextRewriter,
        generator: "GenerationClient",
        store: "HistoryStore",
        policy: ParameterPolicy,
        detectors: Sequence[DetectorSpec] = DEFAULT_DETECTORS,
        max_retries: int = 3,
        context_volleys: int = 4,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self._gateway = gateway
        self._rewriter = rewriter
        self._generator = generator
        self._store = store
        self._policy = policy
        self._detectors = tuple(detectors)
        self._max_retries = max_retries
        self._context_volleys = context_volleys

    @property
    def policy(self) -> ParameterPolicy:
        return self._policy

    # ─────────────────────────────────────────────────────────────────────────
    # Public
    # ─────────────────────────────────────────────────────────────────────────

    async def process_turn(
        self,
        user_id: str,
        user_input: str,
        notify: Optional[Notify] = None,
    ) -> list[str]:
        """Run one turn and return the generated image URLs. Raises PromptVolleyError subclasses."""
        if not isinstance(user_id, str) or not user_id.strip():
            raise InputValidationError("User id must not be empty")
        if not isinstance(user_input, str) or not user_input.strip():
            raise InputValidationError("User input must not be empty")
        user_id = user_id.strip()
        user_input = user_input.strip()

        turn_id = uuid.uuid4().hex[:12]
        bind_turn(user_id, turn_id)
        log.info("orchestrator.turn_start", user_input=user_input[:120])
        t0 = time.monotonic()

        try:
            # 1. Load
            history = await self._store.load(user_id)
            start_state = starting_state(history, self._policy)
            previous = history.last_volley
            previous_prompt = previous.system_response if previous else None

            # 2. Classify
            await _emit(notify, TurnUpdate.state(_THINKING, waiting_for_images=True))
            detections = await self._classify(user_input, previous_prompt)
            found = DetectionSet(detections)

            # 3. Adjust
            current_state, changes = adjust(start_state, found, self._policy)

            # 4. Rewrite
            is_new_session = found.starts_new_image()
            context = RewriteContext(
                history_context=(
                    "" if is_new_session else history.build_context_prompt(self._context_volleys)
                ),
                wrong_content_text=found.complaint_text(
                    DetectorId.IMAGE_QUALITY, ComplaintType.WRONG_CONTENT
                ),
                is_new_session=is_new_session,
            )
            rewrite = await self._rewriter.rewrite(context, user_input)

            summary = assemble_summary(rewrite.prompt, changes)
            await _emit(notify, TurnUpdate.state(_REQUESTING))
            await _emit(notify, TurnUpdate.summary(summary))

            # 5. Generate
            async def _on_retry(notice: RetryNotice) -> None:
                await _emit(notify, TurnUpdate.progress(notice.attempt, notice.wait_seconds))

            urls = await self._generator.generate(
                rewrite.prompt,
                rewrite.negative_prompt,
                current_state,
                self._max_retries,
                on_retry=_on_retry if notify is not None else None,
            )
            await _emit(notify, TurnUpdate.images(urls))

            # 6. Persist
            volley = Volley(
                is_new_session=is_new_session,
                user_input=user_input,
                system_response=rewrite.prompt,
                negative_prompt=rewrite.negative_prompt,
                response_to_user=summary,
                start_state=start_state,
                end_state=current_state,
                detections=tuple(detections),
                image_urls=tuple(urls),
            )
            await self._store.append(user_id, volley)

            log.info(
                "orchestrator.turn_done",
                ms=round((time.monotonic() - t0) * 1000),
                images=len(urls),
                changes=len(changes),
                model_id=current_state.model_id,
                steps=current_state.steps,
                guidance_scale=current_state.guidance_scale,
            )
            return urls

        except Exception as e:
            log.error("orchestrator.turn_error", error=str(e), error_type=type(e).__name__)
            raise
        finally:
            clear_turn()

    # ─────────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────────

    async def _classify(self, user_input: str, previous_prompt: Optional[str]) -> list[Detection]:
        """Fan out to every detector, join, and decode. All-or-nothing."""
        outcomes = await asyncio.gather(
            *(
                self._gateway.classify(detector.request_id, detector.render(previous_prompt), user_input)
                for detector in self._detectors
            ),
            return_exceptions=True,
        )

        # Every detector has settled here; a raised exception counts as an in-band error.
        results: list[ClassificationResult] = []
        for detector, outcome in zip(self._detectors, outcomes):
            if isinstance(outcome, Exception):
                log.warning(
                    "orchestrator.detector_raised",
                    detector_id=detector.request_id,
                    error_type=type(outcome).__name__,
                )
                outcome = ClassificationResult.error(
                    detector.request_id, f"{type(outcome).__name__}: {outcome}"
                )
            elif isinstance(outcome, BaseException):
                raise outcome
            results.append(outcome)

        failed = [r for r in results if r.is_error]
        if failed:
            ids = [r.detector_id for r in failed]
            detail = "; ".join(f"{r.detector_id}: {r.error_message}" for r in failed)
            log.warning("orchestrator.classification_failed", detectors=ids)
            raise ClassificationError(f"Intent detection failed ({detail})", detector_ids=ids)

        detections = [
            decode_detection(detector.result_id, result.child_results)
            for detector, result in zip(self._detectors, results)
        ]
        log.debug(
            "orchestrator.classified",
            detections=sum(1 for d in detections if d.child_results),
        )
        return detections

    # ─────────────────────────────────────────────────────────────────────────
    # Factory
    # ─────────────────────────────────────────────────────────────────────────

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        gateway: ClassificationGateway,
        rewriter: TextRewriter,
        generator: "GenerationClient",
        store: "HistoryStore",
    ) -> "VolleyOrchestrator":
        return cls(
            gateway=gateway,
            rewriter=rewriter,
            generator=generator,
            store=store,
            policy=settings.parameter_policy(),
            max_retries=settings.generation.max_retries,
            context_volleys=settings.history.context_volleys,
        )


async def _emit(notify: Optional[Notify], update: TurnUpdate) -> None:
    if notify is not None:
        await notify(update)
