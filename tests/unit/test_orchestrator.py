"""
tests/unit/test_orchestrator.py — Volley Orchestrator

Test groups:
  - input validation happens before any collaborator is called
  - happy path: detections → adjusted state → rewrite → generate → persist
  - state carries across turns (text model stays sticky)
  - classification is all-or-nothing
  - nothing is persisted when rewrite or generation fails
  - new-session detection drops history from the rewrite context
  - notify receives state / summary / progress / images in order
"""

from __future__ import annotations

import asyncio
from typing import Optional
from unittest.mock import AsyncMock

import httpx
import pytest

from promptvolley.agent.orchestrator import VolleyOrchestrator
from promptvolley.agent.rules import ChangeDescription
from promptvolley.agent.state import ParameterPolicy, ParameterState
from promptvolley.agent.updates import TurnUpdate, UpdateKind
from promptvolley.exceptions import (
    ClassificationError,
    DetectionDecodeError,
    GenerationFatalError,
    GenerationOverloadedError,
    InputValidationError,
    PersistenceError,
    RewriteError,
)
from promptvolley.generation.client import GenerationClient
from promptvolley.intents.detectors import DEFAULT_DETECTORS, EXTENDED_WRONG_CONTENT_ID
from promptvolley.intents.gateway import ClassificationGateway, ClassificationResult
from promptvolley.intents.types import DetectorId
from promptvolley.memory.history_store import InMemoryHistoryStore
from promptvolley.rewriter.service import RewriteResult

DEFAULT_MODEL = "ByteDance/SDXL-Lightning"
TEXT_MODEL = "black-forest-labs/FLUX.1-dev"
URLS = ["https://img.test/1.png", "https://img.test/2.png"]


# ─────────────────────────────────────────────────────────────────────────────
# Fakes
# ─────────────────────────────────────────────────────────────────────────────

class FakeGateway(ClassificationGateway):
    """Returns scripted child results per request id; records every call."""

    def __init__(self, children: Optional[dict] = None, errors: Optional[dict] = None):
        self.children = children or {}
        self.errors = errors or {}
        self.calls: list[tuple[str, str, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def classify(self, detector_id, instruction, user_text):
        self.calls.append((detector_id, instruction, user_text))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0)
        self.in_flight -= 1
        if detector_id in self.errors:
            return ClassificationResult.error(detector_id, self.errors[detector_id])
        return ClassificationResult(detector_id=detector_id, child_results=self.children.get(detector_id, []))


def _policy() -> ParameterPolicy:
    return ParameterPolicy(
        default_state=ParameterState(model_id=DEFAULT_MODEL, guidance_scale=7.5, steps=20),
        text_model_id=TEXT_MODEL,
    )


def _rewriter(prompt: str = "a refined fox", negative: str = "") -> AsyncMock:
    rewriter = AsyncMock()
    rewriter.rewrite.return_value = RewriteResult(prompt=prompt, negative_prompt=negative)
    return rewriter


def _generator(urls=None, side_effect=None) -> AsyncMock:
    generator = AsyncMock()
    if side_effect is not None:
        generator.generate.side_effect = side_effect
    else:
        generator.generate.return_value = list(urls or URLS)
    return generator


def _orchestrator(gateway=None, rewriter=None, generator=None, store=None, **kwargs):
    return VolleyOrchestrator(
        gateway=gateway or FakeGateway(),
        rewriter=rewriter or _rewriter(),
        generator=generator or _generator(),
        store=store or InMemoryHistoryStore(),
        policy=_policy(),
        **kwargs,
    )


class _Recorder:
    def __init__(self):
        self.updates: list[TurnUpdate] = []

    async def __call__(self, update: TurnUpdate) -> None:
        self.updates.append(update)

    def kinds(self):
        return [u.kind for u in self.updates]


# ─────────────────────────────────────────────────────────────────────────────
# Validation
# ─────────────────────────────────────────────────────────────────────────────

class TestInputValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("user_input", ["", "   ", "\n\t"])
    async def test_empty_input_rejected_before_any_call(self, user_input):
        gateway, rewriter, generator = FakeGateway(), _rewriter(), _generator()
        store = AsyncMock()
        orc = _orchestrator(gateway, rewriter, generator, store)

        with pytest.raises(InputValidationError):
            await orc.process_turn("alice", user_input)

        assert gateway.calls == []
        rewriter.rewrite.assert_not_awaited()
        generator.generate.assert_not_awaited()
        store.load.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("user_id", ["", "  ", None])
    async def test_empty_user_id_rejected(self, user_id):
        gateway = FakeGateway()
        with pytest.raises(InputValidationError):
            await _orchestrator(gateway).process_turn(user_id, "a fox")
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_user_id_with_path_characters_rejected_by_store(self):
        gateway = FakeGateway()
        with pytest.raises(InputValidationError):
            await _orchestrator(gateway).process_turn("../etc", "a fox")
        assert gateway.calls == []

    def test_negative_max_retries_rejected(self):
        with pytest.raises(ValueError):
            _orchestrator(max_retries=-1)


# ─────────────────────────────────────────────────────────────────────────────
# Happy path
# ─────────────────────────────────────────────────────────────────────────────

class TestProcessTurn:
    @pytest.mark.asyncio
    async def test_first_turn_uses_defaults_and_persists(self):
        store = InMemoryHistoryStore()
        generator = _generator()
        orc = _orchestrator(generator=generator, store=store, max_retries=2)

        urls = await orc.process_turn(" alice ", "  a fox in the snow ")

        assert urls == URLS
        prompt, negative, state, max_retries = generator.generate.call_args.args
        assert prompt == "a refined fox"
        assert state == _policy().default_state
        assert max_retries == 2

        history = await store.load("alice")
        assert len(history) == 1
        volley = history.last_volley
        assert volley.user_input == "a fox in the snow"
        assert volley.system_response == "a refined fox"
        assert volley.start_state == volley.end_state == _policy().default_state
        assert volley.image_urls == tuple(URLS)
        assert len(volley.detections) == len(DEFAULT_DETECTORS)

    @pytest.mark.asyncio
    async def test_every_detector_runs_concurrently_on_the_same_input(self):
        gateway = FakeGateway()
        await _orchestrator(gateway).process_turn("alice", "a fox")
        assert {c[0] for c in gateway.calls} == {s.request_id for s in DEFAULT_DETECTORS}
        assert {c[2] for c in gateway.calls} == {"a fox"}
        assert gateway.max_in_flight == len(DEFAULT_DETECTORS)

    @pytest.mark.asyncio
    async def test_complaints_adjust_state(self):
        gateway = FakeGateway({
            DetectorId.IMAGE_QUALITY.value: [
                {"complaint_type": "blurry"},
                {"complaint_type": "wrong_content", "complaint_text": "extra tail"},
                {"complaint_type": "boring"},
            ],
        })
        generator = _generator()
        store = InMemoryHistoryStore()
        recorder = _Recorder()

        await _orchestrator(gateway, generator=generator, store=store).process_turn(
            "alice", "blurry and the tail is wrong", notify=recorder
        )

        state = generator.generate.call_args.args[2]
        assert state.steps == 23
        assert state.guidance_scale == 10.5

        summary = next(u.text for u in recorder.updates if u.kind is UpdateKind.TEXT)
        assert '"a refined fox"' in summary
        assert ChangeDescription.CREATIVE_LATER.value in summary
        assert summary.count(ChangeDescription.LESS_CREATIVE.value) == 1

        volley = (await store.load("alice")).last_volley
        assert volley.end_state == state
        assert volley.start_state == _policy().default_state

    @pytest.mark.asyncio
    async def test_wrong_content_text_reaches_rewriter(self):
        gateway = FakeGateway({
            EXTENDED_WRONG_CONTENT_ID: [{"complaint_type": "wrong_content", "complaint_text": "the hat"}],
        })
        rewriter = _rewriter()
        await _orchestrator(gateway, rewriter).process_turn("alice", "remove the hat")
        context = rewriter.rewrite.call_args.args[0]
        assert context.wrong_content_text == "the hat"

    @pytest.mark.asyncio
    async def test_extended_detector_sees_previous_prompt(self):
        store = InMemoryHistoryStore()
        gateway = FakeGateway()
        orc = _orchestrator(gateway, _rewriter("a castle on a hill"), store=store)
        await orc.process_turn("alice", "a castle")
        gateway.calls.clear()

        await orc.process_turn("alice", "no, the castle should be blue")
        instruction = next(c[1] for c in gateway.calls if c[0] == EXTENDED_WRONG_CONTENT_ID)
        assert "a castle on a hill" in instruction


# ─────────────────────────────────────────────────────────────────────────────
# Multi-turn state
# ─────────────────────────────────────────────────────────────────────────────

class TestAcrossTurns:
    @pytest.mark.asyncio
    async def test_text_model_is_sticky(self):
        store = InMemoryHistoryStore()
        generator = _generator()
        recorder = _Recorder()

        wants_text = FakeGateway({DetectorId.TEXT_WANTED.value: [{"is_text_wanted_on_image": True}]})
        await _orchestrator(wants_text, generator=generator, store=store).process_turn(
            "alice", "a sign that says OPEN", notify=recorder
        )
        first_state = generator.generate.call_args.args[2]
        assert first_state.model_id == TEXT_MODEL
        assert first_state.steps == 21
        summary = next(u.text for u in recorder.updates if u.kind is UpdateKind.TEXT)
        assert "text capable" in summary

        no_text = FakeGateway({DetectorId.TEXT_WANTED.value: [{"is_text_wanted_on_image": False}]})
        await _orchestrator(no_text, generator=generator, store=store).process_turn(
            "alice", "make it red"
        )
        second_state = generator.generate.call_args.args[2]
        assert second_state.model_id == TEXT_MODEL
        assert second_state == first_state

    @pytest.mark.asyncio
    async def test_next_turn_starts_from_previous_end_state(self):
        store = InMemoryHistoryStore()
        blurry = FakeGateway({DetectorId.IMAGE_QUALITY.value: [{"complaint_type": "blurry"}]})
        orc = _orchestrator(blurry, store=store)
        await orc.process_turn("alice", "too blurry")
        await orc.process_turn("alice", "still blurry")

        history = await store.load("alice")
        assert history.volleys[1].start_state == history.volleys[0].end_state
        assert history.volleys[1].end_state.steps == 26

    @pytest.mark.asyncio
    async def test_context_includes_recent_history(self):
        store = InMemoryHistoryStore()
        rewriter = _rewriter()
        orc = _orchestrator(rewriter=rewriter, store=store, context_volleys=2)
        for text in ("one", "two", "three", "four"):
            await orc.process_turn("alice", text)

        context = rewriter.rewrite.call_args.args[0]
        assert "USER INPUT: two" in context.history_context
        assert "USER INPUT: one" not in context.history_context
        assert context.is_new_session is False

    @pytest.mark.asyncio
    async def test_start_new_image_drops_context(self):
        store = InMemoryHistoryStore()
        rewriter = _rewriter()
        await _orchestrator(rewriter=rewriter, store=store).process_turn("alice", "a fox")

        fresh = FakeGateway({DetectorId.START_NEW_IMAGE.value: [{"start_new_image": True}]})
        await _orchestrator(fresh, rewriter, store=store).process_turn("alice", "now a whale")

        context = rewriter.rewrite.call_args.args[0]
        assert context.is_new_session is True
        assert context.history_context == ""
        assert (await store.load("alice")).last_volley.is_new_session is True


# ─────────────────────────────────────────────────────────────────────────────
# Failures
# ─────────────────────────────────────────────────────────────────────────────

class TestFailures:
    @pytest.mark.asyncio
    async def test_any_detector_error_aborts_turn(self):
        gateway = FakeGateway(errors={DetectorId.GENERATION_SPEED.value: "LLM call failed"})
        rewriter, generator, store = _rewriter(), _generator(), InMemoryHistoryStore()

        with pytest.raises(ClassificationError) as exc_info:
            await _orchestrator(gateway, rewriter, generator, store).process_turn("alice", "a fox")

        assert exc_info.value.detector_ids == [DetectorId.GENERATION_SPEED.value]
        rewriter.rewrite.assert_not_awaited()
        generator.generate.assert_not_awaited()
        assert len(await store.load("alice")) == 0

    @pytest.mark.asyncio
    async def test_raising_detector_becomes_classification_error(self):
        class RaisingGateway(FakeGateway):
            def __init__(self):
                super().__init__()
                self.finished: list[str] = []

            async def classify(self, detector_id, instruction, user_text):
                if detector_id == DetectorId.START_NEW_IMAGE.value:
                    raise RuntimeError("boom")
                for _ in range(3):
                    await asyncio.sleep(0)
                self.finished.append(detector_id)
                return ClassificationResult(detector_id=detector_id)

        gateway = RaisingGateway()
        rewriter, store = _rewriter(), InMemoryHistoryStore()

        with pytest.raises(ClassificationError) as exc_info:
            await _orchestrator(gateway, rewriter, store=store).process_turn("alice", "a fox")

        assert exc_info.value.detector_ids == [DetectorId.START_NEW_IMAGE.value]
        assert "RuntimeError: boom" in str(exc_info.value)
        assert len(gateway.finished) == len(DEFAULT_DETECTORS) - 1
        rewriter.rewrite.assert_not_awaited()
        assert len(await store.load("alice")) == 0

    @pytest.mark.asyncio
    async def test_badly_shaped_detection_aborts_turn(self):
        gateway = FakeGateway({DetectorId.TEXT_WANTED.value: [{"is_text_wanted_on_image": "maybe"}]})
        store = InMemoryHistoryStore()
        with pytest.raises(DetectionDecodeError):
            await _orchestrator(gateway, store=store).process_turn("alice", "a fox")
        assert len(await store.load("alice")) == 0

    @pytest.mark.asyncio
    async def test_rewrite_error_aborts_before_generation(self):
        rewriter = AsyncMock()
        rewriter.rewrite.side_effect = RewriteError("empty prompt")
        generator, store = _generator(), InMemoryHistoryStore()
        with pytest.raises(RewriteError):
            await _orchestrator(rewriter=rewriter, generator=generator, store=store).process_turn(
                "alice", "a fox"
            )
        generator.generate.assert_not_awaited()
        assert len(await store.load("alice")) == 0

    @pytest.mark.asyncio
    async def test_generation_failure_commits_nothing(self):
        store = InMemoryHistoryStore()
        generator = _generator(side_effect=GenerationFatalError("boom", status_code=500))
        with pytest.raises(GenerationFatalError):
            await _orchestrator(generator=generator, store=store).process_turn("alice", "a fox")
        assert len(await store.load("alice")) == 0

    @pytest.mark.asyncio
    async def test_persistence_error_after_images_were_delivered(self):
        store = AsyncMock()
        store.load.return_value = await InMemoryHistoryStore().load("alice")
        store.append.side_effect = PersistenceError("disk full")
        recorder = _Recorder()

        with pytest.raises(PersistenceError):
            await _orchestrator(store=store).process_turn("alice", "a fox", notify=recorder)

        images = [u for u in recorder.updates if u.kind is UpdateKind.IMAGES]
        assert images and images[0].image_urls == tuple(URLS)


# ─────────────────────────────────────────────────────────────────────────────
# Notifications with the real generation client
# ─────────────────────────────────────────────────────────────────────────────

class TestNotifications:
    @staticmethod
    def _http_generator(statuses: list[int]) -> GenerationClient:
        queue = list(statuses)

        def handler(request: httpx.Request) -> httpx.Response:
            status = queue.pop(0)
            if status == 200:
                return httpx.Response(200, json={"images": [{"url": u} for u in URLS]})
            return httpx.Response(status)

        async def no_sleep(seconds: float) -> None:
            return None

        return GenerationClient(
            url="https://gateway.test/text-to-image",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            sleep=no_sleep,
        )

    @pytest.mark.asyncio
    async def test_update_sequence_with_retries(self):
        recorder = _Recorder()
        orc = _orchestrator(generator=self._http_generator([503, 503, 200]), max_retries=3)

        urls = await orc.process_turn("alice", "a fox", notify=recorder)

        assert urls == URLS
        assert recorder.kinds() == [
            UpdateKind.STATE,
            UpdateKind.STATE,
            UpdateKind.TEXT,
            UpdateKind.PROGRESS,
            UpdateKind.IMAGES,
        ]
        assert recorder.updates[0].text == "Thinking..."
        progress = recorder.updates[3]
        assert progress.metadata == {"attempt": 2, "wait_seconds": 4.0}

    @pytest.mark.asyncio
    async def test_overloaded_service_is_fatal_and_commits_nothing(self):
        store = InMemoryHistoryStore()
        orc = _orchestrator(generator=self._http_generator([503, 503]), store=store, max_retries=1)
        with pytest.raises(GenerationOverloadedError):
            await orc.process_turn("alice", "a fox")
        assert len(await store.load("alice")) == 0

    @pytest.mark.asyncio
    async def test_no_notify_is_fine(self):
        orc = _orchestrator(generator=self._http_generator([503, 503, 200]), max_retries=3)
        assert await orc.process_turn("alice", "a fox") == URLS
