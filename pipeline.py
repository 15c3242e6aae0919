"""Generation run state machine.

    IDLE ─submit─▶ GENERATING_TEXT ─text ok─▶ GENERATING_IMAGE ─image ok─▶ COMPLETE
                         │                          │
                         └──────── failure ─────────┴──────────────────▶ ERROR

COMPLETE and ERROR only move on a fresh submission, which clears the
previous concept, image and error.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Optional, Union

from concept import AppPhase, BrandConcept, GeneratedAsset
from generation import GenerationFailure

log = logging.getLogger(__name__)

FAILURE_MESSAGE = "The creative spirits are turbulent. Please try again."


class ValidationFailure(ValueError):
    """The prompt was rejected before anything was dispatched."""


class InvalidTransition(RuntimeError):
    pass


class PipelineBusy(InvalidTransition):
    """A submission arrived while a run is still in flight."""


def validate_prompt(prompt: Optional[str]) -> str:
    if not isinstance(prompt, str) or not prompt.strip():
        raise ValidationFailure("prompt is required")
    return prompt.strip()


# ---------------------------------------------------------------------------
# State + events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PipelineState:
    phase: AppPhase = AppPhase.IDLE
    concept: Optional[BrandConcept] = None
    image_url: Optional[str] = None
    error: Optional[str] = None

    @property
    def asset(self) -> GeneratedAsset:
        return GeneratedAsset(concept=self.concept, image_url=self.image_url)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value,
            "concept": self.concept.to_dict() if self.concept else None,
            "imageUrl": self.image_url,
            "error": self.error,
        }


@dataclass(frozen=True)
class Submitted:
    prompt: str


@dataclass(frozen=True)
class TextReady:
    concept: BrandConcept


@dataclass(frozen=True)
class TextFailed:
    message: str


@dataclass(frozen=True)
class ImageReady:
    image_url: str


@dataclass(frozen=True)
class ImageFailed:
    message: str


Event = Union[Submitted, TextReady, TextFailed, ImageReady, ImageFailed]

_RESTARTABLE = (AppPhase.IDLE, AppPhase.COMPLETE, AppPhase.ERROR)


def transition(state: PipelineState, event: Event) -> PipelineState:
    """Return the state that follows `event`. Raises InvalidTransition otherwise."""
    phase = state.phase

    if isinstance(event, Submitted):
        if phase in _RESTARTABLE:
            return PipelineState(phase=AppPhase.GENERATING_TEXT)
        raise PipelineBusy(f"cannot submit while {phase.value}")

    if phase is AppPhase.GENERATING_TEXT:
        if isinstance(event, TextReady):
            return replace(state, phase=AppPhase.GENERATING_IMAGE, concept=event.concept)
        if isinstance(event, TextFailed):
            return replace(state, phase=AppPhase.ERROR, error=event.message)

    if phase is AppPhase.GENERATING_IMAGE:
        if isinstance(event, ImageReady):
            return replace(state, phase=AppPhase.COMPLETE, image_url=event.image_url)
        if isinstance(event, ImageFailed):
            return replace(state, phase=AppPhase.ERROR, error=event.message)

    raise InvalidTransition(f"{type(event).__name__} not allowed in {phase.value}")


# ---------------------------------------------------------------------------
# Session controller
# ---------------------------------------------------------------------------

_MESSAGES = {
    AppPhase.GENERATING_TEXT: "Drafting brand identity…",
    AppPhase.GENERATING_IMAGE: "Crafting visual identity…",
    AppPhase.COMPLETE: "Done!",
}


class BrandSession:
    """Owns one browser session's run state and sequences the two calls."""

    def __init__(
        self,
        client: Any,   # generation.GenerationClient
        progress_cb: Optional[Callable[[Dict], None]] = None,
    ) -> None:
        self.client = client
        self.progress_cb = progress_cb
        self._state = PipelineState()
        self._lock = threading.Lock()

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def asset(self) -> GeneratedAsset:
        return self._state.asset

    def _dispatch(self, event: Event) -> PipelineState:
        with self._lock:
            self._state = transition(self._state, event)
            state = self._state
        self._emit(state)
        return state

    def _emit(self, state: PipelineState) -> None:
        log.debug("Phase → %s", state.phase.value)
        if self.progress_cb is None:
            return
        event = state.to_dict()
        event["message"] = state.error or _MESSAGES.get(state.phase, "")
        event["ts"] = time.time()
        self.progress_cb(event)

    def submit(self, prompt: str) -> PipelineState:
        """Start a run: validate the prompt and enter GENERATING_TEXT."""
        validate_prompt(prompt)
        return self._dispatch(Submitted(prompt))

    def execute(self, prompt: str) -> PipelineState:
        """Run both generation steps for a submission already accepted."""
        t0 = time.time()
        try:
            concept = self.client.generate_identity(prompt)
        except GenerationFailure as exc:
            log.error("Run failed at text step: %s", exc, exc_info=True)
            return self._dispatch(TextFailed(FAILURE_MESSAGE))
        except Exception as exc:
            log.error("Unexpected error at text step: %s", exc, exc_info=True)
            return self._dispatch(TextFailed(FAILURE_MESSAGE))
        self._dispatch(TextReady(concept))

        try:
            image_url = self.client.generate_image(concept)
        except GenerationFailure as exc:
            log.error("Run failed at image step for %r: %s", concept.name, exc, exc_info=True)
            return self._dispatch(ImageFailed(FAILURE_MESSAGE))
        except Exception as exc:
            log.error("Unexpected error at image step for %r: %s", concept.name, exc, exc_info=True)
            return self._dispatch(ImageFailed(FAILURE_MESSAGE))
        state = self._dispatch(ImageReady(image_url))

        log.info("Run complete: %r in %.1fs", concept.name, time.time() - t0)
        return state

    def run(self, prompt: str) -> PipelineState:
        self.submit(prompt)
        return self.execute(prompt)
