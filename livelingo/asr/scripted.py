from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from livelingo.asr.base import ErrorCallback, RecognizerAdapter, ResultCallback
from livelingo.contracts import RecognitionConfig, TranscriptEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScriptStep:
    at: float  # seconds after start
    text: str
    is_final: bool
    confidence: Optional[float] = None


DEFAULT_SCRIPT: tuple[ScriptStep, ...] = (
    ScriptStep(at=1.0, text="This is a scripted transcript result.", is_final=False, confidence=0.85),
    ScriptStep(
        at=3.0,
        text="This is a scripted transcript result. The speech recognition is working.",
        is_final=True,
        confidence=0.92,
    ),
)


class ScriptedRecognizer(RecognizerAdapter):
    """
    Provider-free recognizer: plays a fixed script of results on the event loop
    and only counts the audio it is fed. Used for development and tests.
    """

    def __init__(self, script: Sequence[ScriptStep] = DEFAULT_SCRIPT) -> None:
        self.script = tuple(script)
        self.bytes_written = 0
        self.frames_written = 0
        self.config: Optional[RecognitionConfig] = None
        self._handles: list[asyncio.TimerHandle] = []
        self._active = False

    @property
    def name(self) -> str:
        return "scripted"

    @property
    def active(self) -> bool:
        return self._active

    def start(self, config: RecognitionConfig, on_result: ResultCallback, on_error: ErrorCallback) -> None:
        if self._active:
            raise RuntimeError("recognizer already started")
        loop = asyncio.get_running_loop()
        self.config = config
        self._active = True
        for step in self.script:
            if not config.interim_results and not step.is_final:
                continue
            event = TranscriptEvent(text=step.text, is_final=step.is_final, confidence=step.confidence)
            self._handles.append(loop.call_later(max(0.0, step.at), self._deliver, on_result, event))

    def _deliver(self, on_result: ResultCallback, event: TranscriptEvent) -> None:
        if self._active:
            on_result(event)

    def write(self, frame: bytes) -> None:
        if not self._active:
            raise RuntimeError("recognizer is not started")
        self.bytes_written += len(frame)
        self.frames_written += 1

    def close(self) -> None:
        if not self._active:
            return
        self._active = False
        for handle in self._handles:
            handle.cancel()
        self._handles.clear()
        logger.debug("scripted_recognizer_closed", extra={"frames": self.frames_written})
