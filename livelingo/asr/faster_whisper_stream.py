from __future__ import annotations

import asyncio
import logging
import math
import queue
import threading
from typing import Optional

import numpy as np

from livelingo.asr.base import ErrorCallback, RecognizerAdapter, ResultCallback
from livelingo.audio.vad import EnergyVAD, SpeechGate, pcm16_samples
from livelingo.contracts import RecognitionConfig, TranscriptEvent
from livelingo.errors import RecognizerStreamError

logger = logging.getLogger(__name__)

_STOP = None


def whisper_language(code: Optional[str]) -> Optional[str]:
    """'en-US' -> 'en'; 'auto' or empty -> None (let the model detect)."""
    code = (code or "").strip()
    if not code or code.lower() == "auto":
        return None
    return code.split("-")[0].split("_")[0].lower()


class _Utterance:
    def __init__(self) -> None:
        self.parts: list[bytes] = []
        self.seconds = 0.0
        self.trailing_silence = 0.0
        self.since_interim = 0.0
        self.last_interim = ""

    def add(self, frame: bytes, seconds: float) -> None:
        self.parts.append(frame)
        self.seconds += seconds
        self.since_interim += seconds

    def pcm16(self) -> bytes:
        return b"".join(self.parts)


class WhisperModelCache:
    """Loads one WhisperModel on first use and hands the same instance to every caller."""

    def __init__(self, model_size: str = "tiny", *, device: str = "cpu", compute_type: str = "int8") -> None:
        self.model_size = model_size
        self.device = device
        self.compute_type = compute_type
        self._model = None
        self._lock = threading.Lock()

    def get(self):
        with self._lock:
            if self._model is None:
                from faster_whisper import WhisperModel

                logger.info("whisper_model_loading", extra={"model_size": self.model_size, "device": self.device})
                self._model = WhisperModel(
                    self.model_size,
                    device=self.device,
                    compute_type=self.compute_type,
                )
            return self._model


class FasterWhisperStreamRecognizer(RecognizerAdapter):
    """
    Streaming recognition on top of a local faster-whisper model.

    Frames are gated by a speech detector. While an utterance is open the
    audio gathered so far is re-decoded every `interim_sec` seconds and
    reported as an interim result; the utterance is closed with a final
    result after `silence_sec` of trailing non-speech or once it reaches
    `max_utter_sec`. Decoding runs on a worker thread, results are handed
    back to the loop that called `start`.
    """

    def __init__(
        self,
        *,
        model_size: str = "tiny",
        device: str = "cpu",
        compute_type: str = "int8",
        language: Optional[str] = None,
        beam_size: int = 1,
        vad: Optional[SpeechGate] = None,
        silence_sec: float = 0.8,
        min_utter_sec: float = 0.4,
        max_utter_sec: float = 8.0,
        interim_sec: float = 1.0,
        models: Optional[WhisperModelCache] = None,
    ) -> None:
        if silence_sec <= 0:
            raise ValueError("silence_sec must be > 0")
        if min_utter_sec < 0:
            raise ValueError("min_utter_sec must be >= 0")
        if max_utter_sec <= 0:
            raise ValueError("max_utter_sec must be > 0")
        if interim_sec <= 0:
            raise ValueError("interim_sec must be > 0")

        self.model_size = model_size
        self.device = device
        self.compute_type = compute_type
        self.language = language
        self.beam_size = beam_size
        self.vad = vad if vad is not None else EnergyVAD()
        self.silence_sec = float(silence_sec)
        self.min_utter_sec = float(min_utter_sec)
        self.max_utter_sec = float(max_utter_sec)
        self.interim_sec = float(interim_sec)

        self._models = models if models is not None else WhisperModelCache(
            model_size, device=device, compute_type=compute_type
        )
        self._model = None
        self._frames: "queue.Queue[Optional[bytes]]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._on_result: Optional[ResultCallback] = None
        self._on_error: Optional[ErrorCallback] = None
        self._config = RecognitionConfig()
        self._active = False

    @property
    def name(self) -> str:
        return "faster_whisper"

    @property
    def active(self) -> bool:
        return self._active

    def _get_model(self):
        if self._model is None:
            self._model = self._models.get()
        return self._model

    def start(self, config: RecognitionConfig, on_result: ResultCallback, on_error: ErrorCallback) -> None:
        if self._active:
            raise RuntimeError("recognizer already started")
        if config.channels != 1:
            raise ValueError("faster-whisper streaming expects mono audio")
        self._loop = asyncio.get_running_loop()
        self._config = config
        self._on_result = on_result
        self._on_error = on_error
        self._active = True
        self._thread = threading.Thread(
            target=self._run,
            name="livelingo-whisper-stream",
            daemon=True,
        )
        self._thread.start()

    def write(self, frame: bytes) -> None:
        if not self._active:
            raise RuntimeError("recognizer is not started")
        self._frames.put_nowait(bytes(frame))

    def close(self) -> None:
        if not self._active:
            return
        self._active = False
        self._frames.put_nowait(_STOP)

    # --- worker thread ---

    def _post(self, fn, arg) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(fn, arg)
        except RuntimeError:
            # loop closed between the check and the call
            logger.debug("whisper_stream_result_after_loop_closed")

    def _dispatch_result(self, event: TranscriptEvent) -> None:
        if self._active and self._on_result is not None:
            self._on_result(event)

    def _dispatch_error(self, error: BaseException) -> None:
        if self._active and self._on_error is not None:
            self._on_error(error)

    def _frame_seconds(self, frame: bytes) -> float:
        bytes_per_second = self._config.sample_rate * self._config.channels * 2
        return len(frame) / float(bytes_per_second) if bytes_per_second > 0 else 0.0

    def decode(self, pcm16: bytes) -> tuple[str, Optional[float]]:
        """Decode one block of PCM16 audio; returns (text, confidence)."""
        audio = pcm16_samples(pcm16).astype(np.float32) / 32768.0
        if not audio.size:
            return "", None
        model = self._get_model()
        language = self.language if self.language is not None else whisper_language(self._config.language)
        segments, _info = model.transcribe(
            audio,
            language=language,
            beam_size=self.beam_size,
            vad_filter=False,
            condition_on_previous_text=False,
            temperature=0.0,
        )
        texts: list[str] = []
        logprobs: list[float] = []
        for s in segments:
            text = (s.text or "").strip()
            if not text:
                continue
            texts.append(text)
            avg = getattr(s, "avg_logprob", None)
            if avg is not None:
                logprobs.append(float(avg))
        confidence = None
        if logprobs:
            confidence = min(1.0, max(0.0, math.exp(sum(logprobs) / len(logprobs))))
        return " ".join(texts).strip(), confidence

    def _finalize(self, utt: _Utterance, reason: str) -> None:
        if utt.seconds - utt.trailing_silence < self.min_utter_sec and not utt.last_interim:
            logger.debug("whisper_stream_skip_short", extra={"seconds": round(utt.seconds, 2)})
            return
        text, confidence = self.decode(utt.pcm16())
        logger.debug(
            "whisper_stream_final",
            extra={"reason": reason, "seconds": round(utt.seconds, 2), "chars": len(text)},
        )
        self._post(self._dispatch_result, TranscriptEvent(text=text, is_final=True, confidence=confidence))

    def _maybe_interim(self, utt: _Utterance) -> None:
        if not self._config.interim_results or utt.since_interim < self.interim_sec:
            return
        utt.since_interim = 0.0
        text, confidence = self.decode(utt.pcm16())
        if not text or text == utt.last_interim:
            return
        utt.last_interim = text
        self._post(self._dispatch_result, TranscriptEvent(text=text, is_final=False, confidence=confidence))

    def _run(self) -> None:
        utt: Optional[_Utterance] = None
        try:
            while True:
                frame = self._frames.get()
                if frame is _STOP or not self._active:
                    return
                seconds = self._frame_seconds(frame)
                if self.vad.is_speech(frame):
                    if utt is None:
                        utt = _Utterance()
                    utt.add(frame, seconds)
                    utt.trailing_silence = 0.0
                    if utt.seconds >= self.max_utter_sec:
                        self._finalize(utt, "max_utter_sec")
                        utt = None
                        continue
                    self._maybe_interim(utt)
                    continue

                if utt is None:
                    continue
                utt.add(frame, seconds)
                utt.trailing_silence += seconds
                if utt.trailing_silence >= self.silence_sec:
                    self._finalize(utt, "silence")
                    utt = None
        except Exception as e:
            logger.exception("whisper_stream_failed")
            self._post(self._dispatch_error, RecognizerStreamError(f"faster-whisper stream failed: {e}"))
