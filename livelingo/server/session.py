"""Per-connection transcription/translation orchestrator.

One StreamingSession exists per transport connection. It owns the
recognizer and translator handles of the running stream, the mutable session
config, and the translation dedup cursor. Everything it produces goes to a
single synchronous `sink`, in the order the session decides on it.

Translation decision for every transcript result (interim or final):
  translate iff translation is enabled, the trimmed text is non-empty, longer
  than `min_translate_chars`, and differs from the last translated text.
A final result always resets the dedup cursor so the next utterance may be
translated even if it repeats the previous one.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, replace
from enum import Enum
from functools import partial
from typing import Callable, Optional

from livelingo.app.diagnostics import summarize_exception
from livelingo.asr.base import RecognizerAdapter
from livelingo.contracts import (
    DEFAULT_SOURCE_LANGUAGE,
    DEFAULT_TARGET_LANGUAGE,
    TRANSCRIPTION_ERROR,
    TRANSLATION_ERROR,
    ErrorEvent,
    RecognitionConfig,
    TranscriptEvent,
    TranslationEvent,
    TranslationRequest,
)
from livelingo.nlp.translator.base import Translator
from livelingo.transport.messages import (
    AudioData,
    ControlMessage,
    ServerEvent,
    SetTargetLanguage,
    SetTranslationEnabled,
    StartTranscription,
    StopTranscription,
)

logger = logging.getLogger(__name__)

EventSink = Callable[[ServerEvent], None]
RecognizerFactory = Callable[[], RecognizerAdapter]
TranslatorFactory = Callable[[], Translator]

# log every Nth dropped frame after the first one
_DROP_LOG_EVERY = 50


class SessionState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    CLOSED = "closed"


@dataclass
class SessionConfig:
    target_language: str = DEFAULT_TARGET_LANGUAGE
    translation_enabled: bool = False
    last_translated_text: str = ""
    source_language: Optional[str] = DEFAULT_SOURCE_LANGUAGE
    recognition_language: str = "en-US"
    min_translate_chars: int = 3
    promote_final_translation: bool = False


@dataclass
class SessionStats:
    frames_forwarded: int = 0
    frames_dropped: int = 0
    transcripts: int = 0
    translations_requested: int = 0
    translations_emitted: int = 0
    translations_failed: int = 0
    translations_discarded: int = 0


def _describe(error: BaseException) -> str:
    return summarize_exception(str(error) or type(error).__name__)


class StreamingSession:
    def __init__(
        self,
        *,
        sink: EventSink,
        recognizer_factory: RecognizerFactory,
        translator_factory: TranslatorFactory,
        config: Optional[SessionConfig] = None,
        session_id: Optional[str] = None,
    ) -> None:
        self.session_id = session_id or uuid.uuid4().hex[:8]
        self.config = config if config is not None else SessionConfig()
        self.stats = SessionStats()
        self._sink = sink
        self._recognizer_factory = recognizer_factory
        self._translator_factory = translator_factory
        self._state = SessionState.IDLE
        self._recognizer: Optional[RecognizerAdapter] = None
        self._translator: Optional[Translator] = None
        self._epoch = 0
        self._utterance = 0
        self._utterance_open = False
        self._last_translation: Optional[TranslationEvent] = None
        self._pending: set[asyncio.Task] = set()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def recognizer(self) -> Optional[RecognizerAdapter]:
        return self._recognizer

    @property
    def pending_translations(self) -> int:
        return len(self._pending)

    def _log(self, level: int, event: str, **fields) -> None:
        logger.log(level, event, extra={"session_id": self.session_id, **fields})

    def _emit(self, event: ServerEvent) -> None:
        self._sink(event)

    # --- control surface ---

    def handle_message(self, msg: ControlMessage) -> None:
        if isinstance(msg, AudioData):
            self.push_audio(msg.frame)
        elif isinstance(msg, SetTargetLanguage):
            self.set_target_language(msg.language)
        elif isinstance(msg, SetTranslationEnabled):
            self.set_translation_enabled(msg.enabled)
        elif isinstance(msg, StartTranscription):
            self.start()
        elif isinstance(msg, StopTranscription):
            self.stop()
        else:
            raise TypeError(f"Not a control message: {msg!r}")

    def set_target_language(self, language: str) -> None:
        self.config.target_language = language
        self._log(logging.INFO, "target_language_set", target_language=language)

    def set_translation_enabled(self, enabled: bool) -> None:
        self.config.translation_enabled = bool(enabled)
        if not enabled:
            self.config.last_translated_text = ""
        self._log(logging.INFO, "translation_enabled_set", enabled=bool(enabled))

    def start(self) -> None:
        if self._state == SessionState.STREAMING:
            self._log(logging.DEBUG, "start_ignored_already_streaming")
            return
        if self._state == SessionState.CLOSED:
            self._log(logging.WARNING, "start_ignored_session_closed")
            return

        self._epoch += 1
        epoch = self._epoch
        recognizer: Optional[RecognizerAdapter] = None
        try:
            recognizer = self._recognizer_factory()
            translator = self._translator_factory()
            recognizer.start(
                RecognitionConfig(language=self.config.recognition_language),
                partial(self._on_result, epoch),
                partial(self._on_recognizer_error, epoch),
            )
        except Exception as e:
            self._log(logging.ERROR, "stream_start_failed", error=str(e))
            logger.debug("stream_start_failed_traceback", exc_info=True)
            if recognizer is not None:
                self._close_recognizer(recognizer)
            self._emit(ErrorEvent(kind=TRANSCRIPTION_ERROR, error=f"Failed to start transcription: {_describe(e)}"))
            return

        self._recognizer = recognizer
        self._translator = translator
        self._state = SessionState.STREAMING
        self._log(
            logging.INFO,
            "stream_started",
            recognizer=recognizer.name,
            translator=translator.name,
            epoch=epoch,
        )

    def push_audio(self, frame: bytes) -> None:
        recognizer = self._recognizer
        if self._state != SessionState.STREAMING or recognizer is None:
            self.stats.frames_dropped += 1
            if self.stats.frames_dropped == 1 or self.stats.frames_dropped % _DROP_LOG_EVERY == 0:
                self._log(
                    logging.WARNING,
                    "audio_frame_dropped_not_streaming",
                    dropped=self.stats.frames_dropped,
                    bytes=len(frame),
                )
            return
        try:
            recognizer.write(frame)
        except Exception as e:
            self._on_recognizer_error(self._epoch, e)
            return
        self.stats.frames_forwarded += 1

    def stop(self) -> None:
        if self._state != SessionState.STREAMING:
            return
        self._teardown()
        self._state = SessionState.IDLE
        self._log(logging.INFO, "stream_stopped", **vars(self.stats))

    def close(self) -> None:
        if self._state == SessionState.CLOSED:
            return
        self._teardown()
        self._state = SessionState.CLOSED
        self._log(logging.INFO, "session_closed", pending_translations=len(self._pending))

    async def drain(self) -> None:
        """Wait until every translation issued so far has resolved."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # --- recognizer callbacks ---

    def _is_current(self, epoch: int) -> bool:
        return epoch == self._epoch and self._state == SessionState.STREAMING

    def _on_result(self, epoch: int, event: TranscriptEvent) -> None:
        if not self._is_current(epoch):
            self._log(logging.DEBUG, "stale_transcript_discarded", epoch=epoch)
            return
        self.handle_transcript(event)

    def _on_recognizer_error(self, epoch: int, error: BaseException) -> None:
        if not self._is_current(epoch):
            self._log(logging.DEBUG, "stale_recognizer_error_discarded", epoch=epoch, error=str(error))
            return
        self._log(logging.ERROR, "recognizer_stream_error", error=str(error))
        self._emit(ErrorEvent(kind=TRANSCRIPTION_ERROR, error=_describe(error)))
        self._teardown()
        self._state = SessionState.IDLE

    def handle_transcript(self, event: TranscriptEvent) -> None:
        """Apply one recognizer result while streaming."""
        if self._state != SessionState.STREAMING:
            return
        cfg = self.config
        utterance = self._utterance
        self.stats.transcripts += 1
        self._emit(replace(event, utterance=utterance))
        self._utterance_open = not event.is_final

        candidate = (event.text or "").strip()
        if self.should_translate(candidate):
            self._schedule_translation(candidate, event.is_final, utterance)
        elif event.is_final and cfg.promote_final_translation:
            self._promote_cached_translation(candidate, utterance)

        if event.is_final:
            cfg.last_translated_text = ""
            self._utterance += 1

    def should_translate(self, candidate: str) -> bool:
        cfg = self.config
        return (
            self._translator is not None
            and cfg.translation_enabled
            and bool(candidate)
            and candidate != cfg.last_translated_text
            and len(candidate) > cfg.min_translate_chars
        )

    # --- translation ---

    def _schedule_translation(self, candidate: str, is_final: bool, utterance: int) -> None:
        translator = self._translator
        if translator is None:
            return
        request = TranslationRequest(
            text=candidate,
            source_lang=self.config.source_language,
            target_lang=self.config.target_language,
        )
        self.stats.translations_requested += 1
        task = asyncio.get_running_loop().create_task(
            self._translate(self._epoch, translator, request, is_final, utterance)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _translate(
        self,
        epoch: int,
        translator: Translator,
        request: TranslationRequest,
        is_final: bool,
        utterance: int,
    ) -> None:
        try:
            result = await asyncio.to_thread(translator.translate, request)
        except Exception as e:
            if not self._is_current(epoch):
                self.stats.translations_discarded += 1
                self._log(logging.INFO, "stale_translation_error_discarded", error=str(e))
                return
            self.stats.translations_failed += 1
            self._log(
                logging.WARNING,
                "translation_failed",
                error=str(e),
                chars=len(request.text),
                target_language=request.target_lang,
            )
            self._emit(ErrorEvent(kind=TRANSLATION_ERROR, error=_describe(e)))
            return

        if not self._is_current(epoch):
            self.stats.translations_discarded += 1
            self._log(logging.DEBUG, "stale_translation_discarded", chars=len(request.text))
            return

        if not is_final and utterance == self._utterance and self.config.translation_enabled:
            # a final already reset the cursor for its utterance; keep it reset
            self.config.last_translated_text = request.text
        translation = TranslationEvent(
            original=request.text,
            translated=result.translated_text,
            target_language=request.target_lang,
            is_final=is_final,
            detected_source_language=result.detected_source_lang,
            utterance=utterance,
        )
        self._last_translation = translation
        self.stats.translations_emitted += 1
        self._emit(translation)

    def _promote_cached_translation(self, candidate: str, utterance: int) -> None:
        # The final repeats the interim that was just translated: reuse that
        # translation as the final one instead of calling the provider again.
        cached = self._last_translation
        if not candidate or cached is None or cached.is_final:
            return
        if cached.original != candidate or cached.utterance != utterance:
            return
        if candidate != self.config.last_translated_text:
            return
        self.stats.translations_emitted += 1
        self._emit(replace(cached, is_final=True))

    # --- teardown ---

    def _close_recognizer(self, recognizer: RecognizerAdapter) -> None:
        try:
            recognizer.close()
        except Exception:
            self._log(logging.WARNING, "recognizer_close_failed")
            logger.debug("recognizer_close_failed_traceback", exc_info=True)

    def _teardown(self) -> None:
        recognizer, self._recognizer = self._recognizer, None
        if recognizer is not None:
            self._close_recognizer(recognizer)
        self._translator = None
        self.config.last_translated_text = ""
        self._last_translation = None
        if self._utterance_open:
            # an interrupted utterance never gets its final; do not reuse its index
            self._utterance += 1
            self._utterance_open = False
