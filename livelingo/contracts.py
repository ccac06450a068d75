from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

SAMPLE_RATE = 16000
CHANNELS = 1
DEFAULT_SOURCE_LANGUAGE = "en"
DEFAULT_TARGET_LANGUAGE = "es"


@dataclass(frozen=True)
class TranslationRequest:
    text: str
    source_lang: Optional[str] = DEFAULT_SOURCE_LANGUAGE
    target_lang: str = DEFAULT_TARGET_LANGUAGE


@dataclass(frozen=True)
class TranslationResult:
    source_text: str
    translated_text: str
    provider: str
    detected_source_lang: Optional[str] = None


@dataclass(frozen=True)
class RecognitionConfig:
    """What the recognizer is told about the byte stream it will receive."""
    sample_rate: int = SAMPLE_RATE
    channels: int = CHANNELS
    encoding: str = "LINEAR16"
    language: str = "en-US"
    interim_results: bool = True


@dataclass(frozen=True)
class AudioFrame:
    """
    One processing quantum of captured audio, ready for the wire.
    pcm16: little-endian signed 16-bit PCM bytes, mono.
    """
    pcm16: bytes
    sample_rate: int = SAMPLE_RATE
    channels: int = CHANNELS

    @property
    def duration(self) -> float:
        bytes_per_second = self.sample_rate * self.channels * 2
        if bytes_per_second <= 0:
            return 0.0
        return len(self.pcm16) / float(bytes_per_second)


@dataclass(frozen=True)
class TranscriptEvent:
    text: str
    is_final: bool
    confidence: Optional[float] = None
    # index of the utterance within one connection, assigned by the session
    utterance: Optional[int] = None


@dataclass(frozen=True)
class TranslationEvent:
    original: str
    translated: str
    target_language: str
    is_final: bool
    detected_source_language: Optional[str] = None
    utterance: Optional[int] = None


TRANSCRIPTION_ERROR = "transcription-error"
TRANSLATION_ERROR = "translation-error"


@dataclass(frozen=True)
class ErrorEvent:
    kind: str  # TRANSCRIPTION_ERROR | TRANSLATION_ERROR
    error: str

    @property
    def is_translation(self) -> bool:
        return self.kind == TRANSLATION_ERROR
