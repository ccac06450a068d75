from __future__ import annotations
import os
from typing import Any

from .base import RecognizerAdapter
from .faster_whisper_stream import FasterWhisperStreamRecognizer
from .scripted import ScriptedRecognizer

WHISPER_PROVIDERS = ("faster_whisper", "faster-whisper", "whisper")
SCRIPTED_PROVIDERS = ("scripted", "mock")


def resolve_provider(provider: str | None = None) -> str:
    return (provider or os.getenv("LIVELINGO_RECOGNIZER", "faster_whisper")).lower().strip()


def get_recognizer(provider: str | None = None, **options: Any) -> RecognizerAdapter:
    provider = resolve_provider(provider)

    if provider in WHISPER_PROVIDERS:
        return FasterWhisperStreamRecognizer(**options)
    if provider in SCRIPTED_PROVIDERS:
        return ScriptedRecognizer()

    raise ValueError(f"Unknown recognizer provider: {provider}")
