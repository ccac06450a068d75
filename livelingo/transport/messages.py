"""Wire format of the transcription channel.

Text frames are JSON objects with a ``type`` discriminant, binary frames are
audio. Both directions decode into a closed set of dataclasses so nothing
past this module handles raw dicts.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Union

from livelingo.contracts import (
    TRANSCRIPTION_ERROR,
    TRANSLATION_ERROR,
    ErrorEvent,
    TranscriptEvent,
    TranslationEvent,
)
from livelingo.errors import ProtocolError

SET_TARGET_LANGUAGE = "set-target-language"
SET_TRANSLATION_ENABLED = "set-translation-enabled"
START_TRANSCRIPTION = "start-transcription"
STOP_TRANSCRIPTION = "stop-transcription"
AUDIO_DATA = "audio-data"

TRANSCRIPT = "transcript"
TRANSLATION = "translation"


@dataclass(frozen=True)
class SetTargetLanguage:
    language: str


@dataclass(frozen=True)
class SetTranslationEnabled:
    enabled: bool


@dataclass(frozen=True)
class StartTranscription:
    pass


@dataclass(frozen=True)
class StopTranscription:
    pass


@dataclass(frozen=True)
class AudioData:
    frame: bytes


ControlMessage = Union[
    SetTargetLanguage, SetTranslationEnabled, StartTranscription, StopTranscription, AudioData
]
ServerEvent = Union[TranscriptEvent, TranslationEvent, ErrorEvent]


def _load_object(raw: str | bytes) -> dict[str, Any]:
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ProtocolError(f"Invalid JSON message: {e}") from e
    if not isinstance(payload, dict):
        raise ProtocolError("Message must be a JSON object")
    kind = payload.get("type")
    if not isinstance(kind, str) or not kind:
        raise ProtocolError("Message is missing its 'type'")
    return payload


def _require(payload: dict[str, Any], key: str, kind: type | tuple[type, ...]) -> Any:
    value = payload.get(key)
    # bool is an int subclass; numeric fields must not accept it
    if isinstance(value, bool) and kind is not bool:
        raise ProtocolError(f"'{payload['type']}' field '{key}' has the wrong type")
    if not isinstance(value, kind):
        raise ProtocolError(f"'{payload['type']}' field '{key}' has the wrong type")
    return value


def _optional(payload: dict[str, Any], key: str, kind: type | tuple[type, ...]) -> Any:
    if payload.get(key) is None:
        return None
    return _require(payload, key, kind)


# --- client -> server ---

def encode_control(msg: ControlMessage) -> str | bytes:
    if isinstance(msg, AudioData):
        return bytes(msg.frame)
    if isinstance(msg, SetTargetLanguage):
        body: dict[str, Any] = {"type": SET_TARGET_LANGUAGE, "language": msg.language}
    elif isinstance(msg, SetTranslationEnabled):
        body = {"type": SET_TRANSLATION_ENABLED, "enabled": bool(msg.enabled)}
    elif isinstance(msg, StartTranscription):
        body = {"type": START_TRANSCRIPTION}
    elif isinstance(msg, StopTranscription):
        body = {"type": STOP_TRANSCRIPTION}
    else:
        raise TypeError(f"Not a control message: {msg!r}")
    return json.dumps(body, ensure_ascii=False)


def decode_control(raw: str | bytes) -> ControlMessage:
    if isinstance(raw, (bytes, bytearray, memoryview)):
        return AudioData(frame=bytes(raw))

    payload = _load_object(raw)
    kind = payload["type"]
    if kind == SET_TARGET_LANGUAGE:
        language = _require(payload, "language", str).strip()
        if not language:
            raise ProtocolError("'set-target-language' needs a non-empty language code")
        return SetTargetLanguage(language=language)
    if kind == SET_TRANSLATION_ENABLED:
        return SetTranslationEnabled(enabled=_require(payload, "enabled", bool))
    if kind == START_TRANSCRIPTION:
        return StartTranscription()
    if kind == STOP_TRANSCRIPTION:
        return StopTranscription()
    raise ProtocolError(f"Unknown message type: {kind}")


# --- server -> client ---

def encode_event(event: ServerEvent) -> str:
    if isinstance(event, TranscriptEvent):
        body: dict[str, Any] = {
            "type": TRANSCRIPT,
            "text": event.text,
            "isFinal": bool(event.is_final),
        }
        if event.confidence is not None:
            body["confidence"] = float(event.confidence)
        if event.utterance is not None:
            body["utterance"] = int(event.utterance)
    elif isinstance(event, TranslationEvent):
        body = {
            "type": TRANSLATION,
            "original": event.original,
            "translated": event.translated,
            "targetLanguage": event.target_language,
            "isFinal": bool(event.is_final),
        }
        if event.detected_source_language:
            body["detectedSourceLanguage"] = event.detected_source_language
        if event.utterance is not None:
            body["utterance"] = int(event.utterance)
    elif isinstance(event, ErrorEvent):
        body = {"type": event.kind, "error": event.error}
    else:
        raise TypeError(f"Not a server event: {event!r}")
    return json.dumps(body, ensure_ascii=False)


def decode_event(raw: str | bytes) -> ServerEvent:
    payload = _load_object(raw)
    kind = payload["type"]
    if kind == TRANSCRIPT:
        confidence = _optional(payload, "confidence", (int, float))
        return TranscriptEvent(
            text=_require(payload, "text", str),
            is_final=_require(payload, "isFinal", bool),
            confidence=None if confidence is None else float(confidence),
            utterance=_optional(payload, "utterance", int),
        )
    if kind == TRANSLATION:
        return TranslationEvent(
            original=_require(payload, "original", str),
            translated=_require(payload, "translated", str),
            target_language=_require(payload, "targetLanguage", str),
            is_final=_require(payload, "isFinal", bool),
            detected_source_language=_optional(payload, "detectedSourceLanguage", str),
            utterance=_optional(payload, "utterance", int),
        )
    if kind in (TRANSCRIPTION_ERROR, TRANSLATION_ERROR):
        return ErrorEvent(kind=kind, error=_require(payload, "error", str))
    raise ProtocolError(f"Unknown event type: {kind}")
