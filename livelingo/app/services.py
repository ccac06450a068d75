from __future__ import annotations

from functools import partial
from typing import Any

from livelingo.asr.base import RecognizerAdapter
from livelingo.asr.factory import WHISPER_PROVIDERS, get_recognizer, resolve_provider
from livelingo.asr.faster_whisper_stream import WhisperModelCache
from livelingo.audio.framer import DEFAULT_BLOCK_SIZE, AudioFramer
from livelingo.audio.vad import build_vad
from livelingo.client.channel import TranscriptionChannel
from livelingo.client.live import LiveCaptureController
from livelingo.client.recorder import SessionRecorder
from livelingo.contracts import SAMPLE_RATE
from livelingo.nlp.translator.factory import get_translator
from livelingo.server.app import TranscriptionServer
from livelingo.server.session import SessionConfig


def build_session_config(args: Any) -> SessionConfig:
    return SessionConfig(
        target_language=str(args.target_language),
        translation_enabled=bool(args.translation_enabled),
        source_language=str(args.source_language),
        recognition_language=str(args.recognition_language),
        min_translate_chars=max(0, int(args.min_translate_chars)),
        promote_final_translation=bool(args.promote_final_translation),
    )


def build_recognizer(args: Any, models: WhisperModelCache | None = None) -> RecognizerAdapter:
    provider = resolve_provider(args.recognizer)
    options: dict[str, Any] = {}
    if provider in WHISPER_PROVIDERS:
        options = {
            "model_size": str(args.model),
            "vad": build_vad(str(args.vad), sample_rate=SAMPLE_RATE, rms_threshold=float(args.rms_th)),
            "silence_sec": max(1, int(args.silence_chunks)) * DEFAULT_BLOCK_SIZE / SAMPLE_RATE,
            "min_utter_sec": max(0.0, float(args.min_utter_sec)),
            "max_utter_sec": max(0.5, float(args.max_utter_sec)),
            "interim_sec": max(0.1, float(args.interim_sec)),
        }
        if models is not None:
            options["models"] = models
    return get_recognizer(provider, **options)


def build_server(args: Any) -> TranscriptionServer:
    # each start gets a fresh recognizer; the model itself is loaded once per server
    models = WhisperModelCache(str(args.model))
    return TranscriptionServer(
        recognizer_factory=partial(build_recognizer, args, models),
        translator_factory=partial(get_translator, args.translator),
        session_config=partial(build_session_config, args),
        host=str(args.host),
        port=int(args.port),
    )


def build_live_controller(args: Any) -> LiveCaptureController:
    return LiveCaptureController(
        channel=TranscriptionChannel(str(args.server_url)),
        framer=AudioFramer(sample_rate=int(args.sr), block_size=max(256, int(args.block_size))),
        recorder=SessionRecorder(),
        device=args.device,
        target_language=str(args.target_language),
        translation_enabled=bool(args.translation_enabled),
        queue_maxsize=max(1, int(args.queue_maxsize)),
    )
