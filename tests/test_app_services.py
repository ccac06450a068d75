from __future__ import annotations

import json
import sys
import types
from pathlib import Path

import pytest

from livelingo.app import services
from livelingo.app.config import resolve_args
from livelingo.asr.faster_whisper_stream import FasterWhisperStreamRecognizer
from livelingo.asr.scripted import ScriptedRecognizer
from livelingo.audio.vad import EnergyVAD
from livelingo.client import recorder as recorder_mod
from livelingo.nlp.translator.stub import StubTranslator


def _args(tmp_path: Path, argv: list[str], payload: dict | None = None):
    cfg_path = tmp_path / "app.json"
    cfg_path.write_text(json.dumps(payload or {}), encoding="utf-8")
    return resolve_args([argv[0], "--config", str(cfg_path), *argv[1:]])


def test_build_session_config_from_args(tmp_path: Path) -> None:
    args = _args(
        tmp_path,
        ["serve", "--target-language", "de", "--translation-enabled", "--min-translate-chars", "-4"],
        {"source_language": "fr", "recognition_language": "fr-FR"},
    )
    cfg = services.build_session_config(args)
    assert cfg.target_language == "de"
    assert cfg.translation_enabled is True
    assert cfg.source_language == "fr"
    assert cfg.recognition_language == "fr-FR"
    assert cfg.min_translate_chars == 0
    assert cfg.last_translated_text == ""
    assert cfg.promote_final_translation is False


def test_build_recognizer_scripted_takes_no_whisper_options(tmp_path: Path) -> None:
    args = _args(tmp_path, ["serve", "--recognizer", "scripted"])
    assert isinstance(services.build_recognizer(args), ScriptedRecognizer)


def test_build_recognizer_whisper_options(tmp_path: Path) -> None:
    args = _args(
        tmp_path,
        ["serve", "--recognizer", "faster_whisper", "--model", "small", "--rms-th", "400", "--silence-chunks", "3"],
    )
    rec = services.build_recognizer(args)
    assert isinstance(rec, FasterWhisperStreamRecognizer)
    assert rec.model_size == "small"
    assert isinstance(rec.vad, EnergyVAD)
    assert rec.vad.rms_threshold == 400.0
    assert rec.silence_sec == pytest.approx(0.768)
    assert rec.min_utter_sec == 0.4
    assert rec.max_utter_sec == 8.0
    assert rec.interim_sec == 1.0


def test_build_recognizer_uses_env_provider(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("LIVELINGO_RECOGNIZER", "mock")
    args = _args(tmp_path, ["serve"])
    assert isinstance(services.build_recognizer(args), ScriptedRecognizer)


def test_build_server_wires_factories(tmp_path: Path) -> None:
    args = _args(
        tmp_path,
        ["serve", "--recognizer", "scripted", "--translator", "stub", "--port", "9100", "--target-language", "it"],
    )
    server = services.build_server(args)
    assert server.port == 9100
    assert server.host == "127.0.0.1"
    assert isinstance(server.recognizer_factory(), ScriptedRecognizer)
    assert isinstance(server.translator_factory(), StubTranslator)
    first = server.session_config()
    second = server.session_config()
    assert first.target_language == "it"
    assert first is not second


def test_build_live_controller(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(recorder_mod, "user_data_dir", lambda appname, appauthor=None: str(tmp_path))
    args = _args(
        tmp_path,
        ["listen", "--server-url", "ws://example:9000", "--device", "3", "--block-size", "10", "--queue-maxsize", "0"],
    )
    controller = services.build_live_controller(args)
    assert controller.channel.url == "ws://example:9000"
    assert controller.device == 3
    assert controller.framer.block_size == 256
    assert controller.queue_maxsize == 1
    assert controller.recorder.path == tmp_path / "storage.json"
    assert controller.translation_enabled is False


def _install_fake_whisper(monkeypatch) -> list:
    built: list = []

    class FakeWhisperModel:
        def __init__(self, model_size, device="cpu", compute_type="int8") -> None:
            self.model_size = model_size
            built.append(self)

    module = types.ModuleType("faster_whisper")
    module.WhisperModel = FakeWhisperModel
    monkeypatch.setitem(sys.modules, "faster_whisper", module)
    return built


def test_server_loads_whisper_model_once_across_restarts(tmp_path: Path, monkeypatch) -> None:
    built = _install_fake_whisper(monkeypatch)
    args = _args(tmp_path, ["serve", "--recognizer", "faster_whisper", "--model", "base"])
    server = services.build_server(args)

    first = server.recognizer_factory()
    second = server.recognizer_factory()
    assert first is not second
    assert first._get_model() is second._get_model()
    assert len(built) == 1
    assert built[0].model_size == "base"


def test_standalone_recognizers_load_their_own_model(tmp_path: Path, monkeypatch) -> None:
    built = _install_fake_whisper(monkeypatch)
    args = _args(tmp_path, ["serve", "--recognizer", "faster_whisper"])
    services.build_recognizer(args)._get_model()
    services.build_recognizer(args)._get_model()
    assert len(built) == 2
