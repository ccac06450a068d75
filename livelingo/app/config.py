from __future__ import annotations

import argparse
import copy
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from platformdirs import user_config_dir

from livelingo.contracts import DEFAULT_SOURCE_LANGUAGE, DEFAULT_TARGET_LANGUAGE

DEFAULTS: dict[str, Any] = {
    "host": "127.0.0.1",
    "port": 8765,
    "server_url": "ws://127.0.0.1:8765",
    "recognizer": None,
    "translator": None,
    "model": "tiny",
    "recognition_language": "en-US",
    "source_language": DEFAULT_SOURCE_LANGUAGE,
    "target_language": DEFAULT_TARGET_LANGUAGE,
    "translation_enabled": False,
    "min_translate_chars": 3,
    "promote_final_translation": False,
    "sr": 16000,
    "block_size": 4096,
    "device": None,
    "vad": "energy",
    "rms_th": 250.0,
    "silence_chunks": 3,
    "min_utter_sec": 0.4,
    "max_utter_sec": 8.0,
    "interim_sec": 1.0,
    "queue_maxsize": 100,
    "title": "Live session",
    "debug": False,
}
CONFIG_KEYS: tuple[str, ...] = tuple(DEFAULTS.keys())


@dataclass(frozen=True)
class AppPaths:
    config_dir: Path
    config_path: Path


def app_paths() -> AppPaths:
    config_dir = Path(user_config_dir("LiveLingo", "LiveLingo"))
    return AppPaths(config_dir=config_dir, config_path=config_dir / "config.json")


def _load_json_dict(path: Path) -> dict[str, Any]:
    # Accept UTF-8 with or without BOM for Windows-edited config files.
    with path.open("r", encoding="utf-8-sig") as f:
        loaded = json.load(f)
    if not isinstance(loaded, dict):
        raise ValueError(f"config must be a JSON object: {path}")
    return loaded


def _write_json_dict(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)
        f.write("\n")


def _known_only(payload: dict[str, Any]) -> dict[str, Any]:
    return {key: payload[key] for key in CONFIG_KEYS if key in payload}


def ensure_user_config_exists(defaults: dict[str, Any] | None = None) -> Path:
    paths = app_paths()
    if paths.config_path.exists():
        return paths.config_path
    _write_json_dict(paths.config_path, defaults or copy.deepcopy(DEFAULTS))
    return paths.config_path


def load_user_config(config_path: str | None = None) -> tuple[dict[str, Any], Path]:
    if config_path:
        chosen = Path(config_path)
        if not chosen.exists():
            raise SystemExit(f"Config file not found: {chosen}")
    else:
        chosen = ensure_user_config_exists()
    merged = copy.deepcopy(DEFAULTS)
    merged.update(_known_only(_load_json_dict(chosen)))
    return merged, chosen


def save_user_config(values: dict[str, Any], config_path: str | None = None) -> Path:
    path = Path(config_path) if config_path else ensure_user_config_exists()
    existing = _known_only(_load_json_dict(path)) if path.exists() else {}
    merged = copy.deepcopy(DEFAULTS)
    merged.update(existing)
    merged.update(_known_only(values))
    _write_json_dict(path, merged)
    return path


def _device_arg(value: str) -> int | str:
    # PortAudio accepts either a device index or a name substring.
    try:
        return int(value)
    except ValueError:
        return value


def parser_with_defaults(defaults: dict[str, Any]) -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", default=None, help="JSON config path (CLI flags override config)")
    common.add_argument(
        "--debug",
        action=argparse.BooleanOptionalAction,
        default=defaults["debug"],
        help="also log to the console",
    )

    languages = argparse.ArgumentParser(add_help=False)
    languages.add_argument(
        "--target-language",
        default=defaults["target_language"],
        help="translation target language code",
    )
    languages.add_argument(
        "--translation-enabled",
        action=argparse.BooleanOptionalAction,
        default=defaults["translation_enabled"],
        help="start with translation on",
    )

    p = argparse.ArgumentParser(prog="livelingo", description="Live transcription and translation.")
    sub = p.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", parents=[common, languages], help="run the transcription orchestrator")
    serve.add_argument("--host", default=defaults["host"], help="bind address")
    serve.add_argument("--port", type=int, default=defaults["port"], help="bind port")
    serve.add_argument(
        "--recognizer",
        default=defaults["recognizer"],
        help="faster_whisper | scripted (default: $LIVELINGO_RECOGNIZER, then faster_whisper)",
    )
    serve.add_argument(
        "--translator",
        default=defaults["translator"],
        help="argos | stub (default: $LIVELINGO_TRANSLATOR, then argos)",
    )
    serve.add_argument("--model", default=defaults["model"], help="faster-whisper model size")
    serve.add_argument(
        "--recognition-language",
        default=defaults["recognition_language"],
        help="recognizer language tag (e.g. en-US, or auto)",
    )
    serve.add_argument(
        "--source-language",
        default=defaults["source_language"],
        help="language the translator translates from",
    )
    serve.add_argument(
        "--min-translate-chars",
        type=int,
        default=defaults["min_translate_chars"],
        help="translate only results longer than this",
    )
    serve.add_argument(
        "--promote-final-translation",
        action=argparse.BooleanOptionalAction,
        default=defaults["promote_final_translation"],
        help="reuse the last interim translation when a final repeats it",
    )
    serve.add_argument("--vad", default=defaults["vad"], choices=["energy", "webrtc"], help="endpointing gate")
    serve.add_argument("--rms-th", type=float, default=defaults["rms_th"], help="RMS threshold for energy VAD")
    serve.add_argument(
        "--silence-chunks",
        type=int,
        default=defaults["silence_chunks"],
        help="finalize after this many silent 4096-sample frames",
    )
    serve.add_argument(
        "--min-utter-sec",
        type=float,
        default=defaults["min_utter_sec"],
        help="ignore utterances shorter than this",
    )
    serve.add_argument(
        "--max-utter-sec",
        type=float,
        default=defaults["max_utter_sec"],
        help="force a final while continuously speaking (seconds)",
    )
    serve.add_argument(
        "--interim-sec",
        type=float,
        default=defaults["interim_sec"],
        help="re-decode the open utterance this often for interim results",
    )

    listen = sub.add_parser("listen", parents=[common, languages], help="capture audio and stream it")
    listen.add_argument("--server-url", default=defaults["server_url"], help="orchestrator WebSocket URL")
    listen.add_argument("--device", type=_device_arg, default=defaults["device"], help="input device id or name")
    listen.add_argument("--sr", type=int, default=defaults["sr"], help="sample rate (Hz)")
    listen.add_argument(
        "--block-size",
        type=int,
        default=defaults["block_size"],
        help="samples per audio frame",
    )
    listen.add_argument(
        "--queue-maxsize",
        type=int,
        default=defaults["queue_maxsize"],
        help="max outbound audio frames buffered before dropping the oldest",
    )
    listen.add_argument("--title", default=defaults["title"], help="title used when the session is saved")

    sub.add_parser("devices", parents=[common], help="print audio input devices and exit")
    return p


def resolve_defaults(config_path: str | None = None) -> tuple[dict[str, Any], Path]:
    return load_user_config(config_path=config_path)


def resolve_args(argv: list[str] | None = None) -> argparse.Namespace:
    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--config", default=None)
    pre_args, _ = pre.parse_known_args(argv)
    defaults, _ = resolve_defaults(config_path=pre_args.config)
    parser = parser_with_defaults(defaults)
    return parser.parse_args(argv)
