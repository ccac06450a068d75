from __future__ import annotations

import json
from pathlib import Path

import pytest

from livelingo.client import recorder as recorder_mod
from livelingo.client.reconciler import BufferSnapshot
from livelingo.client.recorder import (
    SESSION_KEY,
    SessionRecorder,
    build_lecture_record,
    build_transcript_record,
)


def make_recorder(tmp_path: Path) -> SessionRecorder:
    return SessionRecorder(tmp_path / "storage.json", clock=lambda: "2026-10-19T12:00:00+00:00")


def test_save_writes_session_under_fixed_key(tmp_path: Path) -> None:
    rec = make_recorder(tmp_path)
    rec.save("Biology 101", ["Cells divide.", "Mitosis."], ["Las células se dividen.", ""])
    stored = json.loads((tmp_path / "storage.json").read_text(encoding="utf-8"))
    assert stored == {
        SESSION_KEY: {
            "title": "Biology 101",
            "transcriptLines": ["Cells divide.", "Mitosis."],
            "translationLines": ["Las células se dividen.", ""],
            "endedAt": "2026-10-19T12:00:00+00:00",
        }
    }


def test_save_overwrites_and_keeps_other_keys(tmp_path: Path) -> None:
    path = tmp_path / "storage.json"
    path.write_text(json.dumps({"other": 1}), encoding="utf-8")
    rec = make_recorder(tmp_path)
    rec.save("first", ["a"], [""])
    rec.save("second", ["b"], ["B"])
    stored = json.loads(path.read_text(encoding="utf-8"))
    assert stored["other"] == 1
    assert stored[SESSION_KEY]["title"] == "second"


@pytest.mark.parametrize("content", ["{not json", "[1, 2]"])
def test_save_replaces_unreadable_store(tmp_path: Path, content: str) -> None:
    path = tmp_path / "storage.json"
    path.write_text(content, encoding="utf-8")
    rec = make_recorder(tmp_path)
    saved = rec.save("Lecture", ["hello"], [""])
    assert saved.transcript_lines == ("hello",)
    stored = json.loads(path.read_text(encoding="utf-8"))
    assert stored == {SESSION_KEY: saved.to_dict()}
    assert rec.load() == saved


def test_load_and_clear(tmp_path: Path) -> None:
    rec = make_recorder(tmp_path)
    assert rec.load() is None
    rec.save("Lecture", ["a", "b"], ["", "B"])
    loaded = rec.load()
    assert loaded is not None
    assert loaded.title == "Lecture"
    assert loaded.snapshot == BufferSnapshot(("a", "b"), ("", "B"))
    rec.clear()
    assert rec.load() is None


def test_default_path_lives_in_user_data_dir(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(recorder_mod, "user_data_dir", lambda appname, appauthor=None: str(tmp_path / appname))
    assert SessionRecorder().path == tmp_path / "LiveLingo" / "storage.json"


def test_transcript_record_shape() -> None:
    snap = BufferSnapshot(("Hello", "World"), ("Hola", ""))
    assert build_transcript_record(snap, "es") == {
        "text": "Hello\nWorld",
        "translation": "Hola\n",
        "translationLanguage": "es",
        "status": "completed",
    }
    no_translation = BufferSnapshot(("Hello",), ("",))
    assert build_transcript_record(no_translation, "es") == {"text": "Hello", "status": "completed"}
    with pytest.raises(ValueError):
        build_transcript_record(BufferSnapshot(("", ""), ("", "")))


def test_lecture_record_shape() -> None:
    assert build_lecture_record("Physics", "t-1") == {
        "title": "Physics",
        "transcriptId": "t-1",
        "status": "completed",
    }
    record = build_lecture_record("Physics", "t-1", subject_id="s-9", keywords=["force"])
    assert record["subjectId"] == "s-9"
    assert record["keywords"] == ["force"]
    with pytest.raises(ValueError):
        build_lecture_record("  ", "t-1")


class FakeGateway:
    def __init__(self) -> None:
        self.transcripts: list[dict] = []
        self.lectures: list[dict] = []

    def create_transcript(self, record: dict) -> str:
        self.transcripts.append(record)
        return "t-42"

    def create_lecture(self, record: dict) -> str:
        self.lectures.append(record)
        return "l-7"


def test_hand_off_creates_transcript_then_lecture(tmp_path: Path) -> None:
    rec = make_recorder(tmp_path)
    rec.save("Chemistry", ["Atoms bond."], ["Los átomos se unen."])
    gateway = FakeGateway()
    assert rec.hand_off(gateway, "es") == ("t-42", "l-7")
    assert gateway.transcripts == [
        {
            "text": "Atoms bond.",
            "translation": "Los átomos se unen.",
            "translationLanguage": "es",
            "status": "completed",
        }
    ]
    assert gateway.lectures == [{"title": "Chemistry", "transcriptId": "t-42", "status": "completed"}]


def test_hand_off_without_saved_session(tmp_path: Path) -> None:
    with pytest.raises(LookupError):
        make_recorder(tmp_path).hand_off(FakeGateway())
