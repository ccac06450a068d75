"""Local save of a finished live session and the hand-off to persistence.

The saved session lives under one fixed key in a small JSON key/value file in
the user data directory; every save overwrites the previous one. Promotion to
durable storage goes through a `PersistenceGateway`, which only has to accept
the two record shapes built here.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Protocol, Sequence

from platformdirs import user_data_dir

from livelingo.client.reconciler import BufferSnapshot

logger = logging.getLogger(__name__)

SESSION_KEY = "livelingo:session"
STATUS_COMPLETED = "completed"


class PersistenceGateway(Protocol):
    def create_transcript(self, record: dict[str, Any]) -> str: ...

    def create_lecture(self, record: dict[str, Any]) -> str: ...


@dataclass(frozen=True)
class SavedSession:
    title: str
    transcript_lines: tuple[str, ...]
    translation_lines: tuple[str, ...]
    ended_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "transcriptLines": list(self.transcript_lines),
            "translationLines": list(self.translation_lines),
            "endedAt": self.ended_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SavedSession":
        return cls(
            title=str(data.get("title", "")),
            transcript_lines=tuple(str(x) for x in data.get("transcriptLines") or ()),
            translation_lines=tuple(str(x) for x in data.get("translationLines") or ()),
            ended_at=str(data.get("endedAt", "")),
        )

    @property
    def snapshot(self) -> BufferSnapshot:
        return BufferSnapshot(self.transcript_lines, self.translation_lines)


def default_store_path() -> Path:
    return Path(user_data_dir("LiveLingo", "LiveLingo")) / "storage.json"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def build_transcript_record(
    snapshot: BufferSnapshot,
    translation_language: Optional[str] = None,
) -> dict[str, Any]:
    text = "\n".join(snapshot.transcript_lines)
    if not text.strip():
        raise ValueError("Transcript is empty; nothing to save.")
    record: dict[str, Any] = {"text": text, "status": STATUS_COMPLETED}
    translation = "\n".join(snapshot.translation_lines)
    if translation.strip():
        record["translation"] = translation
        if translation_language:
            record["translationLanguage"] = translation_language
    return record


def build_lecture_record(
    title: str,
    transcript_id: str,
    *,
    subject_id: Optional[str] = None,
    summary: Optional[str] = None,
    keywords: Optional[Sequence[str]] = None,
    questions: Optional[Sequence[str]] = None,
) -> dict[str, Any]:
    if not str(title or "").strip():
        raise ValueError("Lecture title is required.")
    record: dict[str, Any] = {
        "title": title,
        "transcriptId": transcript_id,
        "status": STATUS_COMPLETED,
    }
    if subject_id:
        record["subjectId"] = subject_id
    if summary:
        record["summary"] = summary
    if keywords:
        record["keywords"] = list(keywords)
    if questions:
        record["questions"] = list(questions)
    return record


class SessionRecorder:
    def __init__(self, path: Optional[Path] = None, *, clock=_utc_now) -> None:
        self.path = Path(path) if path is not None else default_store_path()
        self._clock = clock

    def _read_store(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as f:
            loaded = json.load(f)
        if not isinstance(loaded, dict):
            raise ValueError(f"session store must be a JSON object: {self.path}")
        return loaded

    def _write_store(self, store: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(store, f, ensure_ascii=False, indent=2)
            f.write("\n")
        tmp.replace(self.path)

    def save(
        self,
        title: str,
        transcript_lines: Sequence[str],
        translation_lines: Sequence[str],
    ) -> SavedSession:
        session = SavedSession(
            title=title,
            transcript_lines=tuple(transcript_lines),
            translation_lines=tuple(translation_lines),
            ended_at=self._clock(),
        )
        try:
            store = self._read_store()
        except ValueError as e:
            # the snapshot must land even if the store is damaged
            logger.warning("session_store_unreadable", extra={"path": str(self.path), "error": str(e)})
            store = {}
        store[SESSION_KEY] = session.to_dict()
        self._write_store(store)
        logger.info(
            "session_saved",
            extra={"title": title, "lines": len(session.transcript_lines), "path": str(self.path)},
        )
        return session

    def load(self) -> Optional[SavedSession]:
        data = self._read_store().get(SESSION_KEY)
        if not isinstance(data, dict):
            return None
        return SavedSession.from_dict(data)

    def clear(self) -> None:
        store = self._read_store()
        if store.pop(SESSION_KEY, None) is not None:
            self._write_store(store)
            logger.info("session_cleared", extra={"path": str(self.path)})

    def hand_off(
        self,
        gateway: PersistenceGateway,
        translation_language: Optional[str] = None,
    ) -> tuple[str, str]:
        session = self.load()
        if session is None:
            raise LookupError("No saved session to hand off.")
        transcript_id = gateway.create_transcript(
            build_transcript_record(session.snapshot, translation_language)
        )
        lecture_id = gateway.create_lecture(build_lecture_record(session.title, transcript_id))
        logger.info(
            "session_handed_off",
            extra={"transcript_id": transcript_id, "lecture_id": lecture_id},
        )
        return transcript_id, lecture_id
