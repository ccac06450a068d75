"""Client-side merge of transcript and translation events.

Two parallel lists of final lines are kept the same length at all times:
whenever one side gets a line, the other side is padded with an empty
placeholder so a single cursor addresses both. Interim text never enters the
lists; it lives in one slot per side and is overwritten by every update.

Translations arrive asynchronously and may land after later transcript
lines. When an event carries the utterance index the session assigned, a
late final translation fills the placeholder of its own transcript line;
without it the translation is appended at the end and the transcript side
is padded instead.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from livelingo.contracts import ErrorEvent, TranscriptEvent, TranslationEvent
from livelingo.transport.messages import ServerEvent

logger = logging.getLogger(__name__)

TRANSCRIPT_TAB = "transcript"
TRANSLATION_TAB = "translation"


@dataclass(frozen=True)
class BufferSnapshot:
    transcript_lines: tuple[str, ...]
    translation_lines: tuple[str, ...]


class TranscriptReconciler:
    def __init__(self, *, playing: bool = True) -> None:
        self.transcript_lines: list[str] = []
        self.translation_lines: list[str] = []
        self.interim_transcript = ""
        self.interim_translation = ""
        self.cursor = 0
        self.playing = playing
        self.transcription_error: Optional[str] = None
        self.translation_error: Optional[str] = None
        # filler translation lines a late final translation may still claim
        self._open_slots: set[int] = set()
        self._line_for_utterance: dict[int, int] = {}

    @property
    def total_lines(self) -> int:
        return max(len(self.transcript_lines), len(self.translation_lines))

    @property
    def following(self) -> bool:
        return self.playing and self.cursor >= self.total_lines

    def apply(self, event: ServerEvent) -> None:
        if isinstance(event, TranscriptEvent):
            self.on_transcript(event)
        elif isinstance(event, TranslationEvent):
            self.on_translation(event)
        elif isinstance(event, ErrorEvent):
            self.on_error(event)
        else:
            raise TypeError(f"Not a server event: {event!r}")

    def on_transcript(self, event: TranscriptEvent) -> None:
        self.transcription_error = None
        if not event.is_final:
            self.interim_transcript = event.text
            return

        self.interim_transcript = ""
        if not event.text.strip():
            return
        follow = self.following
        index = len(self.transcript_lines)
        self.transcript_lines.append(event.text)
        if event.utterance is not None:
            self._line_for_utterance[event.utterance] = index
        self._pad()
        self._advance(follow)

    def on_translation(self, event: TranslationEvent) -> None:
        self.translation_error = None
        if not event.is_final:
            self.interim_translation = event.translated
            return

        self.interim_translation = ""
        if not event.translated.strip():
            return
        follow = self.following
        slot = self._aligned_slot(event.utterance)
        if slot is not None:
            self.translation_lines[slot] = event.translated
            self._open_slots.discard(slot)
        else:
            self.translation_lines.append(event.translated)
            self._pad()
        self._advance(follow)

    def on_error(self, event: ErrorEvent) -> None:
        if event.is_translation:
            self.translation_error = event.error
        else:
            self.transcription_error = event.error

    def _aligned_slot(self, utterance: Optional[int]) -> Optional[int]:
        if utterance is None:
            return None
        index = self._line_for_utterance.get(utterance)
        if index is None or index not in self._open_slots:
            return None
        return index

    def _pad(self) -> None:
        while len(self.translation_lines) < len(self.transcript_lines):
            self._open_slots.add(len(self.translation_lines))
            self.translation_lines.append("")
        while len(self.transcript_lines) < len(self.translation_lines):
            self.transcript_lines.append("")

    def _advance(self, follow: bool) -> None:
        if follow:
            self.cursor = self.total_lines

    # --- cursor ---

    def seek_to(self, index: int) -> int:
        self.cursor = max(0, min(int(index), self.total_lines))
        return self.cursor

    def seek(self, delta: int) -> int:
        return self.seek_to(self.cursor + int(delta))

    def play(self) -> None:
        self.playing = True

    def pause(self) -> None:
        self.playing = False

    # --- display ---

    def lines(self, tab: str = TRANSCRIPT_TAB) -> list[str]:
        if tab == TRANSCRIPT_TAB:
            return self.transcript_lines
        if tab == TRANSLATION_TAB:
            return self.translation_lines
        raise ValueError(f"Unknown tab: {tab}")

    def interim(self, tab: str = TRANSCRIPT_TAB) -> str:
        if tab == TRANSCRIPT_TAB:
            return self.interim_transcript
        if tab == TRANSLATION_TAB:
            return self.interim_translation
        raise ValueError(f"Unknown tab: {tab}")

    def render(self, tab: str = TRANSCRIPT_TAB, placeholder: str = "") -> str:
        lines = self.lines(tab)
        parts = list(lines[: min(self.cursor, len(lines))])
        interim = self.interim(tab)
        if interim:
            parts.append(f"[{interim}]")
        return "\n".join(parts) or placeholder

    # --- lifecycle ---

    def begin_stream(self) -> None:
        """Utterance indexes restart with every server session; forget the old ones."""
        self._line_for_utterance.clear()

    def restore(self, transcript_lines: Sequence[str], translation_lines: Sequence[str] = ()) -> None:
        self.reset()
        self.transcript_lines = [str(x) for x in transcript_lines]
        self.translation_lines = [str(x) for x in translation_lines]
        self._pad()
        self.cursor = self.total_lines
        logger.info("buffers_restored", extra={"lines": self.total_lines})

    def reset(self) -> None:
        self.transcript_lines = []
        self.translation_lines = []
        self.interim_transcript = ""
        self.interim_translation = ""
        self.cursor = 0
        self.transcription_error = None
        self.translation_error = None
        self._open_slots = set()
        self._line_for_utterance.clear()

    def snapshot(self) -> BufferSnapshot:
        return BufferSnapshot(
            transcript_lines=tuple(self.transcript_lines),
            translation_lines=tuple(self.translation_lines),
        )
