from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

from livelingo.contracts import RecognitionConfig, TranscriptEvent

ResultCallback = Callable[[TranscriptEvent], None]
ErrorCallback = Callable[[BaseException], None]


class RecognizerAdapter(ABC):
    """
    One streaming recognition run.

    `start` opens the stream; afterwards every `write` appends raw PCM16 bytes.
    Results and errors are delivered through the callbacks on the event loop
    that called `start`, in provider order, until `close`.
    """

    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def active(self) -> bool: ...

    @abstractmethod
    def start(self, config: RecognitionConfig, on_result: ResultCallback, on_error: ErrorCallback) -> None: ...

    @abstractmethod
    def write(self, frame: bytes) -> None: ...

    @abstractmethod
    def close(self) -> None:
        """Close the stream. Must be safe to call more than once."""
