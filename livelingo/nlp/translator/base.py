from __future__ import annotations
from abc import ABC, abstractmethod
from livelingo.contracts import TranslationRequest, TranslationResult

class Translator(ABC):
    """Request/response translation. `translate` may block; callers run it off the event loop."""

    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def translate(self, req: TranslationRequest) -> TranslationResult: ...
