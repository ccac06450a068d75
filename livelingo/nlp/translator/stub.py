from __future__ import annotations
from .base import Translator
from livelingo.contracts import TranslationRequest, TranslationResult

class StubTranslator(Translator):
    @property
    def name(self) -> str:
        return "stub"

    def translate(self, req: TranslationRequest) -> TranslationResult:
        # Deterministic, test-friendly
        translated = f"[{req.target_lang}] {req.text}"
        return TranslationResult(
            source_text=req.text,
            translated_text=translated,
            provider=self.name,
            detected_source_lang=req.source_lang,
        )
