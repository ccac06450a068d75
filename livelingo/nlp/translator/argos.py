from __future__ import annotations

import logging
import threading

from .base import Translator
from livelingo.contracts import DEFAULT_SOURCE_LANGUAGE, TranslationRequest, TranslationResult
from livelingo.errors import TranslationCallError

logger = logging.getLogger(__name__)


def argos_code(code: str | None) -> str:
    """Argos packages are keyed by bare ISO 639-1 codes: 'zh-CN' -> 'zh'."""
    return (code or "").strip().split("-")[0].split("_")[0].lower()


class ArgosTranslator(Translator):
    """
    Offline translation with argostranslate. Language pairs are prepared on
    first use (downloading the package when `auto_install` is set), so the
    target language may change from one request to the next.
    """

    def __init__(self, default_from: str = DEFAULT_SOURCE_LANGUAGE, auto_install: bool = True):
        self.default_from = argos_code(default_from)
        self.auto_install = auto_install
        self._ready: set[tuple[str, str]] = set()
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "argos"

    def _ensure_ready(self, from_code: str, to_code: str) -> None:
        pair = (from_code, to_code)
        with self._lock:
            if pair in self._ready:
                return

            import argostranslate.package
            import argostranslate.translate

            installed = {l.code: l for l in argostranslate.translate.get_installed_languages()}
            src = installed.get(from_code)
            dst = installed.get(to_code)
            have_pair = src is not None and dst is not None and src.get_translation(dst) is not None

            if not have_pair:
                if not self.auto_install:
                    raise TranslationCallError(
                        f"Argos model {from_code}->{to_code} not installed and auto_install=False"
                    )

                logger.info("argos_install_package", extra={"from_code": from_code, "to_code": to_code})
                argostranslate.package.update_package_index()
                available = argostranslate.package.get_available_packages()

                pkg = None
                for p in available:
                    if p.from_code == from_code and p.to_code == to_code:
                        pkg = p
                        break
                if pkg is None:
                    raise TranslationCallError(f"No Argos package found for {from_code}->{to_code}")

                path = pkg.download()
                argostranslate.package.install_from_path(path)

            self._ready.add(pair)

    def translate(self, req: TranslationRequest) -> TranslationResult:
        from_code = argos_code(req.source_lang) or self.default_from
        to_code = argos_code(req.target_lang)
        if not to_code:
            raise TranslationCallError("target language is empty")
        if from_code == to_code:
            return TranslationResult(
                source_text=req.text,
                translated_text=req.text,
                provider=self.name,
                detected_source_lang=from_code,
            )

        self._ensure_ready(from_code, to_code)
        import argostranslate.translate
        translated = argostranslate.translate.translate(req.text, from_code, to_code)
        return TranslationResult(
            source_text=req.text,
            translated_text=translated,
            provider=self.name,
            detected_source_lang=from_code,
        )
