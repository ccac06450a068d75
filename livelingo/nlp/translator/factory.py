from __future__ import annotations
import os
from .base import Translator
from .argos import ArgosTranslator
from .stub import StubTranslator

TRANSLATOR_ENV = "LIVELINGO_TRANSLATOR"


def resolve_translator(provider: str | None = None) -> str:
    return (provider or os.getenv(TRANSLATOR_ENV, "argos")).lower().strip()


def get_translator(provider: str | None = None, *, auto_install: bool = True) -> Translator:
    provider = resolve_translator(provider)

    if provider == "stub":
        return StubTranslator()
    if provider == "argos":
        return ArgosTranslator(auto_install=auto_install)

    raise ValueError(f"Unknown translator provider: {provider}")
