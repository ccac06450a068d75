from __future__ import annotations

import sys
import types

import pytest

from livelingo.contracts import TranslationRequest
from livelingo.errors import TranslationCallError
from livelingo.nlp.translator.argos import ArgosTranslator, argos_code
from livelingo.nlp.translator.factory import get_translator
from livelingo.nlp.translator.stub import StubTranslator


def test_stub_translator_deterministic() -> None:
    tr = StubTranslator()
    out = tr.translate(TranslationRequest(text="Hello world.", target_lang="fr"))
    assert out.provider == "stub"
    assert out.translated_text == "[fr] Hello world."
    assert out.source_text == "Hello world."
    assert out.detected_source_lang == "en"


def test_factory_selects_provider(monkeypatch) -> None:
    assert isinstance(get_translator("stub"), StubTranslator)
    assert isinstance(get_translator("argos"), ArgosTranslator)
    monkeypatch.setenv("LIVELINGO_TRANSLATOR", "stub")
    assert isinstance(get_translator(), StubTranslator)
    with pytest.raises(ValueError):
        get_translator("cloud")


def test_argos_code_strips_region() -> None:
    assert argos_code("zh-CN") == "zh"
    assert argos_code("EN") == "en"
    assert argos_code(None) == ""


def test_argos_same_language_is_passthrough() -> None:
    out = ArgosTranslator().translate(TranslationRequest(text="Hello", source_lang="en", target_lang="en-GB"))
    assert out.translated_text == "Hello"


def _install_fake_argos(monkeypatch, *, installed_pairs, available_pairs):
    calls = {"installed_from_path": [], "translate": []}

    class Lang:
        def __init__(self, code: str) -> None:
            self.code = code

        def get_translation(self, other: "Lang"):
            return object() if (self.code, other.code) in installed_pairs else None

    def get_installed_languages():
        codes = {c for pair in installed_pairs for c in pair}
        return [Lang(c) for c in sorted(codes)]

    def translate(text: str, from_code: str, to_code: str) -> str:
        calls["translate"].append((text, from_code, to_code))
        return f"{to_code}:{text}"

    class Pkg:
        def __init__(self, from_code: str, to_code: str) -> None:
            self.from_code = from_code
            self.to_code = to_code

        def download(self) -> str:
            return f"/tmp/{self.from_code}_{self.to_code}.argosmodel"

    package_mod = types.ModuleType("argostranslate.package")
    package_mod.update_package_index = lambda: None
    package_mod.get_available_packages = lambda: [Pkg(f, t) for f, t in available_pairs]
    package_mod.install_from_path = lambda path: calls["installed_from_path"].append(path)

    translate_mod = types.ModuleType("argostranslate.translate")
    translate_mod.get_installed_languages = get_installed_languages
    translate_mod.translate = translate

    root = types.ModuleType("argostranslate")
    root.package = package_mod
    root.translate = translate_mod
    monkeypatch.setitem(sys.modules, "argostranslate", root)
    monkeypatch.setitem(sys.modules, "argostranslate.package", package_mod)
    monkeypatch.setitem(sys.modules, "argostranslate.translate", translate_mod)
    return calls


def test_argos_uses_installed_pair(monkeypatch) -> None:
    calls = _install_fake_argos(monkeypatch, installed_pairs={("en", "es")}, available_pairs=[])
    out = ArgosTranslator().translate(TranslationRequest(text="Good morning", target_lang="es"))
    assert out.translated_text == "es:Good morning"
    assert out.provider == "argos"
    assert calls["installed_from_path"] == []


def test_argos_installs_missing_pair_once(monkeypatch) -> None:
    calls = _install_fake_argos(monkeypatch, installed_pairs=set(), available_pairs=[("en", "de")])
    tr = ArgosTranslator()
    tr.translate(TranslationRequest(text="one", target_lang="de"))
    tr.translate(TranslationRequest(text="two", target_lang="de"))
    assert calls["installed_from_path"] == ["/tmp/en_de.argosmodel"]
    assert [c[0] for c in calls["translate"]] == ["one", "two"]


def test_argos_missing_pair_without_auto_install(monkeypatch) -> None:
    _install_fake_argos(monkeypatch, installed_pairs=set(), available_pairs=[("en", "de")])
    with pytest.raises(TranslationCallError):
        ArgosTranslator(auto_install=False).translate(TranslationRequest(text="one", target_lang="de"))


def test_argos_unknown_pair(monkeypatch) -> None:
    _install_fake_argos(monkeypatch, installed_pairs=set(), available_pairs=[("en", "de")])
    with pytest.raises(TranslationCallError):
        ArgosTranslator().translate(TranslationRequest(text="one", target_lang="tlh"))
