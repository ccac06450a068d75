from __future__ import annotations

import tomllib
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]


def _project() -> dict:
    with (ROOT / "pyproject.toml").open("rb") as f:
        return tomllib.load(f)["project"]


def test_project_metadata_has_no_readme_file() -> None:
    assert "readme" not in _project()


def test_console_script_targets_main() -> None:
    assert _project()["scripts"] == {"livelingo": "livelingo.app.main:main"}
