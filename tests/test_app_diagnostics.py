from __future__ import annotations

from livelingo.app.diagnostics import hint_for_exception, summarize_exception


def test_summarize_exception_picks_last_meaningful_line() -> None:
    detail = (
        "Traceback (most recent call last):\n"
        '  File "x.py", line 1, in <module>\n'
        "    boom()\n"
        "RuntimeError: failed to start stream"
    )
    assert summarize_exception(detail) == "RuntimeError: failed to start stream"


def test_summarize_exception_chained_traceback() -> None:
    detail = (
        "Traceback (most recent call last):\n"
        '  File "a.py", line 3, in open\n'
        "OSError: [Errno 19] No such device\n"
        "\n"
        "The above exception was the direct cause of the following exception:\n"
        "\n"
        "Traceback (most recent call last):\n"
        '  File "b.py", line 9, in start_capture\n'
        "    raise CaptureUnavailable(msg) from e\n"
        "    ^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^\n"
        "livelingo.errors.CaptureUnavailable: Failed to open audio source 2"
    )
    assert summarize_exception(detail) == "livelingo.errors.CaptureUnavailable: Failed to open audio source 2"


def test_summarize_exception_truncates_long_line() -> None:
    detail = "ValueError: " + ("x" * 500)
    out = summarize_exception(detail, max_len=60)
    assert out.startswith("ValueError: ")
    assert out.endswith("...")
    assert len(out) <= 60


def test_summarize_exception_empty() -> None:
    assert summarize_exception("") == "Unknown runtime error."


def test_hint_for_missing_package() -> None:
    assert "extras" in hint_for_exception("No module named 'faster_whisper'")


def test_hint_for_audio_failure() -> None:
    hint = hint_for_exception("Failed to open audio source 3: Invalid device")
    assert "livelingo devices" in hint


def test_hint_for_unreachable_server() -> None:
    hint = hint_for_exception("Failed to connect to ws://127.0.0.1:8765: [Errno 111] Connection refused")
    assert "livelingo serve" in hint


def test_hint_for_exception_default() -> None:
    assert hint_for_exception("RuntimeError: unknown") == "Check logs for full traceback."
