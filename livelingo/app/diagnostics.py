from __future__ import annotations

UNKNOWN_ERROR = "Unknown runtime error."

# traceback scaffolding that never names the failure itself
_NOISE_PREFIXES = (
    "Traceback ",
    "File ",
    "^",
    "~",
    "During handling of the above exception",
    "The above exception was the direct cause",
)

_HINTS: tuple[tuple[tuple[str, ...], str], ...] = (
    (
        ("no module named",),
        "A required package is missing in this virtualenv. Reinstall with the needed extras and retry.",
    ),
    (
        ("portaudio", "audio source", "sounddevice"),
        "Audio capture failed. Pick another source with --device (see `livelingo devices`) or check permissions.",
    ),
    (
        ("argos",),
        "Translation model unavailable. Allow the Argos package download or install the language pair.",
    ),
    (
        ("connection refused", "connect call failed", "disconnected"),
        "Orchestrator unreachable. Start it with `livelingo serve` and check --server-url.",
    ),
    (
        ("config file not found",),
        "Configured JSON file is missing. Update the config path or restore the file.",
    ),
)


def summarize_exception(detail: str, *, max_len: int = 220) -> str:
    """One line for the user: the last traceback line that states the error."""
    lines = [ln.strip() for ln in str(detail or "").splitlines() if ln.strip()]
    if not lines:
        return UNKNOWN_ERROR
    meaningful = [ln for ln in lines if not ln.startswith(_NOISE_PREFIXES)]
    out = meaningful[-1] if meaningful else lines[-1]
    if len(out) > max_len:
        return out[: max_len - 3].rstrip() + "..."
    return out


def hint_for_exception(summary: str) -> str:
    s = str(summary or "").lower()
    for needles, hint in _HINTS:
        if any(needle in s for needle in needles):
            return hint
    return "Check logs for full traceback."
