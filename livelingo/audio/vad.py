"""Speech/non-speech gates used to close utterances on the server side."""
from __future__ import annotations

from typing import Protocol

import numpy as np


class SpeechGate(Protocol):
    def is_speech(self, pcm16: bytes) -> bool:
        ...


def pcm16_samples(pcm16: bytes) -> np.ndarray:
    usable = len(pcm16) - (len(pcm16) % 2)
    return np.frombuffer(pcm16[:usable], dtype="<i2")


def pcm16_rms(pcm16: bytes) -> float:
    """Return RMS energy for little-endian int16 PCM bytes."""
    x = pcm16_samples(pcm16).astype(np.float64)
    if not x.size:
        return 0.0
    return float(np.sqrt(np.mean(x * x)))


class EnergyVAD:
    def __init__(self, rms_threshold: float = 250.0) -> None:
        if rms_threshold < 0:
            raise ValueError("rms_threshold must be >= 0")
        self.rms_threshold = float(rms_threshold)

    def is_speech(self, pcm16: bytes) -> bool:
        return pcm16_rms(pcm16) >= self.rms_threshold


class WebRtcVAD:
    """
    WebRTC VAD over a whole frame: the frame counts as speech when at least
    `min_speech_ratio` of its 10/20/30 ms sub-frames are voiced.
    Input must be 16-bit mono PCM at 8000/16000/32000/48000 Hz.
    aggressiveness: 0 (least) .. 3 (most aggressive)
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        frame_ms: int = 20,
        aggressiveness: int = 2,
        min_speech_ratio: float = 0.3,
    ) -> None:
        if frame_ms not in (10, 20, 30):
            raise ValueError("frame_ms must be 10/20/30")
        if sample_rate not in (8000, 16000, 32000, 48000):
            raise ValueError("sample_rate must be one of 8000/16000/32000/48000")
        self.sample_rate = sample_rate
        self.frame_bytes = int(sample_rate * frame_ms / 1000) * 2
        self.min_speech_ratio = float(min_speech_ratio)
        try:
            import webrtcvad
        except ImportError as e:
            raise RuntimeError(
                "webrtcvad is not installed. Install with: python -m pip install 'livelingo[webrtc]'"
            ) from e
        self._vad = webrtcvad.Vad(aggressiveness)

    def is_speech(self, pcm16: bytes) -> bool:
        total = 0
        voiced = 0
        for i in range(0, len(pcm16) - self.frame_bytes + 1, self.frame_bytes):
            total += 1
            if self._vad.is_speech(pcm16[i : i + self.frame_bytes], self.sample_rate):
                voiced += 1
        if total == 0:
            return False
        return voiced / total >= self.min_speech_ratio


def build_vad(kind: str, *, sample_rate: int = 16000, rms_threshold: float = 250.0) -> SpeechGate:
    kind = (kind or "energy").lower().strip()
    if kind == "energy":
        return EnergyVAD(rms_threshold=rms_threshold)
    if kind == "webrtc":
        return WebRtcVAD(sample_rate=sample_rate)
    raise ValueError(f"Unknown vad: {kind}")
