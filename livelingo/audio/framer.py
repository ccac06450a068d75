from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

import numpy as np

from livelingo.contracts import CHANNELS, SAMPLE_RATE, AudioFrame
from livelingo.errors import CaptureUnavailable

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_SIZE = 4096


def convert_to_fixed_point(samples: Any) -> np.ndarray:
    """Map float samples in [-1, 1] to int16; out-of-range input is clamped."""
    x = np.nan_to_num(np.asarray(samples, dtype=np.float64), nan=0.0, posinf=1.0, neginf=-1.0)
    x = np.clip(x, -1.0, 1.0)
    scaled = np.where(x < 0, x * 32768.0, x * 32767.0)
    return np.clip(np.trunc(scaled), -32768, 32767).astype(np.int16)


def frame_bytes(samples: Any) -> bytes:
    return convert_to_fixed_point(samples).astype("<i2").tobytes()


def to_audio_frame(samples: Any, sample_rate: int = SAMPLE_RATE) -> AudioFrame:
    return AudioFrame(pcm16=frame_bytes(samples), sample_rate=sample_rate, channels=CHANNELS)


def peak_level(samples: Any) -> float:
    x = np.asarray(samples, dtype=np.float32)
    if not x.size:
        return 0.0
    return float(np.max(np.abs(x)))


def _import_sounddevice():
    try:
        import sounddevice as sd
    except (ImportError, OSError) as e:
        # OSError: the module is installed but PortAudio itself is missing.
        raise CaptureUnavailable(
            "sounddevice/PortAudio is not available. Install with: python -m pip install sounddevice"
        ) from e
    return sd


class AudioFramer:
    """
    Live capture through `sounddevice` (PortAudio).
    Every processing quantum of `block_size` mono float samples updates `level`
    and is handed to `on_frame` on the audio driver thread. Conversion to the
    wire format is left to the caller (`frame_bytes`).
    """

    def __init__(
        self,
        *,
        sample_rate: int = SAMPLE_RATE,
        block_size: int = DEFAULT_BLOCK_SIZE,
    ) -> None:
        if sample_rate <= 0:
            raise ValueError("sample_rate must be > 0")
        if block_size <= 0:
            raise ValueError("block_size must be > 0")
        self.sample_rate = int(sample_rate)
        self.block_size = int(block_size)
        self.level = 0.0
        self.quanta = 0
        self._stream = None
        self._on_frame: Optional[Callable[[np.ndarray], None]] = None
        self._lock = threading.Lock()

    @staticmethod
    def list_sources() -> list[dict[str, Any]]:
        sd = _import_sounddevice()
        out: list[dict[str, Any]] = []
        for idx, dev in enumerate(sd.query_devices()):
            if int(dev.get("max_input_channels", 0)) <= 0:
                continue
            out.append({"id": idx, "name": str(dev.get("name", "")), "channels": int(dev["max_input_channels"])})
        return out

    @property
    def capturing(self) -> bool:
        return self._stream is not None

    def _callback(self, indata, frames, time_info, status) -> None:
        if status:
            logger.debug("capture_status", extra={"status": str(status)})
        samples = np.array(indata[:, 0], dtype=np.float32, copy=True)
        self.level = peak_level(samples)
        self.quanta += 1
        on_frame = self._on_frame
        if on_frame is None:
            return
        try:
            on_frame(samples)
        except Exception:
            # Raising here would abort the PortAudio stream.
            logger.exception("capture_on_frame_failed")

    def start_capture(self, source_id: Optional[int | str], on_frame: Callable[[np.ndarray], None]) -> None:
        sd = _import_sounddevice()
        with self._lock:
            if self._stream is not None:
                self._close_stream()
            self._on_frame = on_frame
            self.level = 0.0
            self.quanta = 0
            try:
                stream = sd.InputStream(
                    samplerate=self.sample_rate,
                    channels=CHANNELS,
                    dtype="float32",
                    blocksize=self.block_size,
                    device=source_id,
                    callback=self._callback,
                )
                stream.start()
            except Exception as e:
                self._on_frame = None
                raise CaptureUnavailable(
                    f"Failed to open audio source {source_id!r}: {e}. "
                    "Pick another source with --device or check capture permissions."
                ) from e
            self._stream = stream
        logger.info(
            "capture_started",
            extra={"source": str(source_id), "sample_rate": self.sample_rate, "block_size": self.block_size},
        )

    def _close_stream(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()

    def stop_capture(self) -> None:
        with self._lock:
            was_capturing = self._stream is not None
            self._on_frame = None
            self._close_stream()
            self.level = 0.0
        if was_capturing:
            logger.info("capture_stopped", extra={"quanta": self.quanta})
