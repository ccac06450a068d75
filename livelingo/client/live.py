"""Client glue: microphone -> transport -> reconciler.

Audio quanta arrive on the PortAudio thread. They are converted to wire
frames there, then handed to the event loop with `call_soon_threadsafe` and
queued (drop-oldest when full) for a single sender task.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
from functools import partial
from typing import Callable, Optional

import numpy as np

from livelingo.app.state import RuntimeStateTracker
from livelingo.audio.framer import AudioFramer, frame_bytes
from livelingo.client.channel import TranscriptionChannel
from livelingo.client.reconciler import TranscriptReconciler
from livelingo.client.recorder import SavedSession, SessionRecorder
from livelingo.contracts import DEFAULT_TARGET_LANGUAGE, ErrorEvent
from livelingo.errors import CaptureUnavailable, TransportDisconnected
from livelingo.transport.messages import ServerEvent

logger = logging.getLogger(__name__)


def _push_drop_oldest(frames: "asyncio.Queue[bytes]", data: bytes) -> bool:
    """Returns False when an older frame had to be dropped."""
    try:
        frames.put_nowait(data)
        return True
    except asyncio.QueueFull:
        with contextlib.suppress(asyncio.QueueEmpty):
            frames.get_nowait()
        with contextlib.suppress(asyncio.QueueFull):
            frames.put_nowait(data)
        return False


class LiveCaptureController:
    def __init__(
        self,
        *,
        channel: TranscriptionChannel,
        framer: AudioFramer,
        reconciler: Optional[TranscriptReconciler] = None,
        recorder: Optional[SessionRecorder] = None,
        device: Optional[int | str] = None,
        target_language: str = DEFAULT_TARGET_LANGUAGE,
        translation_enabled: bool = False,
        queue_maxsize: int = 100,
    ) -> None:
        self.channel = channel
        self.framer = framer
        self.reconciler = reconciler if reconciler is not None else TranscriptReconciler()
        self.recorder = recorder if recorder is not None else SessionRecorder()
        self.device = device
        self.target_language = target_language
        self.translation_enabled = bool(translation_enabled)
        self.queue_maxsize = max(1, int(queue_maxsize))
        self.state = RuntimeStateTracker()
        self.frames_sent = 0
        self.frames_dropped = 0
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._frames: Optional["asyncio.Queue[bytes]"] = None
        self._sender: Optional[asyncio.Task] = None
        self._receiver: Optional[asyncio.Task] = None
        self._listeners: list[Callable[[ServerEvent], None]] = []
        channel.on_event(self._on_event)
        channel.on_disconnect(self._on_disconnect)

    def add_listener(self, callback: Callable[[ServerEvent], None]) -> None:
        self._listeners.append(callback)

    @property
    def receiver(self) -> Optional[asyncio.Task]:
        return self._receiver

    async def connect(self) -> None:
        self._loop = asyncio.get_running_loop()
        await self.channel.connect()
        await self.channel.set_target_language(self.target_language)
        await self.channel.set_translation_enabled(self.translation_enabled)
        self.reconciler.begin_stream()
        self._receiver = self._loop.create_task(self.channel.run())

    async def start(self) -> None:
        if self.state.active:
            return
        self.state.set_starting()
        self._loop = asyncio.get_running_loop()
        try:
            await self.channel.start_transcription()
        except TransportDisconnected as e:
            self.state.set_error(str(e))
            raise

        frames: "asyncio.Queue[bytes]" = asyncio.Queue(maxsize=self.queue_maxsize)
        self._frames = frames
        self._sender = self._loop.create_task(self._send_frames(frames))
        try:
            self.framer.start_capture(self.device, partial(self._on_samples, self._loop, frames))
        except CaptureUnavailable as e:
            logger.error("capture_unavailable", extra={"device": str(self.device), "error": str(e)})
            await self._halt_stream()
            self.state.set_error(str(e))
            raise
        self.state.set_running()
        logger.info("live_capture_started", extra={"device": str(self.device)})

    async def stop(self) -> None:
        if self._sender is None and not self.state.active:
            return
        await self._halt_stream()
        self.state.set_stopped()
        logger.info(
            "live_capture_stopped",
            extra={"frames_sent": self.frames_sent, "frames_dropped": self.frames_dropped},
        )

    async def change_target_language(self, language: str) -> None:
        language = (language or "").strip()
        if not language:
            raise ValueError("target language must be a non-empty language code")
        self.target_language = language
        if self.channel.connected:
            await self.channel.set_target_language(language)

    async def toggle_translation(self) -> bool:
        self.translation_enabled = not self.translation_enabled
        if self.channel.connected:
            await self.channel.set_translation_enabled(self.translation_enabled)
        return self.translation_enabled

    async def end_session(self, title: str) -> SavedSession:
        if self.state.active:
            await self.stop()
        snap = self.reconciler.snapshot()
        return self.recorder.save(title, snap.transcript_lines, snap.translation_lines)

    async def close(self) -> None:
        await self.stop()
        receiver, self._receiver = self._receiver, None
        await self.channel.close()
        if receiver is not None:
            receiver.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await receiver

    # --- audio path ---

    def _on_samples(self, loop: asyncio.AbstractEventLoop, frames: "asyncio.Queue[bytes]", samples: np.ndarray) -> None:
        data = frame_bytes(samples)
        loop.call_soon_threadsafe(self._enqueue, frames, data)

    def _enqueue(self, frames: "asyncio.Queue[bytes]", data: bytes) -> None:
        if frames is not self._frames:
            return
        if not _push_drop_oldest(frames, data):
            self.frames_dropped += 1
            if self.frames_dropped == 1 or self.frames_dropped % 50 == 0:
                logger.warning("outbound_audio_dropped", extra={"dropped": self.frames_dropped})

    async def _send_frames(self, frames: "asyncio.Queue[bytes]") -> None:
        while True:
            data = await frames.get()
            try:
                await self.channel.send_audio(data)
            except TransportDisconnected:
                logger.warning("audio_send_failed_disconnected")
                return
            self.frames_sent += 1

    async def _flush(self, frames: "asyncio.Queue[bytes]") -> None:
        while not frames.empty():
            data = frames.get_nowait()
            await self.channel.send_audio(data)
            self.frames_sent += 1

    def _release_capture(self) -> Optional["asyncio.Queue[bytes]"]:
        self.framer.stop_capture()
        frames, self._frames = self._frames, None
        sender, self._sender = self._sender, None
        if sender is not None:
            sender.cancel()
        return frames

    async def _halt_stream(self) -> None:
        frames = self._release_capture()
        if not self.channel.connected:
            return
        try:
            if frames is not None:
                await self._flush(frames)
            await self.channel.stop_transcription()
        except TransportDisconnected as e:
            logger.warning("stop_transcription_not_sent", extra={"error": str(e)})

    # --- inbound ---

    def _on_event(self, event: ServerEvent) -> None:
        self.reconciler.apply(event)
        if isinstance(event, ErrorEvent) and not event.is_translation and self.state.active:
            # the server session is back to idle; stop feeding it audio
            self._release_capture()
            self.state.set_error(event.error)
        for callback in list(self._listeners):
            callback(event)

    def _on_disconnect(self, error: TransportDisconnected) -> None:
        self._release_capture()
        if self.state.active:
            self.state.set_error(str(error))
        logger.info("live_channel_lost", extra={"state": self.state.state.value})
