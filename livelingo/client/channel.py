from __future__ import annotations

import logging
from typing import Callable, Optional

from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from livelingo.contracts import ErrorEvent, TranscriptEvent, TranslationEvent
from livelingo.errors import ProtocolError, TransportDisconnected
from livelingo.transport.messages import (
    AudioData,
    ControlMessage,
    ServerEvent,
    SetTargetLanguage,
    SetTranslationEnabled,
    StartTranscription,
    StopTranscription,
    decode_event,
    encode_control,
)

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = "ws://127.0.0.1:8765"


class TranscriptionChannel:
    """
    Client end of the transcription transport.

    Control messages and audio go out through the `send_*`/`set_*` coroutines;
    `run()` reads events until the connection ends and hands each one to the
    registered callbacks.
    """

    def __init__(self, url: str = DEFAULT_SERVER_URL) -> None:
        self.url = url
        self._ws = None
        self._on_event: list[Callable[[ServerEvent], None]] = []
        self._on_disconnect: list[Callable[[TransportDisconnected], None]] = []

    @property
    def connected(self) -> bool:
        return self._ws is not None

    def on_event(self, callback: Callable[[ServerEvent], None]) -> None:
        self._on_event.append(callback)

    def on_disconnect(self, callback: Callable[[TransportDisconnected], None]) -> None:
        self._on_disconnect.append(callback)

    async def connect(self) -> None:
        try:
            self._ws = await connect(self.url, max_size=None)
        except (OSError, InvalidURI, InvalidHandshake) as e:
            raise TransportDisconnected(f"Failed to connect to {self.url}: {e}") from e
        logger.info("channel_connected", extra={"url": self.url})

    async def send(self, msg: ControlMessage) -> None:
        ws = self._ws
        if ws is None:
            raise TransportDisconnected("Channel not connected. Call connect() first.")
        try:
            await ws.send(encode_control(msg))
        except ConnectionClosed as e:
            self._ws = None
            raise TransportDisconnected(f"Connection to {self.url} closed") from e

    async def set_target_language(self, language: str) -> None:
        await self.send(SetTargetLanguage(language=language))

    async def set_translation_enabled(self, enabled: bool) -> None:
        await self.send(SetTranslationEnabled(enabled=enabled))

    async def start_transcription(self) -> None:
        await self.send(StartTranscription())

    async def stop_transcription(self) -> None:
        await self.send(StopTranscription())

    async def send_audio(self, frame: bytes) -> None:
        await self.send(AudioData(frame=frame))

    def dispatch(self, event: ServerEvent) -> None:
        if isinstance(event, ErrorEvent):
            logger.warning("server_error_event", extra={"kind": event.kind, "error": event.error})
        elif isinstance(event, (TranscriptEvent, TranslationEvent)):
            logger.debug("server_event", extra={"kind": type(event).__name__, "is_final": event.is_final})
        for callback in list(self._on_event):
            callback(event)

    async def run(self) -> None:
        ws = self._ws
        if ws is None:
            raise TransportDisconnected("Channel not connected. Call connect() first.")
        reason: Optional[str] = None
        try:
            async for raw in ws:
                try:
                    event = decode_event(raw)
                except ProtocolError as e:
                    logger.warning("invalid_server_message", extra={"error": str(e)})
                    continue
                self.dispatch(event)
        except ConnectionClosed as e:
            reason = str(e)
        finally:
            if self._ws is ws:
                self._ws = None
        disconnected = TransportDisconnected(f"Disconnected from {self.url}" + (f": {reason}" if reason else ""))
        logger.info("channel_disconnected", extra={"url": self.url, "reason": reason or ""})
        for callback in list(self._on_disconnect):
            callback(disconnected)

    async def close(self) -> None:
        ws, self._ws = self._ws, None
        if ws is not None:
            await ws.close()
