"""WebSocket front end of the orchestrator.

Each connection gets its own StreamingSession. Inbound text frames are JSON
control messages, inbound binary frames are audio. Outbound events are
queued by the session and written by one writer task per connection, so
they leave in the order the session produced them.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from typing import Callable, Optional

from websockets.asyncio.server import serve
from websockets.exceptions import ConnectionClosed

from livelingo.contracts import TRANSCRIPTION_ERROR, ErrorEvent
from livelingo.errors import ProtocolError
from livelingo.server.session import (
    RecognizerFactory,
    SessionConfig,
    StreamingSession,
    TranslatorFactory,
)
from livelingo.transport.messages import ServerEvent, decode_control, encode_event

logger = logging.getLogger(__name__)


class TranscriptionServer:
    def __init__(
        self,
        *,
        recognizer_factory: RecognizerFactory,
        translator_factory: TranslatorFactory,
        session_config: Callable[[], SessionConfig] = SessionConfig,
        host: str = "127.0.0.1",
        port: int = 8765,
    ) -> None:
        self.host = host
        self.port = port
        self.recognizer_factory = recognizer_factory
        self.translator_factory = translator_factory
        self.session_config = session_config
        self.sessions: dict[str, StreamingSession] = {}

    def create_session(self, client_id: str, sink: Callable[[ServerEvent], None]) -> StreamingSession:
        return StreamingSession(
            sink=sink,
            recognizer_factory=self.recognizer_factory,
            translator_factory=self.translator_factory,
            config=self.session_config(),
            session_id=client_id,
        )

    async def _write_events(self, websocket, outbound: "asyncio.Queue[ServerEvent]", client_id: str) -> None:
        while True:
            event = await outbound.get()
            try:
                await websocket.send(encode_event(event))
            except ConnectionClosed:
                logger.debug("client_gone_while_sending", extra={"client_id": client_id})
                return

    async def handle_client(self, websocket) -> None:
        client_id = uuid.uuid4().hex[:8]
        outbound: "asyncio.Queue[ServerEvent]" = asyncio.Queue()
        session = self.create_session(client_id, outbound.put_nowait)
        self.sessions[client_id] = session
        writer = asyncio.create_task(self._write_events(websocket, outbound, client_id))
        remote = getattr(websocket, "remote_address", None)
        logger.info("client_connected", extra={"client_id": client_id, "remote": str(remote)})

        try:
            async for message in websocket:
                try:
                    msg = decode_control(message)
                except ProtocolError as e:
                    logger.warning("invalid_client_message", extra={"client_id": client_id, "error": str(e)})
                    # clients treat a transcription-error as the end of the stream
                    session.stop()
                    outbound.put_nowait(ErrorEvent(kind=TRANSCRIPTION_ERROR, error=str(e)))
                    continue
                try:
                    session.handle_message(msg)
                except Exception as e:
                    logger.exception("client_message_failed", extra={"client_id": client_id})
                    session.stop()
                    outbound.put_nowait(ErrorEvent(kind=TRANSCRIPTION_ERROR, error=f"Processing error: {e!s}"))
        except ConnectionClosed:
            logger.debug("client_connection_closed", extra={"client_id": client_id})
        finally:
            session.close()
            self.sessions.pop(client_id, None)
            writer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await writer
            logger.info(
                "client_disconnected",
                extra={"client_id": client_id, **vars(session.stats)},
            )

    async def serve_forever(self, ready: Optional[asyncio.Event] = None) -> None:
        async with serve(self.handle_client, self.host, self.port) as server:
            logger.info("server_listening", extra={"host": self.host, "port": self.port})
            if ready is not None:
                ready.set()
            await server.serve_forever()
