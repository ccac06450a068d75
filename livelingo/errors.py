from __future__ import annotations


class LiveLingoError(RuntimeError):
    pass


class CaptureUnavailable(LiveLingoError):
    """Audio source missing, unknown or permission denied. Retry or pick another source."""


class RecognizerStreamError(LiveLingoError):
    """The recognition provider failed mid-stream. The session falls back to idle."""


class TranslationCallError(LiveLingoError):
    """A single translation request failed. Transcription is unaffected."""


class TransportDisconnected(LiveLingoError):
    """The connection to the orchestrator is gone. Reconnect and start again."""


class ProtocolError(LiveLingoError):
    """A message on the transport could not be decoded."""
