"""
Per-connection session record and outbound frame emission.

A Session is owned by its WebSocket handler and passed explicitly to the
buffers, the dispatcher and the long-segment tasks. All mutation happens on
the event loop thread.

Outbound frames (JSON):
- transcript: {"transcript": str, "sequence": int, "audio_size": "short"|"long"}
- error:      {"error": str, "details": str, "sequence": int}
- summary:    {"summary": str, "sequence": int}

Every emitted frame takes the next sequence number; the counter is shared by
the short and long paths, so wire order is production order.
"""

import logging
import os
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict

from fastapi import WebSocketDisconnect

logger = logging.getLogger(__name__)

TRANSCRIPTION_ERROR = "Error during transcription"
SUMMARY_ERROR = "Error during summarization"

SendFn = Callable[[Dict[str, Any]], Awaitable[None]]


@dataclass(frozen=True)
class AudioSegment:
    """One persisted run of audio: a single overlapped chunk or a long flush."""
    data: bytes
    granularity: str
    file_path: str


def segment_path(recordings_dir: str, granularity: str, chunk_counter: int = 0, session_id: str = "") -> str:
    """
    Short segments: audio_<epoch_ms>_<chunk_counter>[_<session_id>].wav
    Long segments: combined_audio_<epoch_ms>[_<session_id>].wav

    The session id keeps concurrent connections from colliding on the same
    millisecond.
    """
    now_ms = int(time.time() * 1000)
    suffix = f"_{session_id}" if session_id else ""
    if granularity == "short":
        filename = f"audio_{now_ms}_{chunk_counter}{suffix}.wav"
    else:
        filename = f"combined_audio_{now_ms}{suffix}.wav"
    return os.path.join(recordings_dir, filename)


@dataclass
class Session:
    send: SendFn
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    sequence: int = 0
    chunk_counter: int = 0
    overlap_tail: bytes = b""
    long_buffer: bytearray = field(default_factory=bytearray)
    closed: bool = False

    async def emit(self, payload: Dict[str, Any]) -> bool:
        """
        Stamp `payload` with the next sequence number and send it.

        Returns False when the frame could not be delivered. A closed or
        failing transport is logged and otherwise ignored; the peer's
        liveness is not ours to enforce.
        """
        if self.closed:
            logger.debug("Session %s closed; dropping frame %s", self.session_id, sorted(payload))
            return False
        self.sequence += 1
        frame = dict(payload)
        frame["sequence"] = self.sequence
        try:
            await self.send(frame)
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            logger.debug("Session %s: send failed (%s)", self.session_id, e)
            return False
        return True

    async def emit_transcript(self, transcript: str, granularity: str) -> bool:
        return await self.emit({"transcript": transcript, "audio_size": granularity})

    async def emit_error(self, details: str, error: str = TRANSCRIPTION_ERROR) -> bool:
        return await self.emit({"error": error, "details": details})

    async def emit_summary(self, summary: str) -> bool:
        return await self.emit({"summary": summary})

    def close(self) -> None:
        """Connection is gone: release buffers. Late results become no-ops."""
        self.closed = True
        self.overlap_tail = b""
        self.long_buffer = bytearray()
        self.chunk_counter = 0
