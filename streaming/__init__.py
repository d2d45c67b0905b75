"""
Real-time streaming layer.

- audio_buffer: Overlap buffering for short segments, accumulation for long ones.
- session: Per-connection state and sequenced frame emission.
- dispatcher: Process-wide single-concurrency transcription queue.
- websocket_server: WebSocket handler for /ws/transcribe (import separately to avoid pulling FastAPI).
"""

from streaming.audio_buffer import (
    OverlapBuffer,
    SegmentAccumulator,
    bytes_to_duration_ms,
    duration_ms_to_bytes,
)

__all__ = [
    "OverlapBuffer",
    "SegmentAccumulator",
    "bytes_to_duration_ms",
    "duration_ms_to_bytes",
]
