"""
Per-connection chunk buffering for segment assembly.

Inbound chunks are raw mono 16-bit little-endian PCM at the server's sample
rate. Two views are built from the same chunks:

- OverlapBuffer: each short segment is the previous chunk's trailing overlap
  window followed by the current chunk, so no audio is lost at a boundary.
- SegmentAccumulator: raw chunks are concatenated and flushed as one long
  segment every `long_chunk_amount` chunks. No overlap inside long segments.

Both operate on the Session record passed in; they hold configuration only.
"""

from typing import Optional, Tuple

# 48 kHz mono, 16-bit = 96000 bytes/sec
SAMPLE_RATE = 48000
BYTES_PER_SAMPLE = 2
BYTES_PER_SECOND = SAMPLE_RATE * BYTES_PER_SAMPLE


def bytes_to_duration_ms(num_bytes: int, sample_rate: int = SAMPLE_RATE, bytes_per_sample: int = BYTES_PER_SAMPLE) -> float:
    """Convert raw audio byte count to duration in milliseconds."""
    if num_bytes <= 0:
        return 0.0
    return (num_bytes / (sample_rate * bytes_per_sample)) * 1000.0


def duration_ms_to_bytes(ms: float, sample_rate: int = SAMPLE_RATE, bytes_per_sample: int = BYTES_PER_SAMPLE) -> int:
    """Convert a duration in ms to a byte count, rounded down."""
    if ms <= 0:
        return 0
    return int(sample_rate * bytes_per_sample * ms // 1000)


class OverlapBuffer:
    """Prepends the previous chunk's tail to each chunk before persistence."""

    def __init__(
        self,
        overlap_duration_ms: float = 300.0,
        sample_rate: int = SAMPLE_RATE,
        bytes_per_sample: int = BYTES_PER_SAMPLE,
    ):
        self.overlap_bytes = duration_ms_to_bytes(overlap_duration_ms, sample_rate, bytes_per_sample)

    @classmethod
    def from_bytes(cls, overlap_bytes: int) -> "OverlapBuffer":
        """Build with an explicit window size in bytes."""
        buf = cls(overlap_duration_ms=0)
        buf.overlap_bytes = max(0, int(overlap_bytes))
        return buf

    def apply(self, session, raw_chunk: bytes) -> Tuple[bytes, bytes]:
        """
        Returns (segment_to_persist, new_tail) and stores new_tail on the session.

        The tail is taken from the raw chunk, never from the overlapped segment,
        so overlap does not compound across chunks.
        """
        chunk = bytes(raw_chunk)
        segment = session.overlap_tail + chunk
        if self.overlap_bytes == 0:
            new_tail = b""
        else:
            new_tail = chunk[-self.overlap_bytes:]
        session.overlap_tail = new_tail
        return segment, new_tail


class SegmentAccumulator:
    """Concatenates raw chunks and flushes them every `long_chunk_amount` chunks."""

    def __init__(self, long_chunk_amount: int = 5):
        if long_chunk_amount < 1:
            raise ValueError("long_chunk_amount must be >= 1")
        self.long_chunk_amount = long_chunk_amount

    def absorb(self, session, raw_chunk: bytes) -> Optional[bytes]:
        """Append a chunk; return the flushed long segment on every Nth chunk, else None."""
        session.long_buffer.extend(raw_chunk)
        session.chunk_counter += 1
        if session.chunk_counter % self.long_chunk_amount != 0:
            return None
        flushed = bytes(session.long_buffer)
        session.long_buffer = bytearray()
        return flushed
