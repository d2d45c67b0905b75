"""
Observability and streaming metrics.
"""

from metrics.streaming_metrics import (
    get_snapshot,
    record_connection_open,
    record_connection_close,
    record_segment_written,
    record_write_failure,
    record_transcription_failure,
    record_protocol_failure,
    record_latency_ms,
    set_queue_depth,
)

__all__ = [
    "get_snapshot",
    "record_connection_open",
    "record_connection_close",
    "record_segment_written",
    "record_write_failure",
    "record_transcription_failure",
    "record_protocol_failure",
    "record_latency_ms",
    "set_queue_depth",
]
