"""
Streaming observability metrics.

Thread-safe counters and latency samples for the transcription WebSocket.
Exposed via GET /metrics/streaming (JSON snapshot).
Segment writes and backend calls run in executor threads, hence the lock.
"""

import threading
from collections import deque
from typing import Any, Dict

# ----- Shared state (module-level for singleton behavior) -----
_lock = threading.Lock()
_active_connections = 0
_latency_samples: deque = deque(maxlen=1000)  # last N transcription call durations (ms)
_segments_written = {"short": 0, "long": 0}
_write_failure_count = 0
_transcription_failure_count = 0
_protocol_failure_count = 0
_queue_depth = 0


def record_connection_open() -> None:
    """Call when a WebSocket connection is accepted."""
    with _lock:
        global _active_connections
        _active_connections += 1


def record_connection_close() -> None:
    """Call when a WebSocket connection closes."""
    with _lock:
        global _active_connections
        _active_connections = max(0, _active_connections - 1)


def record_segment_written(granularity: str) -> None:
    with _lock:
        _segments_written[granularity] = _segments_written.get(granularity, 0) + 1


def record_write_failure() -> None:
    """Call when a segment could not be persisted (it is dropped silently)."""
    with _lock:
        global _write_failure_count
        _write_failure_count += 1


def record_transcription_failure() -> None:
    with _lock:
        global _transcription_failure_count
        _transcription_failure_count += 1


def record_protocol_failure() -> None:
    """Call when a text frame is malformed and ignored."""
    with _lock:
        global _protocol_failure_count
        _protocol_failure_count += 1


def record_latency_ms(total_ms: float) -> None:
    """Record one transcription call duration."""
    with _lock:
        _latency_samples.append(total_ms)


def set_queue_depth(depth: int) -> None:
    """Dispatcher backlog: pending jobs plus the one in flight."""
    with _lock:
        global _queue_depth
        _queue_depth = max(0, depth)


def reset() -> None:
    """Zero every counter (tests)."""
    global _active_connections, _write_failure_count, _transcription_failure_count
    global _protocol_failure_count, _queue_depth
    with _lock:
        _active_connections = 0
        _latency_samples.clear()
        _segments_written.clear()
        _segments_written.update({"short": 0, "long": 0})
        _write_failure_count = 0
        _transcription_failure_count = 0
        _protocol_failure_count = 0
        _queue_depth = 0


def get_snapshot() -> Dict[str, Any]:
    """
    Return a JSON-serializable snapshot of streaming metrics.
    Used by GET /metrics/streaming.
    """
    with _lock:
        samples = list(_latency_samples)
        snapshot = {
            "active_connections": _active_connections,
            "short_segments_written": _segments_written.get("short", 0),
            "long_segments_written": _segments_written.get("long", 0),
            "write_failure_count": _write_failure_count,
            "transcription_failure_count": _transcription_failure_count,
            "protocol_failure_count": _protocol_failure_count,
            "queue_depth": _queue_depth,
        }
    n = len(samples)
    if n == 0:
        avg_latency_ms = None
        p95_latency_ms = None
    else:
        avg_latency_ms = round(sum(samples) / n, 2)
        sorted_s = sorted(samples)
        idx = max(0, int(0.95 * n) - 1)
        p95_latency_ms = round(sorted_s[idx], 2)
    snapshot.update({
        "avg_latency_ms": avg_latency_ms,
        "p95_latency_ms": p95_latency_ms,
        "latency_sample_count": n,
    })
    return snapshot
