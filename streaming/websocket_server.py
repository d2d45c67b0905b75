"""
WebSocket handler for live transcription (/ws/transcribe).

- Binary frames: raw mono 16-bit LE PCM chunks at the server sample rate.
  Each chunk becomes a short segment (previous tail + chunk) that is written
  to disk and queued on the shared dispatcher. Every `long_chunk_amount`
  chunks the raw chunks are also written as one long segment and transcribed
  directly, outside the dispatcher (unless `serialize_long_segments`).
- Text frames: JSON action requests. {"action": "summarize", "text": ...} is
  forwarded to the optional summary service; other actions are logged.
  "end" / "stop" / "close" ends the session. Malformed JSON is logged and
  ignored.
- A segment that fails to persist produces no frame at all; a failed
  transcription produces an error frame. Results for a closed connection are
  dropped quietly.
"""

import asyncio
import json
import logging
import os
from typing import Any, Callable, Coroutine, Dict, Optional, Set

from fastapi import WebSocket, WebSocketDisconnect

from core.errors import FrameProtocolError, SegmentWriteError, TranscriptionError
from metrics import streaming_metrics
from streaming.audio_buffer import OverlapBuffer, SegmentAccumulator
from streaming.dispatcher import TranscriptionDispatcher, TranscriptionJob, transcribe_and_send
from streaming.session import SUMMARY_ERROR, AudioSegment, Session, segment_path

logger = logging.getLogger(__name__)

END_COMMANDS = ("end", "stop", "close")

# Strong references to fire-and-forget tasks; the loop only keeps weak ones
_background_tasks: Set[asyncio.Task] = set()


def spawn(coro: Coroutine) -> asyncio.Task:
    task = asyncio.get_running_loop().create_task(coro)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


def parse_action(text: str) -> Dict[str, Any]:
    """Decode a text frame into an action request dict."""
    try:
        request = json.loads(text)
    except json.JSONDecodeError as e:
        raise FrameProtocolError(f"Text frame is not JSON: {e}") from e
    if not isinstance(request, dict):
        raise FrameProtocolError(f"Text frame must be a JSON object, got {type(request).__name__}")
    return request


def build_ws_transcribe_handler(
    dispatcher: TranscriptionDispatcher,
    transcription_client: Any,
    audio_writer: Any,
    recordings_dir: str,
    overlap_duration_ms: float = 300.0,
    sample_rate: int = 48000,
    bytes_per_sample: int = 2,
    long_chunk_amount: int = 5,
    serialize_long_segments: bool = False,
    summary_client: Optional[Any] = None,
) -> Callable:
    """
    Build the async WebSocket handler for /ws/transcribe.

    Args:
        dispatcher: Process-wide TranscriptionDispatcher for short segments.
        transcription_client: Object with transcribe(file_path, granularity) -> str.
        audio_writer: Object with write(file_path, data); raises SegmentWriteError.
        recordings_dir: Directory the segment files are written to.
        overlap_duration_ms: Tail of each chunk repeated at the head of the next short segment.
        sample_rate: PCM sample rate of inbound chunks.
        bytes_per_sample: Sample width of inbound chunks.
        long_chunk_amount: Chunks per long segment.
        serialize_long_segments: Queue long segments on the dispatcher instead of calling directly.
        summary_client: Optional object with summarize(text) -> str.

    Returns:
        Async function (websocket: WebSocket) -> None for use with FastAPI.
    """
    overlap = OverlapBuffer(
        overlap_duration_ms=overlap_duration_ms,
        sample_rate=sample_rate,
        bytes_per_sample=bytes_per_sample,
    )
    accumulator = SegmentAccumulator(long_chunk_amount=long_chunk_amount)

    async def persist(segment: AudioSegment) -> bool:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, audio_writer.write, segment.file_path, segment.data)
        except SegmentWriteError as e:
            streaming_metrics.record_write_failure()
            logger.warning("Dropping %s segment, no result will be sent: %s", segment.granularity, e)
            return False
        streaming_metrics.record_segment_written(segment.granularity)
        logger.info("%s saved.", os.path.basename(segment.file_path))
        return True

    async def handle_binary(session: Session, chunk: bytes) -> None:
        # Both buffers advance before any await so a frame's state change is atomic
        short_data, _ = overlap.apply(session, chunk)
        long_data = accumulator.absorb(session, chunk)

        short = AudioSegment(
            data=short_data,
            granularity="short",
            file_path=segment_path(recordings_dir, "short", session.chunk_counter, session.session_id),
        )
        if await persist(short):
            dispatcher.enqueue(TranscriptionJob(file_path=short.file_path, session=session, granularity="short"))

        if long_data is None:
            return
        long = AudioSegment(
            data=long_data,
            granularity="long",
            file_path=segment_path(recordings_dir, "long", session.chunk_counter, session.session_id),
        )
        if not await persist(long):
            return
        if serialize_long_segments:
            dispatcher.enqueue(TranscriptionJob(file_path=long.file_path, session=session, granularity="long"))
        else:
            spawn(transcribe_and_send(transcription_client, session, long.file_path, "long"))

    async def summarize_and_send(session: Session, text: str) -> None:
        loop = asyncio.get_running_loop()
        try:
            summary = await loop.run_in_executor(None, summary_client.summarize, text)
        except TranscriptionError as e:
            logger.warning("Summary failed: %s", e.detail)
            await session.emit_error(e.detail, error=SUMMARY_ERROR)
            return
        await session.emit_summary(summary)

    async def handle_text(session: Session, text: str) -> bool:
        """Returns False when the client asked to end the session."""
        if text.strip().lower() in END_COMMANDS:
            return False
        try:
            request = parse_action(text)
            action = request.get("action")
            if action == "summarize":
                if not isinstance(request.get("text", ""), str):
                    raise FrameProtocolError("summarize 'text' must be a string")
        except FrameProtocolError as e:
            streaming_metrics.record_protocol_failure()
            logger.warning("Ignoring text frame (session %s): %s", session.session_id, e)
            return True

        if action == "summarize" and summary_client is not None:
            spawn(summarize_and_send(session, request.get("text", "")))
        else:
            logger.info("Unhandled action request (session %s): %s", session.session_id, request)
        return True

    async def handle_ws_transcribe(websocket: WebSocket) -> None:
        await websocket.accept()
        session = Session(send=websocket.send_json)
        streaming_metrics.record_connection_open()
        logger.info("WebSocket connection established (session %s)", session.session_id)

        try:
            while True:
                data = await websocket.receive()
                if data.get("type") == "websocket.disconnect":
                    break
                if data.get("type") != "websocket.receive":
                    continue
                try:
                    if data.get("bytes") is not None:
                        if data["bytes"]:
                            await handle_binary(session, data["bytes"])
                    elif data.get("text") is not None:
                        if not await handle_text(session, data["text"]):
                            await websocket.close()
                            break
                except Exception:
                    logger.exception("Error processing message (session %s)", session.session_id)
        except WebSocketDisconnect:
            pass
        except Exception:
            logger.exception("WebSocket error (session %s)", session.session_id)
        finally:
            session.close()
            streaming_metrics.record_connection_close()
            logger.info("WebSocket connection closed (session %s)", session.session_id)

    return handle_ws_transcribe
