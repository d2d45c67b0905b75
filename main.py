"""
Live transcription relay API.

Browser streams raw PCM over a WebSocket; every chunk is persisted as a short
WAV segment (with overlap) and every few chunks as a long one. Segments are
sent to the external transcription services and results are streamed back
with per-connection sequence numbers.
"""
import logging
import os

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse
from fastapi.staticfiles import StaticFiles

import config
from core.audio_writer import AudioWriter
from core.summary_client import SummaryClient
from core.transcription_client import TranscriptionClient
from metrics.streaming_metrics import get_snapshot
from streaming.dispatcher import TranscriptionDispatcher
from streaming.websocket_server import build_ws_transcribe_handler

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Live Transcription Relay")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

os.makedirs(config.RECORDINGS_DIR, exist_ok=True)

transcription_client = TranscriptionClient(
    short_url=config.SHORT_TRANSCRIBE_URL,
    long_url=config.LONG_TRANSCRIBE_URL,
    timeout=config.TRANSCRIBE_TIMEOUT_SECONDS,
)
# One dispatcher for the whole process: at most one backend call in flight
dispatcher = TranscriptionDispatcher(transcription_client)
summary_client = (
    SummaryClient(config.SUMMARY_URL, timeout=config.TRANSCRIBE_TIMEOUT_SECONDS)
    if config.SUMMARY_URL
    else None
)

_ws_transcribe_handler = build_ws_transcribe_handler(
    dispatcher=dispatcher,
    transcription_client=transcription_client,
    audio_writer=AudioWriter(
        sample_rate=config.SAMPLE_RATE,
        sample_width=config.BYTES_PER_SAMPLE,
        channels=config.CHANNELS,
    ),
    recordings_dir=os.path.abspath(config.RECORDINGS_DIR),
    overlap_duration_ms=config.OVERLAP_DURATION_MS,
    sample_rate=config.SAMPLE_RATE,
    bytes_per_sample=config.BYTES_PER_SAMPLE,
    long_chunk_amount=config.LONG_CHUNK_AMOUNT,
    serialize_long_segments=config.SERIALIZE_LONG_SEGMENTS,
    summary_client=summary_client,
)
app.websocket("/ws/transcribe")(_ws_transcribe_handler)
# The bundled browser client connects to the server root
app.websocket("/")(_ws_transcribe_handler)


@app.get("/health")
def health_check():
    return {
        "status": "ok",
        "message": "Live transcription relay is running",
        "dispatcher_busy": dispatcher.busy,
        "dispatcher_pending": dispatcher.pending_count,
    }


@app.get("/metrics/streaming", include_in_schema=False)
def metrics_streaming():
    """JSON snapshot: connections, segments written, failures, queue depth, transcription latency."""
    return get_snapshot()


if config.STATIC_DIR and os.path.isdir(config.STATIC_DIR):
    app.mount("/static", StaticFiles(directory=config.STATIC_DIR), name="static")

    @app.get("/", include_in_schema=False)
    async def serve_ui():
        try:
            with open(os.path.join(config.STATIC_DIR, "index.html"), "r", encoding="utf-8") as f:
                return HTMLResponse(content=f.read())
        except OSError:
            raise HTTPException(status_code=404, detail="UI not found.")


if __name__ == "__main__":
    uvicorn.run(
        app,
        host=config.HOST,
        port=config.PORT,
        ssl_keyfile=config.SSL_KEYFILE,
        ssl_certfile=config.SSL_CERTFILE,
        log_level=config.LOG_LEVEL.lower(),
    )
