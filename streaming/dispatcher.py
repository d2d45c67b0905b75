"""
Single-concurrency transcription dispatch.

One dispatcher is shared by every connection in the process. Jobs are run
strictly one at a time in arrival order: the transcription backend is treated
as a single-concurrency resource. A failing job is reported to its session and
the queue moves on.

The deque and the busy flag are only touched on the event loop thread; only
the drain task flips `busy` and pops jobs. The blocking HTTP call itself runs
in the default executor.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Optional

from core.errors import TranscriptionError
from metrics import streaming_metrics
from streaming.session import Session

logger = logging.getLogger(__name__)


@dataclass
class TranscriptionJob:
    file_path: str
    session: Session
    granularity: str = "short"


@dataclass
class TranscriptionResult:
    granularity: str
    transcript: Optional[str] = None
    error_detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error_detail is None


async def run_transcription(client: Any, file_path: str, granularity: str) -> TranscriptionResult:
    """Call client.transcribe off the event loop and fold any failure into the result."""
    loop = asyncio.get_running_loop()
    t0 = time.perf_counter()
    try:
        transcript = await loop.run_in_executor(None, client.transcribe, file_path, granularity)
    except TranscriptionError as e:
        streaming_metrics.record_transcription_failure()
        logger.warning("Transcription failed for %s (%s): %s", file_path, granularity, e.detail)
        return TranscriptionResult(granularity=granularity, error_detail=e.detail)
    except Exception as e:
        streaming_metrics.record_transcription_failure()
        logger.exception("Unexpected transcription error for %s", file_path)
        return TranscriptionResult(granularity=granularity, error_detail=str(e) or type(e).__name__)
    finally:
        streaming_metrics.record_latency_ms((time.perf_counter() - t0) * 1000)
    return TranscriptionResult(granularity=granularity, transcript=transcript)


async def deliver(session: Session, result: TranscriptionResult) -> bool:
    """Emit a transcript or error frame on the session."""
    if result.ok:
        return await session.emit_transcript(result.transcript, result.granularity)
    return await session.emit_error(result.error_detail)


async def transcribe_and_send(client: Any, session: Session, file_path: str, granularity: str) -> bool:
    """Unserialized path: one call, one frame."""
    result = await run_transcription(client, file_path, granularity)
    return await deliver(session, result)


class TranscriptionDispatcher:
    """FIFO queue with at most one job in flight."""

    def __init__(self, client: Any):
        self._client = client
        self._pending: Deque[TranscriptionJob] = deque()
        self._busy = False
        self._drainer: Optional[asyncio.Task] = None

    @property
    def busy(self) -> bool:
        """True while a job is in flight."""
        return self._busy

    @property
    def pending_count(self) -> int:
        """Jobs waiting behind the one in flight."""
        return len(self._pending)

    def enqueue(self, job: TranscriptionJob) -> None:
        """Queue a job; starts draining if the dispatcher is idle. Must be called on the loop."""
        self._pending.append(job)
        self._report_depth()
        if self._drainer is None or self._drainer.done():
            self._drainer = asyncio.get_running_loop().create_task(self._drain())

    async def join(self) -> None:
        """Wait until every queued job has completed."""
        while self._drainer is not None and not self._drainer.done():
            await asyncio.wait({self._drainer})

    async def _drain(self) -> None:
        self._busy = True
        try:
            while self._pending:
                job = self._pending.popleft()
                self._report_depth()
                await self._process(job)
        finally:
            self._busy = False
            self._report_depth()

    async def _process(self, job: TranscriptionJob) -> None:
        result = await run_transcription(self._client, job.file_path, job.granularity)
        try:
            await deliver(job.session, result)
        except Exception:
            logger.exception("Could not deliver result for %s", job.file_path)

    def _report_depth(self) -> None:
        streaming_metrics.set_queue_depth(len(self._pending) + (1 if self._busy else 0))
