"""
Tests for the single-concurrency transcription dispatcher.
Fake backend runs in the executor like the real requests client.
"""
import asyncio
import random
import threading
import time
import unittest
from unittest.mock import AsyncMock

from core.errors import TranscriptionError
from metrics import streaming_metrics
from streaming.dispatcher import TranscriptionDispatcher, TranscriptionJob, transcribe_and_send
from streaming.session import Session


class FakeBackend:
    """Records call order and the maximum number of overlapping calls."""

    def __init__(self, fail_paths=(), delay=0.0, jitter=0.0):
        self.fail_paths = set(fail_paths)
        self.delay = delay
        self.jitter = jitter
        self.calls = []
        self.max_concurrent = 0
        self._active = 0
        self._lock = threading.Lock()

    def transcribe(self, file_path, granularity):
        with self._lock:
            self._active += 1
            self.max_concurrent = max(self.max_concurrent, self._active)
            self.calls.append((file_path, granularity))
        try:
            time.sleep(self.delay + random.random() * self.jitter)
            if file_path in self.fail_paths:
                raise TranscriptionError("503 Service Unavailable")
            return f"text for {file_path}"
        finally:
            with self._lock:
                self._active -= 1


def _session():
    return Session(send=AsyncMock())


class TestTranscriptionDispatcher(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        streaming_metrics.reset()

    async def test_jobs_run_in_fifo_order(self):
        backend = FakeBackend()
        dispatcher = TranscriptionDispatcher(backend)
        session = _session()
        for i in range(5):
            dispatcher.enqueue(TranscriptionJob(f"/rec/{i}.wav", session))
        await dispatcher.join()
        self.assertEqual([c[0] for c in backend.calls], [f"/rec/{i}.wav" for i in range(5)])
        frames = [c.args[0] for c in session.send.await_args_list]
        self.assertEqual([f["sequence"] for f in frames], [1, 2, 3, 4, 5])
        self.assertEqual(frames[0], {"transcript": "text for /rec/0.wav", "audio_size": "short", "sequence": 1})
        self.assertFalse(dispatcher.busy)
        self.assertEqual(dispatcher.pending_count, 0)

    async def test_never_two_calls_in_flight(self):
        backend = FakeBackend(delay=0.002, jitter=0.003)
        dispatcher = TranscriptionDispatcher(backend)
        sessions = [_session() for _ in range(4)]
        for round_no in range(6):
            for s_idx, session in enumerate(sessions):
                dispatcher.enqueue(TranscriptionJob(f"/rec/{s_idx}_{round_no}.wav", session))
            await asyncio.sleep(random.random() * 0.005)
        await dispatcher.join()
        self.assertEqual(len(backend.calls), 24)
        self.assertEqual(backend.max_concurrent, 1)
        for session in sessions:
            self.assertEqual(session.sequence, 6)

    async def test_failure_reports_error_and_queue_continues(self):
        backend = FakeBackend(fail_paths={"/rec/bad.wav"})
        dispatcher = TranscriptionDispatcher(backend)
        session = _session()
        dispatcher.enqueue(TranscriptionJob("/rec/bad.wav", session))
        dispatcher.enqueue(TranscriptionJob("/rec/good.wav", session))
        await dispatcher.join()
        first, second = [c.args[0] for c in session.send.await_args_list]
        self.assertEqual(first, {"error": "Error during transcription", "details": "503 Service Unavailable", "sequence": 1})
        self.assertEqual(second["transcript"], "text for /rec/good.wav")
        self.assertEqual(second["sequence"], 2)
        self.assertEqual(streaming_metrics.get_snapshot()["transcription_failure_count"], 1)

    async def test_unexpected_exception_does_not_stop_queue(self):
        backend = FakeBackend()
        original = backend.transcribe

        def flaky(path, granularity):
            if path == "/rec/boom.wav":
                raise KeyError("boom")
            return original(path, granularity)

        backend.transcribe = flaky
        dispatcher = TranscriptionDispatcher(backend)
        session = _session()
        dispatcher.enqueue(TranscriptionJob("/rec/boom.wav", session))
        dispatcher.enqueue(TranscriptionJob("/rec/next.wav", session))
        await dispatcher.join()
        frames = [c.args[0] for c in session.send.await_args_list]
        self.assertIn("error", frames[0])
        self.assertEqual(frames[1]["transcript"], "text for /rec/next.wav")

    async def test_closed_session_mid_flight_is_ignored(self):
        backend = FakeBackend(delay=0.05)
        dispatcher = TranscriptionDispatcher(backend)
        closed = _session()
        alive = _session()
        dispatcher.enqueue(TranscriptionJob("/rec/a.wav", closed))
        dispatcher.enqueue(TranscriptionJob("/rec/b.wav", alive))
        await asyncio.sleep(0.01)
        self.assertTrue(dispatcher.busy)
        closed.close()
        await dispatcher.join()
        closed.send.assert_not_awaited()
        self.assertEqual(alive.sequence, 1)

    async def test_send_failure_on_dead_transport_is_swallowed(self):
        backend = FakeBackend()
        dispatcher = TranscriptionDispatcher(backend)
        session = Session(send=AsyncMock(side_effect=RuntimeError('Cannot call "send" once a close message has been sent.')))
        other = _session()
        dispatcher.enqueue(TranscriptionJob("/rec/a.wav", session))
        dispatcher.enqueue(TranscriptionJob("/rec/b.wav", other))
        await dispatcher.join()
        self.assertEqual(len(backend.calls), 2)
        self.assertEqual(other.sequence, 1)

    async def test_enqueue_after_idle_restarts_drain(self):
        backend = FakeBackend()
        dispatcher = TranscriptionDispatcher(backend)
        session = _session()
        dispatcher.enqueue(TranscriptionJob("/rec/1.wav", session))
        await dispatcher.join()
        dispatcher.enqueue(TranscriptionJob("/rec/2.wav", session))
        await dispatcher.join()
        self.assertEqual(len(backend.calls), 2)
        self.assertEqual(streaming_metrics.get_snapshot()["queue_depth"], 0)


class TestDirectTranscription(unittest.IsolatedAsyncioTestCase):
    async def test_long_path_emits_long_frame(self):
        backend = FakeBackend()
        session = _session()
        delivered = await transcribe_and_send(backend, session, "/rec/combined.wav", "long")
        self.assertTrue(delivered)
        session.send.assert_awaited_once_with(
            {"transcript": "text for /rec/combined.wav", "audio_size": "long", "sequence": 1}
        )


if __name__ == "__main__":
    unittest.main()
