"""
HTTP client for the external transcription services.

Two fixed endpoints, picked by segment granularity:
- short: single chunk (plus overlap) transcription
- long: multi-chunk transcription

The backend reads the audio from the shared recordings directory, so only the
file path and the size tag travel over the wire.
"""

import logging
from typing import Optional

import requests

from core.errors import TranscriptionError

logger = logging.getLogger(__name__)

SHORT = "short"
LONG = "long"
GRANULARITIES = (SHORT, LONG)


class TranscriptionClient:
    """Blocking client; call it from an executor when on the event loop."""

    def __init__(
        self,
        short_url: str,
        long_url: str,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Args:
            short_url: Endpoint for short segments.
            long_url: Endpoint for long segments. No failover between the two.
            timeout: Seconds before a call is abandoned (None = wait indefinitely).
            session: Optional requests.Session for connection reuse.
        """
        self.endpoints = {SHORT: short_url, LONG: long_url}
        self.timeout = timeout
        self._http = session or requests.Session()

    def endpoint_for(self, granularity: str) -> str:
        try:
            return self.endpoints[granularity]
        except KeyError:
            raise ValueError(f"Unknown segment granularity: {granularity!r}") from None

    def transcribe(self, file_path: str, granularity: str) -> str:
        """
        Transcribe one persisted segment.

        Returns:
            The transcript text.

        Raises:
            TranscriptionError: network failure, timeout, non-2xx response or
                a response without a transcription.
        """
        endpoint = self.endpoint_for(granularity)
        payload = {"audio_file_path": file_path, "audio_size": granularity}
        try:
            response = self._http.post(endpoint, json=payload, timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except requests.RequestException as e:
            raise TranscriptionError(f"{type(e).__name__}: {e}", endpoint=endpoint) from e
        except ValueError as e:
            raise TranscriptionError(f"Invalid JSON from transcription service: {e}", endpoint=endpoint) from e

        if not isinstance(body, dict) or "transcription" not in body:
            raise TranscriptionError("Transcription service response has no 'transcription' field", endpoint=endpoint)
        transcript = body["transcription"]
        if transcript is None:
            transcript = ""
        logger.debug("Transcribed %s (%s): %r", file_path, granularity, transcript)
        return str(transcript)
