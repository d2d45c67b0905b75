"""
Optional summarization collaborator for {"action": "summarize"} text frames.
"""

from typing import Optional

import requests

from core.errors import TranscriptionError


class SummaryClient:
    """POSTs {"text": ...} to the summary service; expects {"summary": ...} back."""

    def __init__(self, url: str, timeout: Optional[float] = None):
        self.url = url
        self.timeout = timeout

    def summarize(self, text: str) -> str:
        try:
            response = requests.post(self.url, json={"text": text}, timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as e:
            raise TranscriptionError(f"{type(e).__name__}: {e}", endpoint=self.url) from e
        if not isinstance(body, dict) or "summary" not in body:
            raise TranscriptionError("Summary service response has no 'summary' field", endpoint=self.url)
        return str(body["summary"] or "")
