"""
Failure types for the segment pipeline.

Every failure is scoped to a single segment or frame; none of them ends a
connection or stops the transcription dispatcher.
"""


class PipelineError(Exception):
    """Base exception for streaming pipeline failures."""


class SegmentWriteError(PipelineError):
    """A segment could not be persisted; it is dropped without a result frame."""

    def __init__(self, file_path: str, detail: str):
        self.file_path = file_path
        self.detail = detail
        super().__init__(f"Could not write {file_path}: {detail}")


class TranscriptionError(PipelineError):
    """The transcription backend was unreachable or answered with an error."""

    def __init__(self, detail: str, endpoint: str = ""):
        self.detail = detail
        self.endpoint = endpoint
        super().__init__(detail)


class FrameProtocolError(PipelineError):
    """An inbound text frame could not be understood."""
