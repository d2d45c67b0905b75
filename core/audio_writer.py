"""
Segment persistence: raw PCM bytes -> WAV file on disk.

Each segment becomes an independently decodable mono 16-bit little-endian WAV
at the server's fixed sample rate. Files appear at their final path only once
fully written, so downstream stages never see a partial segment.
"""

import logging
import os
import struct
import uuid
from typing import Optional

from core.errors import SegmentWriteError

logger = logging.getLogger(__name__)

WAV_HEADER_BYTES = 44


def raw_to_wav(raw: bytes, sample_rate: int = 48000, sample_width: int = 2, channels: int = 1) -> bytes:
    """Wrap raw PCM in a canonical 44-byte RIFF/WAVE header."""
    n = len(raw)
    # RIFF chunks are word aligned; the pad byte is not counted in the data size
    pad = b"\x00" if n % 2 else b""
    block_align = channels * sample_width
    header = bytearray(WAV_HEADER_BYTES)
    header[0:4] = b"RIFF"
    struct.pack_into("<I", header, 4, 36 + n + len(pad))
    header[8:12] = b"WAVE"
    header[12:16] = b"fmt "
    struct.pack_into("<I", header, 16, 16)  # fmt chunk size
    struct.pack_into("<H", header, 20, 1)   # PCM
    struct.pack_into("<H", header, 22, channels)
    struct.pack_into("<I", header, 24, sample_rate)
    struct.pack_into("<I", header, 28, sample_rate * block_align)
    struct.pack_into("<H", header, 32, block_align)
    struct.pack_into("<H", header, 34, sample_width * 8)
    header[36:40] = b"data"
    struct.pack_into("<I", header, 40, n)
    return bytes(header) + bytes(raw) + pad


class AudioWriter:
    """Writes segments in the server's fixed audio format."""

    def __init__(self, sample_rate: int = 48000, sample_width: int = 2, channels: int = 1):
        self.sample_rate = sample_rate
        self.sample_width = sample_width
        self.channels = channels

    def write(self, file_path: str, data: bytes) -> None:
        """
        Persist `data` as a WAV file at `file_path`.

        Raises:
            SegmentWriteError: the file could not be written. No file is left
                at `file_path` in that case.
        """
        tmp_path: Optional[str] = f"{file_path}.{uuid.uuid4().hex}.part"
        try:
            with open(tmp_path, "wb") as f:
                f.write(raw_to_wav(data, self.sample_rate, self.sample_width, self.channels))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, file_path)
            tmp_path = None
        except OSError as e:
            raise SegmentWriteError(file_path, str(e)) from e
        finally:
            if tmp_path and os.path.exists(tmp_path):
                try:
                    os.remove(tmp_path)
                except OSError:
                    logger.warning("Could not remove partial segment %s", tmp_path)
