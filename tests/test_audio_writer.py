"""
Tests for WAV segment persistence.
"""
import os
import struct
import tempfile
import unittest
import wave

from core.audio_writer import WAV_HEADER_BYTES, AudioWriter, raw_to_wav
from core.errors import SegmentWriteError


class TestRawToWav(unittest.TestCase):
    def test_header_fields(self):
        wav = raw_to_wav(b"\x01\x00" * 10, sample_rate=48000, sample_width=2)
        self.assertEqual(wav[0:4], b"RIFF")
        self.assertEqual(wav[8:12], b"WAVE")
        channels, rate, byte_rate, block_align, bits = struct.unpack("<HIIHH", wav[22:36])
        self.assertEqual((channels, rate, byte_rate, block_align, bits), (1, 48000, 96000, 2, 16))
        self.assertEqual(struct.unpack("<I", wav[40:44])[0], 20)
        self.assertEqual(len(wav), WAV_HEADER_BYTES + 20)

    def test_odd_length_is_padded(self):
        wav = raw_to_wav(b"\x01\x02\x03")
        self.assertEqual(struct.unpack("<I", wav[40:44])[0], 3)
        self.assertEqual(len(wav), WAV_HEADER_BYTES + 4)
        self.assertEqual(struct.unpack("<I", wav[4:8])[0], len(wav) - 8)


class TestAudioWriter(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.dir = self._tmp.name

    def tearDown(self):
        self._tmp.cleanup()

    def test_written_file_is_decodable(self):
        pcm = b"".join(struct.pack("<h", v) for v in range(-100, 100))
        path = os.path.join(self.dir, "audio_1_1.wav")
        AudioWriter(sample_rate=48000).write(path, pcm)
        with wave.open(path, "rb") as w:
            self.assertEqual(w.getnchannels(), 1)
            self.assertEqual(w.getsampwidth(), 2)
            self.assertEqual(w.getframerate(), 48000)
            self.assertEqual(w.readframes(w.getnframes()), pcm)
        self.assertEqual(os.listdir(self.dir), ["audio_1_1.wav"])

    def test_failure_raises_and_leaves_no_file(self):
        path = os.path.join(self.dir, "missing", "audio.wav")
        with self.assertRaises(SegmentWriteError) as ctx:
            AudioWriter().write(path, b"\x00\x00")
        self.assertEqual(ctx.exception.file_path, path)
        self.assertFalse(os.path.exists(path))
        self.assertEqual(os.listdir(self.dir), [])


if __name__ == "__main__":
    unittest.main()
