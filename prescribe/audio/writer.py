"""Streaming WAV sink for the continuous session file."""

import os
import wave
import logging
from typing import Optional, BinaryIO

from ..errors import CaptureIOError
from ..models.audio import AudioFormat

logger = logging.getLogger(__name__)


class SessionFileWriter:
    """Appends PCM frames to a single WAV file.

    ``wave`` patches the RIFF header after every write, so the file is a valid,
    readable WAV at any point; ``flush()`` makes everything written so far durable.
    Must only be used from one thread (the capture writer thread).
    """

    def __init__(self, file_path: str, audio_format: AudioFormat):
        self.file_path = file_path
        self.audio_format = audio_format
        self.frames_written = 0
        self.durable_frames = 0
        self._file: Optional[BinaryIO] = None
        self._wave: Optional[wave.Wave_write] = None

    def open(self) -> None:
        try:
            self._file = open(self.file_path, "wb")
            self._wave = wave.open(self._file, "wb")
            self._wave.setnchannels(self.audio_format.channels)
            self._wave.setsampwidth(self.audio_format.sample_width)
            self._wave.setframerate(self.audio_format.sample_rate)
        except (IOError, OSError) as e:
            self._close_file()
            raise CaptureIOError(f"Cannot open session file {self.file_path}: {e}") from e
        logger.info(f"Session file opened: {self.file_path} ({self.audio_format})")

    @property
    def is_open(self) -> bool:
        return self._wave is not None

    def write(self, audio_data: bytes) -> int:
        """Append frames; returns the number of frames written."""
        if not self._wave:
            raise CaptureIOError("Session file is not open")
        frames = self.audio_format.frames_in(audio_data)
        if frames == 0:
            return 0
        try:
            self._wave.writeframes(audio_data[:frames * self.audio_format.frame_size])
        except (IOError, OSError, wave.Error) as e:
            raise CaptureIOError(f"Write to {self.file_path} failed: {e}") from e
        self.frames_written += frames
        return frames

    def flush(self) -> int:
        """Flush and fsync; returns the number of durable frames."""
        if self._file and not self._file.closed:
            try:
                self._file.flush()
                os.fsync(self._file.fileno())
            except (IOError, OSError) as e:
                raise CaptureIOError(f"Flush of {self.file_path} failed: {e}") from e
            self.durable_frames = self.frames_written
        return self.durable_frames

    def close(self) -> int:
        """Finalize the header, fsync and close; returns total frames."""
        if self._wave:
            try:
                self._wave.close()
            except (IOError, OSError, wave.Error) as e:
                raise CaptureIOError(f"Closing {self.file_path} failed: {e}") from e
            finally:
                self._wave = None
            self.flush()
        self._close_file()
        logger.info(f"Session file closed: {self.file_path} ({self.frames_written} frames)")
        return self.frames_written

    def _close_file(self) -> None:
        if self._file and not self._file.closed:
            self._file.close()
        self._file = None

    @property
    def durable_seconds(self) -> float:
        return self.durable_frames / self.audio_format.sample_rate
