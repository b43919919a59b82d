"""Audio-related data models."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class AudioFormat:
    """Interleaved integer PCM format of a stream or file."""
    sample_rate: int
    channels: int = 1
    sample_width: int = 2  # bytes per sample

    @property
    def frame_size(self) -> int:
        """Bytes per frame (one sample for every channel)."""
        return self.channels * self.sample_width

    @property
    def bytes_per_second(self) -> int:
        return self.sample_rate * self.frame_size

    def frames_in(self, data: bytes) -> int:
        return len(data) // self.frame_size

    def __str__(self) -> str:
        return f"{self.sample_rate}Hz/{self.channels}ch/{self.sample_width * 8}bit"


@dataclass
class CaptureConfig:
    """Explicit capture settings handed to a CaptureEngine at construction."""
    sample_rate: int = 16000
    channels: int = 1
    sample_width: int = 2
    chunk_size: int = 1024  # frames per hardware buffer
    queue_size: int = 512   # buffers held between the audio callback and the writer
    input_device_index: Optional[int] = None
    tick_interval_ms: int = 100

    @property
    def output_format(self) -> AudioFormat:
        """Format of the session file."""
        return AudioFormat(self.sample_rate, self.channels, self.sample_width)


@dataclass
class AudioStats:
    """Audio recording statistics."""
    is_recording: bool
    is_paused: bool
    duration_seconds: float
    durable_seconds: float
    sample_rate: int
    chunk_size: int
    total_chunks: int
    dropped_chunks: int = 0
    peak_level: float = 0.0
