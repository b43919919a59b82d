"""Loudness metering for captured buffers."""

import logging

import numpy as np

logger = logging.getLogger(__name__)

_DTYPES = {1: np.int8, 2: np.int16, 4: np.int32}


class AudioLevelMeter:
    """Mean absolute amplitude of a buffer, normalised to [0.0, 1.0].

    Only the first channel is measured. The meter also keeps the highest level
    seen since the last reset.
    """

    def __init__(self, sample_width: int = 2, channels: int = 1):
        if sample_width not in _DTYPES:
            raise ValueError(f"Unsupported sample width: {sample_width}")
        self.dtype = _DTYPES[sample_width]
        self.channels = channels
        self.full_scale = float(np.iinfo(self.dtype).max) + 1.0
        self.level = 0.0
        self.peak_level = 0.0

    def measure(self, audio_data: bytes) -> float:
        """Compute the level of one interleaved PCM buffer."""
        samples = np.frombuffer(audio_data, dtype=self.dtype)
        usable = len(samples) - len(samples) % self.channels
        if usable == 0:
            return 0.0

        first_channel = samples[:usable].reshape(-1, self.channels)[:, 0]
        level = float(np.mean(np.abs(first_channel.astype(np.float64)))) / self.full_scale

        self.level = level
        self.peak_level = max(self.peak_level, level)
        return level

    def reset(self) -> None:
        self.level = 0.0
        self.peak_level = 0.0
