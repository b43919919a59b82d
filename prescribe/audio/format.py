"""Input/output format negotiation and streaming buffer conversion."""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
import pyaudio
import soxr

from ..errors import DeviceUnavailableError
from ..models.audio import AudioFormat

logger = logging.getLogger(__name__)

_DTYPES = {2: np.int16, 4: np.int32}


class BufferConverter:
    """Converts a stream of interleaved PCM buffers from ``source`` to ``target``.

    Handles channel down/up-mixing and sample-rate conversion. Sample width
    changes are done by rescaling to the target integer range. The resampler
    keeps its filter state across ``convert`` calls, so a few milliseconds of
    output lag behind the input until ``flush`` is called.
    """

    def __init__(self, source: AudioFormat, target: AudioFormat):
        for fmt in (source, target):
            if fmt.sample_width not in _DTYPES:
                raise ValueError(f"Unsupported sample width: {fmt.sample_width}")
        self.source = source
        self.target = target

        self._source_dtype = _DTYPES[source.sample_width]
        self._target_dtype = _DTYPES[target.sample_width]
        self._source_scale = float(np.iinfo(self._source_dtype).max) + 1.0
        self._target_scale = float(np.iinfo(self._target_dtype).max) + 1.0

        self._stream: Optional[soxr.ResampleStream] = None
        if source.sample_rate != target.sample_rate:
            self._stream = soxr.ResampleStream(
                source.sample_rate, target.sample_rate, target.channels,
                dtype="float32", quality="HQ")
        self._flushed = False

    def convert(self, audio_data: bytes) -> bytes:
        samples = np.frombuffer(audio_data, dtype=self._source_dtype)
        usable = len(samples) - len(samples) % self.source.channels
        if usable == 0:
            return b""

        frames = samples[:usable].reshape(-1, self.source.channels).astype(np.float32)
        frames /= self._source_scale

        if self.target.channels != self.source.channels:
            if self.target.channels == 1:
                frames = frames.mean(axis=1, keepdims=True)
            else:
                mono = frames.mean(axis=1, keepdims=True)
                frames = np.repeat(mono, self.target.channels, axis=1)

        if self._stream is not None:
            frames = self._resample(frames, last=False)
        return self._to_bytes(frames)

    def flush(self) -> bytes:
        """Drain the resampler tail. The converter accepts no input afterwards."""
        if self._stream is None or self._flushed:
            return b""
        self._flushed = True
        empty = np.zeros((0, self.target.channels), dtype=np.float32)
        return self._to_bytes(self._resample(empty, last=True))

    def _resample(self, frames: np.ndarray, last: bool) -> np.ndarray:
        if self._flushed and not last:
            raise RuntimeError("BufferConverter already flushed")
        channels = self.target.channels
        chunk = np.ascontiguousarray(frames[:, 0] if channels == 1 else frames)
        out = self._stream.resample_chunk(chunk, last=last)
        return np.asarray(out, dtype=np.float32).reshape(-1, channels)

    def _to_bytes(self, frames: np.ndarray) -> bytes:
        if len(frames) == 0:
            return b""
        out = np.clip(frames.astype(np.float64) * self._target_scale,
                      -self._target_scale, self._target_scale - 1)
        return out.astype(self._target_dtype).tobytes()

    def __repr__(self) -> str:
        return f"BufferConverter({self.source} -> {self.target})"


@dataclass
class Negotiation:
    """Outcome of a negotiation: the format to open the hardware with, plus a converter if needed."""
    input_format: AudioFormat
    output_format: AudioFormat
    converter: Optional[BufferConverter] = None

    @property
    def passthrough(self) -> bool:
        return self.converter is None


class FormatNegotiator:
    """Reconciles the hardware input format with the session file format.

    Must be asked again on every start and resume: a different device may be
    routed in with a different native format.
    """

    def probe_input_format(self,
                           pa: pyaudio.PyAudio,
                           desired: AudioFormat,
                           device_index: Optional[int] = None) -> AudioFormat:
        """Return the format the input device will be opened with.

        The desired format is used when the device accepts it directly,
        otherwise the device's native rate and channel count.
        """
        try:
            if device_index is None:
                info = pa.get_default_input_device_info()
            else:
                info = pa.get_device_info_by_index(device_index)
        except (IOError, OSError) as e:
            raise DeviceUnavailableError(f"No input device available: {e}") from e

        max_channels = int(info.get("maxInputChannels", 0))
        if max_channels < 1:
            raise DeviceUnavailableError(f"Device '{info.get('name')}' has no input channels")

        try:
            supported = pa.is_format_supported(
                desired.sample_rate,
                input_device=int(info["index"]),
                input_channels=desired.channels,
                input_format=pyaudio.get_format_from_width(desired.sample_width),
            )
        except ValueError:
            supported = False

        if supported:
            return desired

        native = AudioFormat(
            sample_rate=int(info.get("defaultSampleRate", desired.sample_rate)),
            channels=min(max_channels, 2),
            sample_width=desired.sample_width,
        )
        logger.info(f"Device '{info.get('name')}' does not accept {desired}; using native {native}")
        return native

    def negotiate(self, input_format: AudioFormat, output_format: AudioFormat) -> Negotiation:
        if input_format == output_format:
            logger.debug(f"Formats match ({input_format}); direct passthrough")
            return Negotiation(input_format, output_format)

        converter = BufferConverter(input_format, output_format)
        logger.info(f"Installing converter {input_format} -> {output_format}")
        return Negotiation(input_format, output_format, converter)
