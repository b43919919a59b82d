"""Unit tests for format negotiation and buffer conversion."""

from unittest.mock import Mock

import numpy as np
import pytest

from prescribe.audio.format import BufferConverter, FormatNegotiator
from prescribe.errors import DeviceUnavailableError
from prescribe.models.audio import AudioFormat

OUTPUT = AudioFormat(16000, 1, 2)


def _device(**overrides):
    info = {'index': 0, 'name': 'Mock Mic', 'maxInputChannels': 2, 'defaultSampleRate': 48000.0}
    info.update(overrides)
    pa = Mock()
    pa.get_default_input_device_info.return_value = info
    pa.get_device_info_by_index.return_value = info
    return pa


@pytest.mark.unit
class TestFormatNegotiator:

    def test_desired_format_used_when_supported(self):
        pa = _device()
        pa.is_format_supported.return_value = True

        assert FormatNegotiator().probe_input_format(pa, OUTPUT) == OUTPUT

    def test_native_format_when_unsupported(self):
        pa = _device()
        pa.is_format_supported.side_effect = ValueError("Invalid sample rate")

        fmt = FormatNegotiator().probe_input_format(pa, OUTPUT)
        assert fmt == AudioFormat(48000, 2, 2)

    def test_native_channels_capped_at_two(self):
        pa = _device(maxInputChannels=8)
        pa.is_format_supported.return_value = False

        assert FormatNegotiator().probe_input_format(pa, OUTPUT).channels == 2

    def test_explicit_device_index(self):
        pa = _device(index=3)
        pa.is_format_supported.return_value = True

        FormatNegotiator().probe_input_format(pa, OUTPUT, device_index=3)
        pa.get_device_info_by_index.assert_called_once_with(3)
        pa.get_default_input_device_info.assert_not_called()

    def test_no_default_device(self):
        pa = Mock()
        pa.get_default_input_device_info.side_effect = IOError("No Default Input Device Available")

        with pytest.raises(DeviceUnavailableError):
            FormatNegotiator().probe_input_format(pa, OUTPUT)

    def test_device_without_input_channels(self):
        with pytest.raises(DeviceUnavailableError):
            FormatNegotiator().probe_input_format(_device(maxInputChannels=0), OUTPUT)

    def test_matching_formats_pass_through(self):
        negotiation = FormatNegotiator().negotiate(OUTPUT, OUTPUT)
        assert negotiation.passthrough
        assert negotiation.converter is None

    def test_mismatch_installs_converter(self):
        source = AudioFormat(48000, 2, 2)
        negotiation = FormatNegotiator().negotiate(source, OUTPUT)
        assert not negotiation.passthrough
        assert negotiation.converter.source == source
        assert negotiation.converter.target == OUTPUT


@pytest.mark.unit
class TestBufferConverter:

    def test_downmix_and_resample(self):
        converter = BufferConverter(AudioFormat(48000, 2, 2), OUTPUT)
        stereo = np.zeros((4800, 2), dtype=np.int16)

        out = converter.convert(stereo.tobytes()) + converter.flush()
        assert len(out) == 1600 * 2

    def test_chunked_resampling_matches_whole_signal(self):
        source = AudioFormat(48000, 1, 2)
        t = np.arange(48000 * 2) / 48000
        signal = (0.5 * 32767 * np.sin(2 * np.pi * 440 * t)).astype(np.int16)

        whole = BufferConverter(source, OUTPUT)
        expected = whole.convert(signal.tobytes()) + whole.flush()

        chunked = BufferConverter(source, OUTPUT)
        pieces = [chunked.convert(signal[i:i + 1024].tobytes())
                  for i in range(0, len(signal), 1024)]
        actual = b"".join(pieces) + chunked.flush()

        assert len(actual) // 2 == len(signal) * 16000 // 48000
        assert len(actual) == len(expected)
        diff = np.frombuffer(actual, dtype=np.int16).astype(np.int32) - \
            np.frombuffer(expected, dtype=np.int16).astype(np.int32)
        assert np.max(np.abs(diff)) <= 2

    def test_flush_is_idempotent(self):
        converter = BufferConverter(AudioFormat(48000, 1, 2), OUTPUT)
        converter.convert(np.zeros(4800, dtype=np.int16).tobytes())
        converter.flush()
        assert converter.flush() == b""

    def test_flush_without_resampling_is_empty(self):
        converter = BufferConverter(AudioFormat(16000, 2, 2), OUTPUT)
        assert converter.flush() == b""

    def test_downmix_averages_channels(self):
        converter = BufferConverter(AudioFormat(16000, 2, 2), OUTPUT)
        stereo = np.zeros((100, 2), dtype=np.int16)
        stereo[:, 0] = 1000
        stereo[:, 1] = 3000

        out = np.frombuffer(converter.convert(stereo.tobytes()), dtype=np.int16)
        assert len(out) == 100
        assert np.all(out == 2000)

    def test_upmix_repeats_mono(self):
        converter = BufferConverter(OUTPUT, AudioFormat(16000, 2, 2))
        mono = np.full(10, 1234, dtype=np.int16)

        out = np.frombuffer(converter.convert(mono.tobytes()), dtype=np.int16).reshape(-1, 2)
        assert out.shape == (10, 2)
        assert np.all(out == 1234)

    def test_output_is_clipped(self):
        converter = BufferConverter(AudioFormat(16000, 1, 4), OUTPUT)
        loud = np.full(10, np.iinfo(np.int32).max, dtype=np.int32)

        out = np.frombuffer(converter.convert(loud.tobytes()), dtype=np.int16)
        assert np.all(out <= 32767)

    def test_partial_frame_is_ignored(self):
        converter = BufferConverter(AudioFormat(16000, 2, 2), OUTPUT)
        assert converter.convert(b"\x00\x00") == b""

    def test_unsupported_width(self):
        with pytest.raises(ValueError):
            BufferConverter(AudioFormat(16000, 1, 3), OUTPUT)
