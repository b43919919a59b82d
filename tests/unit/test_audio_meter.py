"""Unit tests for AudioLevelMeter."""

import numpy as np
import pytest

from prescribe.audio.meter import AudioLevelMeter


@pytest.mark.unit
class TestAudioLevelMeter:

    def test_silence_is_zero(self):
        meter = AudioLevelMeter()
        assert meter.measure(np.zeros(1024, dtype=np.int16).tobytes()) == 0.0

    def test_full_scale_square_wave(self):
        meter = AudioLevelMeter()
        samples = np.array([32767, -32768] * 512, dtype=np.int16)
        level = meter.measure(samples.tobytes())
        assert level == pytest.approx(1.0, abs=1e-4)

    def test_level_is_normalised(self, sample_audio_chunk):
        meter = AudioLevelMeter()
        level = meter.measure(sample_audio_chunk)
        # Mean |sin| of a half-scale sine is about 0.5 * 2/pi
        assert 0.0 < level < 1.0
        assert level == pytest.approx(0.5 * 2 / np.pi, abs=0.02)

    def test_only_first_channel_is_measured(self):
        meter = AudioLevelMeter(channels=2)
        frames = np.zeros((512, 2), dtype=np.int16)
        frames[:, 1] = 20000
        assert meter.measure(frames.tobytes()) == 0.0

    def test_peak_tracks_maximum_and_resets(self):
        meter = AudioLevelMeter()
        loud = np.full(256, 16384, dtype=np.int16).tobytes()
        quiet = np.full(256, 1024, dtype=np.int16).tobytes()

        meter.measure(loud)
        meter.measure(quiet)
        assert meter.level == pytest.approx(1024 / 32768)
        assert meter.peak_level == pytest.approx(0.5)

        meter.reset()
        assert meter.level == 0.0
        assert meter.peak_level == 0.0

    def test_empty_buffer(self):
        assert AudioLevelMeter().measure(b"") == 0.0

    def test_unsupported_width(self):
        with pytest.raises(ValueError):
            AudioLevelMeter(sample_width=3)
