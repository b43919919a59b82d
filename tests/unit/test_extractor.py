"""Unit tests for SegmentExtractor."""

import os
import wave

import pytest

from prescribe.errors import AudioFileNotFoundError, InvalidRangeError, ReadFailureError
from prescribe.segments.extractor import SegmentExtractor


@pytest.fixture
def clip_dir(tmp_path):
    path = tmp_path / "clips"
    path.mkdir()
    return path


@pytest.mark.unit
class TestSegmentExtractor:

    def test_clip_duration(self, sample_audio_file, clip_dir):
        clip = SegmentExtractor(str(clip_dir)).extract(sample_audio_file, 0.5, 1.75)

        assert clip.sample_rate == 16000
        assert clip.channels == 1
        assert clip.frames == 20000
        assert abs(clip.duration - 1.25) <= 1 / 16000
        assert list(clip_dir.iterdir()) == []

    def test_clip_matches_source_frames(self, sample_audio_file, clip_dir):
        extractor = SegmentExtractor(str(clip_dir))
        with wave.open(sample_audio_file, "rb") as wf:
            wf.setpos(16000)
            expected = wf.readframes(8000)

        with extractor.clip(sample_audio_file, 1.0, 1.5) as clip_path:
            with wave.open(clip_path, "rb") as wf:
                assert wf.readframes(wf.getnframes()) == expected
        assert not os.path.exists(clip_path)

    def test_repeated_extraction_is_identical(self, sample_audio_file, clip_dir):
        extractor = SegmentExtractor(str(clip_dir))
        first = extractor.extract(sample_audio_file, 0.25, 2.0)
        second = extractor.extract(sample_audio_file, 0.25, 2.0)
        assert first.data == second.data

    def test_stereo_source_keeps_parameters(self, make_wav, clip_dir):
        path = make_wav(seconds=1.0, sample_rate=44100, channels=2, name="stereo.wav")
        clip = SegmentExtractor(str(clip_dir)).extract(path, 0.0, 0.5)

        assert clip.sample_rate == 44100
        assert clip.channels == 2
        assert clip.frames == 22050

    def test_range_past_end(self, sample_audio_file, clip_dir):
        with pytest.raises(InvalidRangeError):
            SegmentExtractor(str(clip_dir)).extract(sample_audio_file, 2.0, 4.0)
        assert list(clip_dir.iterdir()) == []

    @pytest.mark.parametrize("start,end", [(1.0, 1.0), (2.0, 1.0), (-0.5, 1.0)])
    def test_invalid_times(self, sample_audio_file, clip_dir, start, end):
        with pytest.raises(InvalidRangeError):
            SegmentExtractor(str(clip_dir)).write_clip(sample_audio_file, start, end)

    def test_missing_file(self, temp_data_dir, clip_dir):
        with pytest.raises(AudioFileNotFoundError):
            SegmentExtractor(str(clip_dir)).extract(os.path.join(temp_data_dir, "gone.wav"), 0, 1)

    def test_unreadable_file(self, temp_data_dir, clip_dir):
        path = os.path.join(temp_data_dir, "garbage.wav")
        with open(path, "wb") as f:
            f.write(b"not a wav file at all")

        with pytest.raises(ReadFailureError):
            SegmentExtractor(str(clip_dir)).extract(path, 0, 1)

    def test_clip_removed_when_body_raises(self, sample_audio_file, clip_dir):
        extractor = SegmentExtractor(str(clip_dir))
        with pytest.raises(RuntimeError):
            with extractor.clip(sample_audio_file, 0.0, 1.0):
                raise RuntimeError("consumer failed")
        assert list(clip_dir.iterdir()) == []

    def test_write_clip_leaves_file_for_caller(self, sample_audio_file, clip_dir):
        extractor = SegmentExtractor(str(clip_dir))
        clip_path = extractor.write_clip(sample_audio_file, 0.0, 1.0)

        assert os.path.exists(clip_path)
        assert os.path.basename(clip_path).startswith("segment_")
        extractor.discard(clip_path)
        assert not os.path.exists(clip_path)
        extractor.discard(clip_path)
