"""Unit tests for LocalWhisperBackend with the model mocked out."""

import asyncio
import sys
from types import SimpleNamespace
from unittest.mock import Mock, patch

import pytest

from prescribe.errors import InvalidAudioError, LocalRecognitionUnavailableError
from prescribe.transcription.local_whisper import LocalWhisperBackend


def _mock_model(*texts):
    model = Mock()
    segments = [SimpleNamespace(text=f" {t} ") for t in texts]
    model.transcribe.return_value = (iter(segments), SimpleNamespace(language="en"))
    return model


@pytest.mark.unit
class TestLocalWhisperBackend:

    def test_joins_segment_texts(self, sample_audio_file):
        backend = LocalWhisperBackend()
        backend.model = _mock_model("hello", "world")

        result = asyncio.run(backend.transcribe_file("chunk-1", sample_audio_file))

        assert result.text == "hello world"
        assert result.service == "Local Whisper"
        args, kwargs = backend.model.transcribe.call_args
        assert args == (sample_audio_file,)
        assert kwargs["language"] == "en"
        assert "clip_timestamps" not in kwargs

    def test_time_range_restricts_recognition(self, sample_audio_file):
        backend = LocalWhisperBackend()
        backend.model = _mock_model("middle")

        asyncio.run(backend.transcribe_file("chunk-1", sample_audio_file, time_range=(1.0, 2.5)))

        assert backend.model.transcribe.call_args.kwargs["clip_timestamps"] == [1.0, 2.5]

    def test_disabled(self, sample_audio_file):
        backend = LocalWhisperBackend(enabled=False)

        assert backend.is_available() is False
        with pytest.raises(LocalRecognitionUnavailableError):
            asyncio.run(backend.transcribe_file("chunk-1", sample_audio_file))

    def test_package_missing(self, sample_audio_file):
        backend = LocalWhisperBackend()
        with patch.dict(sys.modules, {"faster_whisper": None}):
            with pytest.raises(LocalRecognitionUnavailableError):
                backend.load_model()
        assert backend.is_available() is False

        # The failure is remembered
        with pytest.raises(LocalRecognitionUnavailableError):
            backend.load_model()

    def test_model_load_failure(self):
        fake_module = SimpleNamespace(WhisperModel=Mock(side_effect=RuntimeError("no weights")))
        backend = LocalWhisperBackend(model_size="tiny")
        with patch.dict(sys.modules, {"faster_whisper": fake_module}):
            with pytest.raises(LocalRecognitionUnavailableError):
                backend.load_model()

    def test_model_loaded_once(self):
        model_class = Mock(return_value=_mock_model())
        fake_module = SimpleNamespace(WhisperModel=model_class)
        backend = LocalWhisperBackend(model_size="tiny", device="cpu", compute_type="int8")
        with patch.dict(sys.modules, {"faster_whisper": fake_module}):
            backend.load_model()
            backend.load_model()

        model_class.assert_called_once_with("tiny", device="cpu", compute_type="int8")
        backend.cleanup()
        assert backend.model is None

    def test_recognition_error(self, sample_audio_file):
        backend = LocalWhisperBackend()
        backend.model = Mock()
        backend.model.transcribe.side_effect = RuntimeError("decode failed")

        with pytest.raises(InvalidAudioError):
            asyncio.run(backend.transcribe_file("chunk-1", sample_audio_file))
