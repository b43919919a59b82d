"""Pytest configuration and fixtures for Prescribe tests."""

import pytest
import tempfile
import logging
import wave
from datetime import datetime
from pathlib import Path
from unittest.mock import Mock, patch

import numpy as np

from prescribe.models.transcription import TranscriptionResult
from prescribe.transcription.base import AbstractTranscriptionBackend


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def sample_audio_chunk():
    """1024 frames of a 440 Hz sine, 16-bit mono at 16 kHz."""
    sample_rate = 16000
    duration = 1024 / sample_rate
    t = np.linspace(0, duration, 1024, False)
    wave_data = np.sin(2 * np.pi * 440 * t) * 0.5
    return (wave_data * 32767).astype(np.int16).tobytes()


@pytest.fixture
def make_wav(temp_data_dir):
    """Factory writing a synthetic WAV file and returning its path."""
    def _make(seconds=3.0, sample_rate=16000, channels=1, name="session.wav"):
        frames = int(seconds * sample_rate)
        t = np.arange(frames) / sample_rate
        mono = (np.sin(2 * np.pi * 440 * t) * 0.3 * 32767).astype(np.int16)
        data = np.repeat(mono[:, None], channels, axis=1).tobytes()

        file_path = Path(temp_data_dir) / name
        with wave.open(str(file_path), 'wb') as wf:
            wf.setnchannels(channels)
            wf.setsampwidth(2)
            wf.setframerate(sample_rate)
            wf.writeframes(data)
        return str(file_path)

    return _make


@pytest.fixture
def sample_audio_file(make_wav):
    """A 3 second, 16 kHz mono WAV file."""
    return make_wav()


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        mock_stream.start_stream.return_value = None
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None
        mock_pyaudio_instance.get_default_input_device_info.return_value = {
            'index': 0,
            'name': 'Mock Microphone',
            'maxInputChannels': 1,
            'defaultSampleRate': 16000.0,
        }
        mock_pyaudio_instance.is_format_supported.return_value = True

        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }


class FakeBackend(AbstractTranscriptionBackend):
    """Scripted backend: returns ``text`` or raises ``error``; records every call."""

    service_name = "Fake"

    def __init__(self, text="hello", error=None):
        super().__init__("en")
        self.text = text
        self.error = error
        self.calls = []
        self.file_sizes = []

    async def transcribe_file(self, chunk_id, audio_path, time_range=None):
        self.calls.append((chunk_id, audio_path, time_range))
        if Path(audio_path).exists():
            self.file_sizes.append(Path(audio_path).stat().st_size)
        if self.error:
            raise self.error
        return TranscriptionResult(
            text=self.text,
            processing_time=0.0,
            timestamp=datetime.now(),
            service=self.service_name,
            chunk_id=chunk_id,
        )


@pytest.fixture
def fake_backend():
    """The FakeBackend class, for building scripted backends."""
    return FakeBackend


class ManualScheduler:
    """Keyed timer queue that only fires when a test says so."""

    def __init__(self):
        self.jobs = {}
        self.history = []

    def schedule(self, key, delay, callback):
        self.jobs[key] = (delay, callback)
        self.history.append((key, delay))

    def cancel(self, key):
        return self.jobs.pop(key, None) is not None

    def is_scheduled(self, key):
        return key in self.jobs

    def fire(self, key):
        _delay, callback = self.jobs.pop(key)
        return callback()


@pytest.fixture
def manual_scheduler():
    return ManualScheduler()
