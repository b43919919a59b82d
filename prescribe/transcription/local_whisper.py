"""On-device fallback recognizer backed by faster-whisper."""

import time
import asyncio
import logging
import threading
from datetime import datetime
from typing import Optional, Tuple

from .base import AbstractTranscriptionBackend
from ..errors import InvalidAudioError, LocalRecognitionUnavailableError
from ..models.transcription import TranscriptionResult

logger = logging.getLogger(__name__)


class LocalWhisperBackend(AbstractTranscriptionBackend):
    """Runs a Whisper model locally.

    The model is loaded on first use. When the backend is disabled, the
    package is missing, or the model cannot be loaded, every call fails with
    LocalRecognitionUnavailableError.
    """

    service_name = "Local Whisper"

    def __init__(self,
                 model_size: str = "base",
                 device: str = "cpu",
                 compute_type: str = "int8",
                 language: str = "en",
                 enabled: bool = True):
        super().__init__(language)
        self.model_size = model_size
        self.device = device
        self.compute_type = compute_type
        self.enabled = enabled
        self.model = None
        self._load_error: Optional[str] = None
        self._load_lock = threading.Lock()

    def is_available(self) -> bool:
        return self.enabled and self._load_error is None

    def load_model(self) -> None:
        """Load the Whisper model. Safe to call repeatedly."""
        if not self.enabled:
            raise LocalRecognitionUnavailableError("Local recognition is disabled")
        with self._load_lock:
            if self.model is not None:
                return
            if self._load_error:
                raise LocalRecognitionUnavailableError(self._load_error)
            try:
                from faster_whisper import WhisperModel
            except ImportError:
                self._load_error = "faster-whisper not installed"
                raise LocalRecognitionUnavailableError(self._load_error)

            logger.info(f"Loading Whisper model '{self.model_size}' "
                        f"({self.device}, {self.compute_type})...")
            try:
                self.model = WhisperModel(self.model_size, device=self.device,
                                          compute_type=self.compute_type)
            except (RuntimeError, OSError, ValueError) as e:
                self._load_error = f"Whisper model '{self.model_size}' failed to load: {e}"
                raise LocalRecognitionUnavailableError(self._load_error) from e
            logger.info("Whisper model loaded")

    async def transcribe_file(self,
                              chunk_id: str,
                              audio_path: str,
                              time_range: Optional[Tuple[float, float]] = None) -> TranscriptionResult:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, self._transcribe_blocking, chunk_id, audio_path, time_range)

    def _transcribe_blocking(self,
                             chunk_id: str,
                             audio_path: str,
                             time_range: Optional[Tuple[float, float]]) -> TranscriptionResult:
        self.load_model()
        start_time = time.time()

        options = {"language": self.language, "beam_size": 5}
        if time_range is not None:
            options["clip_timestamps"] = [float(time_range[0]), float(time_range[1])]

        try:
            segments, _info = self.model.transcribe(audio_path, **options)
            text = " ".join(segment.text.strip() for segment in segments).strip()
        except (RuntimeError, OSError, ValueError) as e:
            raise InvalidAudioError(f"Local recognition of {audio_path} failed: {e}") from e

        processing_time = time.time() - start_time
        logger.debug(f"Local transcription for {chunk_id} took {processing_time:.3f}s")
        return TranscriptionResult(
            text=text,
            processing_time=processing_time,
            timestamp=datetime.now(),
            service=self.service_name,
            language=self.language,
            chunk_id=chunk_id,
        )

    def cleanup(self) -> None:
        self.model = None
