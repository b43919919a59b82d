"""Abstract base classes for transcription backends."""

from abc import ABC, abstractmethod
from typing import Optional, Tuple
import logging

from ..models.transcription import TranscriptionResult

logger = logging.getLogger(__name__)


class AbstractTranscriptionBackend(ABC):
    """Abstract base class for transcription backends."""

    service_name = "unknown"

    def __init__(self, language: str = "en"):
        """Initialize backend with language preference."""
        self.language = language

    @abstractmethod
    async def transcribe_file(self,
                              chunk_id: str,
                              audio_path: str,
                              time_range: Optional[Tuple[float, float]] = None) -> TranscriptionResult:
        """Transcribe an audio file and return the result.

        Args:
            chunk_id: Identifier used in logs and on the result
            audio_path: WAV file to transcribe
            time_range: Optional (start, end) seconds within ``audio_path``;
                None means the whole file

        Raises:
            TranscriptionError: on any failure
        """
        pass

    def cleanup(self) -> None:
        """Clean up backend resources."""
        pass
