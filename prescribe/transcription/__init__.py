"""Transcription module for Prescribe."""

from .base import AbstractTranscriptionBackend
from ..models.transcription import TranscriptionResult
from .whisper_api import WhisperAPIBackend, resolve_api_key
from .local_whisper import LocalWhisperBackend
from .dispatcher import TranscriptionDispatcher, FALLBACK_TEXT
from .publisher import SegmentPublisher

__all__ = [
    "AbstractTranscriptionBackend",
    "TranscriptionResult",
    "WhisperAPIBackend",
    "resolve_api_key",
    "LocalWhisperBackend",
    "TranscriptionDispatcher",
    "FALLBACK_TEXT",
    "SegmentPublisher",
]
