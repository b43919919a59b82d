"""Data models for the Prescribe application."""

from .audio import AudioFormat, CaptureConfig, AudioStats
from .events import (
    AudioEvent,
    InterruptionEvent,
    InterruptionType,
    RouteChangeEvent,
    RouteChangeReason,
)
from .session import RecordingSession, SessionHandle, FinalizedSession
from .state import RecorderState
from .transcription import ProcessingStatus, TranscriptionSegment, TranscriptionResult

__all__ = [
    "AudioFormat",
    "CaptureConfig",
    "AudioStats",
    "AudioEvent",
    "InterruptionEvent",
    "InterruptionType",
    "RouteChangeEvent",
    "RouteChangeReason",
    "RecordingSession",
    "SessionHandle",
    "FinalizedSession",
    "RecorderState",
    "ProcessingStatus",
    "TranscriptionSegment",
    "TranscriptionResult",
]
