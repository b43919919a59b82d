"""Services layer for Prescribe application logic."""

from .recording_service import RecordingService, STATE_TOPIC

__all__ = [
    "RecordingService",
    "STATE_TOPIC",
]
