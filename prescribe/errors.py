"""Error kinds raised across the capture, extraction and transcription layers."""

from typing import Optional


class PrescribeError(Exception):
    """Base class for all Prescribe errors."""


# Capture layer: surfaced to the user, abort start/resume.

class CaptureError(PrescribeError):
    """Audio capture could not be started or resumed."""


class PermissionDeniedError(CaptureError):
    """Microphone permission has not been granted."""


class DeviceUnavailableError(CaptureError):
    """No usable input device, or the device refused to open."""


class CaptureIOError(CaptureError):
    """The session file could not be created or written."""


# Extraction layer: folded into the dispatcher's retry policy.

class ExtractionError(PrescribeError):
    """A segment clip could not be produced."""


class InvalidRangeError(ExtractionError):
    """Requested time range lies outside the session file."""


class AudioFileNotFoundError(ExtractionError):
    """The session audio file does not exist."""


class ReadFailureError(ExtractionError):
    """The session audio file could not be read or the clip not written."""


# Transcription layer: folded into the dispatcher's retry policy.

class TranscriptionError(PrescribeError):
    """A transcription attempt produced no text."""


class NoCredentialError(TranscriptionError):
    """No API key configured for the remote service."""


class InvalidAudioError(TranscriptionError):
    """The audio handed to a backend is empty or unusable."""


class NetworkError(TranscriptionError):
    """Transport failure or timeout talking to the remote service."""


class RemoteAPIError(TranscriptionError):
    """The remote service answered with a non-200 status."""

    def __init__(self, status: int, message: Optional[str] = None):
        self.status = status
        super().__init__(message or f"HTTP {status}")


class LocalRecognitionUnavailableError(TranscriptionError):
    """The on-device recognizer is disabled, missing or not authorized."""
