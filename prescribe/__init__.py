"""Prescribe: continuous recording with segment-by-segment transcription."""

__version__ = "0.1.0"
