"""Audio capture and processing module."""

from .capture import CaptureEngine
from .format import BufferConverter, FormatNegotiator, Negotiation
from .meter import AudioLevelMeter
from .writer import SessionFileWriter
from .audio_pub import AudioPublisher
from .interruptions import InterruptionHandler

__all__ = [
    'CaptureEngine',
    'BufferConverter',
    'FormatNegotiator',
    'Negotiation',
    'AudioLevelMeter',
    'SessionFileWriter',
    'AudioPublisher',
    'InterruptionHandler',
]
