"""Segment boundaries and clip extraction."""

from .segmenter import Segmenter
from .extractor import AudioClip, SegmentExtractor

__all__ = [
    "Segmenter",
    "AudioClip",
    "SegmentExtractor",
]
