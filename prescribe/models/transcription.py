"""Transcription-related data models."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any


class ProcessingStatus(Enum):
    """Processing state of a single segment."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    LOCAL_FALLBACK = "local_fallback"

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessingStatus.COMPLETED, ProcessingStatus.LOCAL_FALLBACK)


@dataclass
class TranscriptionSegment:
    """A [start_time, end_time) slice of a session file and its transcription.

    Only the TranscriptionDispatcher mutates ``transcription_text``,
    ``processing_status``, ``retry_count`` and ``is_processing``.
    """
    session_id: str
    start_time: float  # seconds from session start
    end_time: float
    audio_file_path: str
    segment_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    transcription_text: Optional[str] = None
    is_processing: bool = False
    processing_status: ProcessingStatus = ProcessingStatus.PENDING
    retry_count: int = 0

    def __post_init__(self):
        if self.end_time <= self.start_time:
            raise ValueError(
                f"Segment end ({self.end_time}) must be after start ({self.start_time})")

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    def to_dict(self) -> Dict[str, Any]:
        return {
            "segment_id": self.segment_id,
            "session_id": self.session_id,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "audio_file_path": self.audio_file_path,
            "transcription_text": self.transcription_text,
            "is_processing": self.is_processing,
            "processing_status": self.processing_status.value,
            "retry_count": self.retry_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TranscriptionSegment":
        return cls(
            session_id=data["session_id"],
            start_time=data["start_time"],
            end_time=data["end_time"],
            audio_file_path=data["audio_file_path"],
            segment_id=data["segment_id"],
            transcription_text=data.get("transcription_text"),
            is_processing=data.get("is_processing", False),
            processing_status=ProcessingStatus(data.get("processing_status", "pending")),
            retry_count=data.get("retry_count", 0),
        )


@dataclass
class TranscriptionResult:
    """Result of a transcription operation."""
    text: str
    processing_time: float
    timestamp: datetime
    service: str
    language: str = "en"
    confidence: Optional[float] = None
    chunk_id: Optional[str] = None
