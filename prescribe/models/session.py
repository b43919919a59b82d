"""Session-related data models."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Dict, Any

from .audio import AudioFormat
from .transcription import TranscriptionSegment


@dataclass
class RecordingSession:
    """One continuous recording and its ordered segments."""
    title: str
    start_time: datetime
    file_path: str
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    end_time: Optional[datetime] = None
    duration: float = 0.0
    is_processing: bool = False
    segments: List[TranscriptionSegment] = field(default_factory=list)

    @property
    def is_finalized(self) -> bool:
        return self.end_time is not None

    @property
    def transcript(self) -> str:
        """Concatenated text of all segments that have any."""
        return " ".join(s.transcription_text.strip() for s in self.segments
                        if s.transcription_text and s.transcription_text.strip())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "title": self.title,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration": self.duration,
            "file_path": self.file_path,
            "is_processing": self.is_processing,
            "segments": [segment.to_dict() for segment in self.segments],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecordingSession":
        end_time = data.get("end_time")
        return cls(
            session_id=data["session_id"],
            title=data["title"],
            start_time=datetime.fromisoformat(data["start_time"]),
            end_time=datetime.fromisoformat(end_time) if end_time else None,
            duration=data.get("duration", 0.0),
            file_path=data["file_path"],
            is_processing=data.get("is_processing", False),
            segments=[TranscriptionSegment.from_dict(s) for s in data.get("segments", [])],
        )


@dataclass
class SessionHandle:
    """Returned by CaptureEngine.start()."""
    file_path: str
    output_format: AudioFormat
    started_at: datetime


@dataclass
class FinalizedSession:
    """Returned by CaptureEngine.stop() once every byte is durable."""
    file_path: str
    duration_seconds: float     # recording_time at stop
    durable_seconds: float      # audio actually in the file
    frames_written: int
