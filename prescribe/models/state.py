"""Read-only snapshot of the recorder for UIs and pollers."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RecorderState:
    """Published on ``recorder.state`` whenever it changes."""
    is_recording: bool = False
    is_paused: bool = False
    recording_time: float = 0.0
    audio_level: float = 0.0
    last_error: Optional[str] = None
    session_id: Optional[str] = None
