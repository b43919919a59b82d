"""Timer-driven slicing of the recording clock into segments."""

import logging
from typing import Callable, Optional

from ..errors import CaptureError
from ..models.transcription import TranscriptionSegment

logger = logging.getLogger(__name__)


class Segmenter:
    """Emits a TranscriptionSegment each time ``segment_length`` seconds have elapsed.

    Before a boundary is handed on, ``flush`` is called. It must return the
    duration (seconds) of audio confirmed durable in the session file. The
    segment never extends past that point.
    """

    def __init__(self,
                 segment_length: float = 30.0,
                 flush: Optional[Callable[[], float]] = None,
                 on_segment: Optional[Callable[[TranscriptionSegment], None]] = None):
        if segment_length <= 0:
            raise ValueError("segment_length must be positive")
        self.segment_length = segment_length
        self.flush = flush
        self.on_segment = on_segment
        self.session_id: Optional[str] = None
        self.audio_file_path: Optional[str] = None
        self.last_boundary = 0.0
        self.segments_emitted = 0

    def begin(self, session_id: str, audio_file_path: str) -> None:
        self.session_id = session_id
        self.audio_file_path = audio_file_path
        self.last_boundary = 0.0
        self.segments_emitted = 0

    def on_tick(self, recording_time: float) -> Optional[TranscriptionSegment]:
        """Emit a segment if a boundary has been crossed."""
        if self.session_id is None:
            return None
        if recording_time - self.last_boundary < self.segment_length:
            return None

        try:
            durable = self.flush() if self.flush else recording_time
        except CaptureError as e:
            logger.warning(f"Segment boundary at {recording_time:.1f}s deferred: {e}")
            return None
        return self._emit(min(recording_time, durable))

    def finish(self, recording_time: float, durable_seconds: Optional[float] = None) -> Optional[TranscriptionSegment]:
        """Emit the trailing (possibly short) segment when capture stops."""
        if self.session_id is None:
            return None
        end_time = recording_time if durable_seconds is None else min(recording_time, durable_seconds)
        segment = None
        if end_time > self.last_boundary:
            segment = self._emit(end_time)
        self.session_id = None
        return segment

    def _emit(self, end_time: float) -> Optional[TranscriptionSegment]:
        if end_time <= self.last_boundary:
            logger.warning(f"No durable audio past {self.last_boundary:.2f}s; boundary skipped")
            return None

        segment = TranscriptionSegment(
            session_id=self.session_id,
            start_time=self.last_boundary,
            end_time=end_time,
            audio_file_path=self.audio_file_path,
        )
        self.last_boundary = end_time
        self.segments_emitted += 1
        logger.info(f"Segment {self.segments_emitted} [{segment.start_time:.2f}s, "
                    f"{segment.end_time:.2f}s) of session {self.session_id}")
        if self.on_segment:
            self.on_segment(segment)
        return segment
