"""Event models carried over pub/sub topics."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


@dataclass
class AudioEvent:
    """A buffer that has been appended to the session file."""
    chunk_id: str
    audio_data: bytes
    timestamp: float  # Unix timestamp when the buffer was written
    sequence_number: int
    level: float = 0.0
    sample_rate: int = 16000
    channels: int = 1
    chunk_duration_ms: Optional[int] = None

    def __post_init__(self):
        """Calculate chunk duration if not provided."""
        if self.chunk_duration_ms is None and self.audio_data:
            # 16-bit audio
            bytes_per_second = self.sample_rate * self.channels * 2
            self.chunk_duration_ms = int(len(self.audio_data) / bytes_per_second * 1000)


class InterruptionType(Enum):
    BEGAN = "began"
    ENDED = "ended"


@dataclass
class InterruptionEvent:
    """Another audio client took over (or released) the capture device."""
    type: InterruptionType
    should_resume: bool = False


class RouteChangeReason(Enum):
    NEW_DEVICE_AVAILABLE = "new_device_available"
    OLD_DEVICE_UNAVAILABLE = "old_device_unavailable"
    CATEGORY_CHANGE = "category_change"
    OVERRIDE = "override"
    UNKNOWN = "unknown"


@dataclass
class RouteChangeEvent:
    """The input route changed, e.g. a headset was plugged or unplugged."""
    reason: RouteChangeReason
    device_name: Optional[str] = field(default=None)
