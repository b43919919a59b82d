"""Cuts standalone clips out of a session file by time range."""

import os
import wave
import logging
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

from ..errors import AudioFileNotFoundError, InvalidRangeError, ReadFailureError

logger = logging.getLogger(__name__)


@dataclass
class AudioClip:
    """A self-contained WAV clip."""
    data: bytes
    sample_rate: int
    channels: int
    sample_width: int
    frames: int

    @property
    def duration(self) -> float:
        return self.frames / self.sample_rate


class SegmentExtractor:
    """Extracts [start_time, end_time) from a session WAV into a new WAV file.

    Frame bounds are derived from the source file's own sample rate and must
    lie within the file; nothing is clamped. The clip is written with the
    source's exact parameters, so repeated extraction of the same range from
    the same file is byte-identical.
    """

    def __init__(self, temp_dir: Optional[str] = None):
        self.temp_dir = temp_dir

    def extract(self, session_file: str, start_time: float, end_time: float) -> AudioClip:
        """Return the clip's bytes; the temporary file is gone when this returns."""
        with self.clip(session_file, start_time, end_time) as clip_path:
            try:
                with open(clip_path, "rb") as f:
                    data = f.read()
                with wave.open(clip_path, "rb") as wf:
                    return AudioClip(
                        data=data,
                        sample_rate=wf.getframerate(),
                        channels=wf.getnchannels(),
                        sample_width=wf.getsampwidth(),
                        frames=wf.getnframes(),
                    )
            except (IOError, OSError, wave.Error) as e:
                raise ReadFailureError(f"Cannot read clip {clip_path}: {e}") from e

    @contextmanager
    def clip(self, session_file: str, start_time: float, end_time: float) -> Iterator[str]:
        """Write the clip to a temporary file and yield its path.

        The file is deleted on exit, including when the body raises.
        """
        clip_path = self.write_clip(session_file, start_time, end_time)
        try:
            yield clip_path
        finally:
            self.discard(clip_path)

    def write_clip(self, session_file: str, start_time: float, end_time: float) -> str:
        """Write the clip to a new temporary file; the caller owns (and must discard) it."""
        if not os.path.exists(session_file):
            raise AudioFileNotFoundError(f"Audio file does not exist: {session_file}")
        if not (0 <= start_time < end_time):
            raise InvalidRangeError(f"Invalid segment times: start={start_time}, end={end_time}")

        try:
            source = wave.open(session_file, "rb")
        except (IOError, OSError, EOFError, wave.Error) as e:
            raise ReadFailureError(f"Cannot open {session_file}: {e}") from e

        with source:
            params = source.getparams()
            start_frame = int(round(start_time * params.framerate))
            end_frame = int(round(end_time * params.framerate))
            frame_count = end_frame - start_frame

            if start_frame < 0 or end_frame > params.nframes or frame_count <= 0:
                raise InvalidRangeError(
                    f"Invalid frame positions: start={start_frame}, end={end_frame}, "
                    f"fileLength={params.nframes}")

            try:
                source.setpos(start_frame)
                data = source.readframes(frame_count)
            except (IOError, OSError, EOFError, wave.Error) as e:
                raise ReadFailureError(f"Read of {session_file} failed: {e}") from e

        expected = frame_count * params.nchannels * params.sampwidth
        if len(data) != expected:
            raise ReadFailureError(
                f"Short read from {session_file}: {len(data)} of {expected} bytes")

        fd, clip_path = tempfile.mkstemp(prefix="segment_", suffix=".wav", dir=self.temp_dir)
        try:
            with os.fdopen(fd, "wb") as f:
                with wave.open(f, "wb") as out:
                    out.setnchannels(params.nchannels)
                    out.setsampwidth(params.sampwidth)
                    out.setframerate(params.framerate)
                    out.writeframes(data)
        except (IOError, OSError, wave.Error) as e:
            _remove_quietly(clip_path)
            raise ReadFailureError(f"Cannot write clip {clip_path}: {e}") from e

        logger.debug(f"Created segment clip {clip_path}: [{start_time:.2f}s, {end_time:.2f}s) "
                     f"{frame_count} frames")
        return clip_path

    def discard(self, clip_path: str) -> None:
        """Delete a clip produced by write_clip()."""
        _remove_quietly(clip_path)


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Could not remove temporary clip {path}: {e}")
