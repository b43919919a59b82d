"""Capture engine: live input stream -> continuous session file."""

import time
import queue
import logging
from datetime import datetime
from threading import Thread, Event, Lock
from typing import Optional, Callable

import pyaudio

from ..errors import (
    CaptureError,
    CaptureIOError,
    DeviceUnavailableError,
    PermissionDeniedError,
)
from ..models.audio import AudioStats, CaptureConfig
from ..models.events import AudioEvent
from ..models.session import FinalizedSession, SessionHandle
from .format import BufferConverter, FormatNegotiator, Negotiation
from .meter import AudioLevelMeter
from .writer import SessionFileWriter

logger = logging.getLogger(__name__)


class _FlushRequest:
    """Queued behind pending buffers; set once they are durable."""

    def __init__(self):
        self.done = Event()
        self.durable_seconds = 0.0
        self.error: Optional[Exception] = None


_STOP = object()
# Drains the resampler tail of the current converter
_DRAIN = object()


class CaptureEngine:
    """Owns the input stream and the single writer of the session file.

    Three contexts touch it:
      * the PortAudio callback (``_on_audio``) only enqueues buffers;
      * the writer thread converts, writes, meters and publishes them;
      * the control thread calls ``tick()``, ``flush()``, pause/resume/stop.
    """

    def __init__(
        self,
        config: CaptureConfig,
        callback: Optional[Callable[[AudioEvent], None]] = None,
        negotiator: Optional[FormatNegotiator] = None,
        meter: Optional[AudioLevelMeter] = None,
        permission_check: Callable[[], bool] = lambda: True,
    ):
        self.config = config
        self.audio_event_callback = callback
        self.negotiator = negotiator or FormatNegotiator()
        self.output_format = config.output_format
        self.meter = meter or AudioLevelMeter(config.sample_width, config.channels)
        self.permission_check = permission_check

        self.is_recording = False
        self.is_paused = False
        self.negotiation: Optional[Negotiation] = None

        # Recording clock, advanced by the control context
        self._ticks = 0
        self.start_time: Optional[datetime] = None

        self.total_chunks = 0
        self.dropped_chunks = 0

        self.pyaudio_instance: Optional[pyaudio.PyAudio] = None
        self.stream = None
        self.sink: Optional[SessionFileWriter] = None

        self.audio_queue: "queue.Queue" = queue.Queue(maxsize=config.queue_size)
        self.writer_thread: Optional[Thread] = None
        self.writer_error: Optional[Exception] = None
        self._lock = Lock()

    # ------------------------------------------------------------------ lifecycle

    def start(self, output_path: str) -> SessionHandle:
        """Open the default input device and start streaming into ``output_path``."""
        with self._lock:
            if self.is_recording:
                raise CaptureError("Recording already in progress")
            if not self.permission_check():
                raise PermissionDeniedError("Microphone permission required")

            logger.info(f"Starting audio capture into {output_path}")
            sink = SessionFileWriter(output_path, self.output_format)
            sink.open()
            try:
                self.pyaudio_instance = pyaudio.PyAudio()
                self._open_stream()
            except CaptureError:
                sink.close()
                self._terminate_pyaudio()
                raise

            self.sink = sink
            self._ticks = 0
            self.total_chunks = 0
            self.dropped_chunks = 0
            self.writer_error = None
            self.meter.reset()
            self.start_time = datetime.now()

            self.writer_thread = Thread(target=self._write_continuously, daemon=True)
            self.writer_thread.name = "CaptureWriterThread"
            self.writer_thread.start()

            self.is_recording = True
            self.is_paused = False
            return SessionHandle(output_path, self.output_format, self.start_time)

    def pause(self) -> None:
        """Stop the hardware stream; the session file stays open."""
        with self._lock:
            if not self.is_recording or self.is_paused:
                return
            logger.info("Pausing audio capture")
            self._close_stream()
            self.audio_queue.put(_DRAIN)
            self.is_paused = True

    def resume(self) -> None:
        """Reopen the hardware stream (renegotiating its format) onto the same file."""
        with self._lock:
            if not self.is_recording or not self.is_paused:
                return
            logger.info("Resuming audio capture")
            self._open_stream()
            self.is_paused = False

    def stop(self) -> FinalizedSession:
        """Halt the stream, drain the writer and close the file durably."""
        with self._lock:
            if not self.is_recording:
                raise CaptureError("No recording in progress")

            logger.info("Stopping audio capture")
            self._close_stream()
            self._terminate_pyaudio()

            # Blocking put: the stop marker must not be dropped
            self.audio_queue.put(_STOP)
            if self.writer_thread:
                self.writer_thread.join()

            frames = 0
            try:
                if self.sink:
                    frames = self.sink.close()
            finally:
                self.is_recording = False
                self.is_paused = False
            duration = self.recording_time

            logger.info(f"Recording stopped. Duration: {duration:.1f}s, "
                        f"frames: {frames}, chunks: {self.total_chunks}, "
                        f"dropped: {self.dropped_chunks}")
            return FinalizedSession(
                file_path=self.sink.file_path if self.sink else "",
                duration_seconds=duration,
                durable_seconds=frames / self.output_format.sample_rate,
                frames_written=frames,
            )

    # ------------------------------------------------------------------ clock

    def tick(self) -> float:
        """Advance ``recording_time`` by one tick while actively capturing."""
        if self.is_recording and not self.is_paused:
            self._ticks += 1
        return self.recording_time

    @property
    def recording_time(self) -> float:
        return self._ticks * self.config.tick_interval_ms / 1000

    # ------------------------------------------------------------------ flush ack

    def flush(self, timeout: float = 2.0) -> float:
        """Wait until every buffer captured so far is durable on disk.

        Returns the durable duration of the session file in seconds.
        """
        if not self.is_recording:
            return self.sink.durable_seconds if self.sink else 0.0

        request = _FlushRequest()
        try:
            self.audio_queue.put(request, timeout=timeout)
        except queue.Full:
            raise CaptureIOError("Writer queue full; flush not acknowledged")
        if not request.done.wait(timeout):
            raise CaptureIOError(f"Flush not acknowledged within {timeout}s")
        if request.error:
            raise request.error
        return request.durable_seconds

    # ------------------------------------------------------------------ stream

    def _open_stream(self) -> None:
        pa = self.pyaudio_instance
        input_format = self.negotiator.probe_input_format(
            pa, self.output_format, self.config.input_device_index)
        self.negotiation = self.negotiator.negotiate(input_format, self.output_format)
        try:
            self.stream = pa.open(
                format=pyaudio.get_format_from_width(input_format.sample_width),
                channels=input_format.channels,
                rate=input_format.sample_rate,
                input=True,
                input_device_index=self.config.input_device_index,
                frames_per_buffer=self.config.chunk_size,
                stream_callback=self._on_audio,
            )
            self.stream.start_stream()
        except (IOError, OSError) as e:
            self.stream = None
            raise DeviceUnavailableError(f"Cannot open input stream: {e}") from e
        logger.info(f"Audio stream opened: {input_format}, "
                    f"{self.config.chunk_size} frames/buffer")

    def _close_stream(self) -> None:
        if self.stream:
            try:
                self.stream.stop_stream()
                self.stream.close()
            except (IOError, OSError) as e:
                logger.warning(f"Error closing input stream: {e}")
            self.stream = None

    def _terminate_pyaudio(self) -> None:
        if self.pyaudio_instance:
            self.pyaudio_instance.terminate()
            self.pyaudio_instance = None

    def _on_audio(self, in_data, frame_count, time_info, status):
        """PortAudio callback. Must never block."""
        converter = self.negotiation.converter if self.negotiation else None
        try:
            self.audio_queue.put_nowait((in_data, converter))
        except queue.Full:
            self.dropped_chunks += 1
        return (None, pyaudio.paContinue)

    # ------------------------------------------------------------------ writer

    def _write_continuously(self) -> None:
        """Writer thread: drain the queue into the session file."""
        active: Optional[BufferConverter] = None
        while True:
            item = self.audio_queue.get()
            if item is _STOP or item is _DRAIN:
                self._drain_converter(active)
                active = None
                if item is _STOP:
                    break
                continue
            if isinstance(item, _FlushRequest):
                self._acknowledge_flush(item)
                continue

            audio_data, converter = item
            if converter is not active:
                self._drain_converter(active)
                active = converter
            try:
                if converter:
                    audio_data = converter.convert(audio_data)
                self._write_buffer(audio_data)
            except CaptureIOError as e:
                logger.error(f"Dropping buffer: {e}")
                self.writer_error = e

    def _drain_converter(self, converter: Optional[BufferConverter]) -> None:
        if converter is None:
            return
        try:
            self._write_buffer(converter.flush())
        except CaptureIOError as e:
            logger.error(f"Dropping resampler tail: {e}")
            self.writer_error = e

    def _write_buffer(self, audio_data: bytes) -> None:
        if not audio_data:
            return

        self.sink.write(audio_data)
        self.total_chunks += 1
        level = self.meter.measure(audio_data)

        if self.audio_event_callback:
            self.audio_event_callback(AudioEvent(
                chunk_id=f"chunk_{self.total_chunks}",
                audio_data=audio_data,
                timestamp=time.time(),
                sequence_number=self.total_chunks,
                level=level,
                sample_rate=self.output_format.sample_rate,
                channels=self.output_format.channels,
            ))

    def _acknowledge_flush(self, request: _FlushRequest) -> None:
        try:
            self.sink.flush()
            request.durable_seconds = self.sink.durable_seconds
        except CaptureIOError as e:
            request.error = e
        finally:
            request.done.set()

    # ------------------------------------------------------------------ stats

    @property
    def audio_level(self) -> float:
        return self.meter.level

    def get_recording_stats(self) -> AudioStats:
        """Get current recording statistics."""
        return AudioStats(
            is_recording=self.is_recording,
            is_paused=self.is_paused,
            duration_seconds=self.recording_time,
            durable_seconds=self.sink.durable_seconds if self.sink else 0.0,
            sample_rate=self.output_format.sample_rate,
            chunk_size=self.config.chunk_size,
            total_chunks=self.total_chunks,
            dropped_chunks=self.dropped_chunks,
            peak_level=self.meter.peak_level,
        )
