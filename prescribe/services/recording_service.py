"""Core recording service that wires capture, segmentation and transcription."""

import time
import logging
import threading
from datetime import datetime
from typing import Callable, Dict, List, Optional

import pyaudio
from pubsub import pub

from ..audio.audio_pub import AudioPublisher
from ..audio.capture import CaptureEngine
from ..audio.interruptions import InterruptionHandler
from ..config import PrescribeConfig
from ..control import ControlLoop
from ..errors import CaptureError
from ..models.session import RecordingSession
from ..models.state import RecorderState
from ..models.transcription import TranscriptionSegment
from ..segments.extractor import SegmentExtractor
from ..segments.segmenter import Segmenter
from ..storage.session_store import SessionStore
from ..transcription.base import AbstractTranscriptionBackend
from ..transcription.dispatcher import TranscriptionDispatcher, FALLBACK_TEXT
from ..transcription.local_whisper import LocalWhisperBackend
from ..transcription.publisher import SegmentPublisher
from ..transcription.whisper_api import WhisperAPIBackend, DEFAULT_ENDPOINT

logger = logging.getLogger(__name__)

STATE_TOPIC = "recorder.state"


class RecordingService:
    """Manages the recording lifecycle and exposes a read-only state snapshot."""

    def __init__(self,
                 config: PrescribeConfig,
                 store: Optional[SessionStore] = None,
                 remote: Optional[AbstractTranscriptionBackend] = None,
                 local: Optional[AbstractTranscriptionBackend] = None,
                 control_loop: Optional[ControlLoop] = None,
                 engine_factory: Optional[Callable[[], CaptureEngine]] = None):
        """Initialize recording service.

        Args:
            config: Application configuration
            store: Session store (defaults to one under the configured data directory)
            remote: Remote transcription backend (defaults to WhisperAPIBackend)
            local: Local fallback backend (defaults to LocalWhisperBackend)
            control_loop: Tick/timer thread (defaults to one at the configured tick)
            engine_factory: Builds a fresh CaptureEngine per recording
        """
        self.config = config
        self.capture_config = config.get_capture_config()
        self.store = store or SessionStore(config.get_data_directory())
        self.control_loop = control_loop or ControlLoop(
            tick_interval=self.capture_config.tick_interval_ms / 1000)

        self.segment_length = float(config.get('segments.length_seconds', 30))
        self.flush_timeout = float(config.get('segments.flush_timeout_seconds', 2.0))
        self.route_settle_delay = float(config.get('interruptions.route_change_settle_seconds', 0.5))

        self.audio_publisher = AudioPublisher()
        self.segment_publisher = SegmentPublisher()
        self.engine_factory = engine_factory or self._create_engine

        self.dispatcher = TranscriptionDispatcher(
            remote=remote if remote is not None else self._create_remote_backend(),
            local=local if local is not None else self._create_local_backend(),
            extractor=SegmentExtractor(),
            scheduler=self.control_loop,
            max_attempts=int(config.get('transcription.retry.max_attempts', 3)),
            backoff_base=float(config.get('transcription.retry.backoff_base_seconds', 2.0)),
            fallback_text=config.get('transcription.fallback_text', FALLBACK_TEXT),
            on_update=self._on_segment_update,
        )
        self.segmenter = Segmenter(self.segment_length,
                                   flush=self._flush_engine,
                                   on_segment=self._on_segment)

        self.engine: Optional[CaptureEngine] = None
        self.interruption_handler: Optional[InterruptionHandler] = None
        self.session: Optional[RecordingSession] = None
        self.permission_granted = False
        self.last_error: Optional[str] = None

        # Sessions whose segments are not all terminal yet
        self._open_sessions: Dict[str, RecordingSession] = {}
        self._lock = threading.RLock()
        self._last_state: Optional[RecorderState] = None
        self._running = False

        self.control_loop.add_ticker(self._on_tick)
        logger.info(f"RecordingService ready: {self.segment_length:.0f}s segments")

    # ------------------------------------------------------------------ setup

    def _create_engine(self) -> CaptureEngine:
        return CaptureEngine(
            self.capture_config,
            callback=self.audio_publisher.get_callback(),
            permission_check=lambda: self.permission_granted,
        )

    def _create_remote_backend(self) -> WhisperAPIBackend:
        api_key = self.config.get_api_key()
        if not api_key:
            logger.warning("No remote API key configured; only local recognition will be used")
        return WhisperAPIBackend(
            api_key=api_key,
            endpoint=self.config.get('transcription.remote.endpoint', DEFAULT_ENDPOINT),
            model=self.config.get('transcription.remote.model', 'whisper-1'),
            language=self.config.get('transcription.remote.language', 'en'),
            response_format=self.config.get('transcription.remote.response_format', 'json'),
            timeout_seconds=float(self.config.get('transcription.remote.timeout_seconds', 60)),
        )

    def _create_local_backend(self) -> LocalWhisperBackend:
        return LocalWhisperBackend(
            model_size=self.config.get('transcription.local.model_size', 'base'),
            device=self.config.get('transcription.local.device', 'cpu'),
            compute_type=self.config.get('transcription.local.compute_type', 'int8'),
            language=self.config.get('transcription.local.language', 'en'),
            enabled=bool(self.config.get('transcription.local.enabled', True)),
        )

    def _ensure_running(self) -> None:
        if self._running:
            return
        self.dispatcher.start()
        self.control_loop.start()
        self._running = True

    def request_permission(self) -> bool:
        """Check that a default input device can be opened."""
        pa = pyaudio.PyAudio()
        try:
            info = pa.get_default_input_device_info()
            self.permission_granted = int(info.get('maxInputChannels', 0)) > 0
        except (IOError, OSError) as e:
            logger.debug(f"Microphone not available: {e}")
            self.permission_granted = False
        finally:
            pa.terminate()

        if not self.permission_granted:
            self.last_error = "Microphone permission denied"
            logger.warning(self.last_error)
        self._publish_state()
        return self.permission_granted

    # ------------------------------------------------------------------ recording lifecycle

    @property
    def is_recording(self) -> bool:
        return bool(self.engine and self.engine.is_recording)

    def start_recording(self, title: Optional[str] = None) -> RecordingSession:
        """Start a new session.

        Raises:
            CaptureError: permission, device or file failure; recorded in last_error
        """
        with self._lock:
            if self.is_recording:
                raise CaptureError("Already recording")
            self._ensure_running()

            session_id = self.store.create_session_directory()
            audio_path = self.store.audio_path(session_id)
            engine = self.engine_factory()
            try:
                handle = engine.start(audio_path)
            except CaptureError as e:
                self._record_error(e)
                self.store.delete_session(session_id)
                raise

            self.engine = engine
            self.last_error = None
            self.session = RecordingSession(
                title=title or f"Recording {handle.started_at.strftime('%Y-%m-%d %H:%M:%S')}",
                start_time=handle.started_at,
                file_path=audio_path,
                session_id=session_id,
            )
            self._open_sessions[session_id] = self.session
            self.segmenter.begin(session_id, audio_path)

            self.interruption_handler = InterruptionHandler(
                engine, self.control_loop, self.route_settle_delay,
                on_error=self._record_error, on_change=self._publish_state)
            self.interruption_handler.subscribe()

            self.store.save_session(self.session)
            logger.info(f"Started recording for session: {session_id}")

        self._publish_state()
        return self.session

    def pause_recording(self) -> None:
        with self._lock:
            if self.engine:
                self.engine.pause()
        self._publish_state()

    def resume_recording(self) -> None:
        """Resume capture; renegotiates the device format.

        Raises:
            CaptureError: if the device cannot be reopened
        """
        with self._lock:
            if not self.engine:
                return
            try:
                self.engine.resume()
            except CaptureError as e:
                self._record_error(e)
                raise
        self._publish_state()

    def stop_recording(self) -> RecordingSession:
        """Stop capture, emit the trailing segment and finalize the session.

        In-flight and scheduled transcription attempts keep running.
        """
        with self._lock:
            if not self.is_recording:
                raise CaptureError("Not recording")

            if self.interruption_handler:
                self.interruption_handler.unsubscribe()
                self.interruption_handler = None

            session = self.session
            try:
                finalized = self.engine.stop()
            except CaptureError as e:
                self._record_error(e)
                raise

            self.segmenter.finish(finalized.duration_seconds, finalized.durable_seconds)

            session.end_time = datetime.now()
            session.duration = finalized.duration_seconds
            session.is_processing = any(not s.processing_status.is_terminal for s in session.segments)
            self.store.save_session(session)
            if not session.is_processing:
                self._open_sessions.pop(session.session_id, None)

            self.session = None
            logger.info(f"Session stopped: {session.session_id} "
                        f"({session.duration:.1f}s, {len(session.segments)} segments)")

        self._publish_state()
        return session

    def shutdown(self, timeout: float = 30.0) -> None:
        """Stop any recording, let open segments settle, stop background threads.

        Pending retries keep firing until every segment of a stopped session
        is terminal or ``timeout`` runs out.
        """
        if self.is_recording:
            try:
                self.stop_recording()
            except CaptureError as e:
                logger.error(f"Error stopping recording during shutdown: {e}")

        deadline = time.monotonic() + timeout
        if self._running:
            if not self._wait_for_open_sessions(deadline):
                logger.warning("Shutdown timeout reached with segments still pending")
            self.dispatcher.shutdown(max(0.0, deadline - time.monotonic()))
            self.control_loop.stop()
            self._running = False

        with self._lock:
            for session in self._open_sessions.values():
                if session.is_finalized:
                    self.store.save_session(session)
            self._open_sessions.clear()

        for backend in (self.dispatcher.remote, self.dispatcher.local):
            if backend:
                backend.cleanup()
        logger.info("RecordingService shut down")

    def _has_pending_segments(self) -> bool:
        with self._lock:
            return any(not segment.processing_status.is_terminal
                       for session in self._open_sessions.values()
                       for segment in session.segments)

    def _wait_for_open_sessions(self, deadline: float) -> bool:
        while self._has_pending_segments():
            if time.monotonic() >= deadline:
                return False
            time.sleep(0.05)
        return True

    # ------------------------------------------------------------------ sessions

    def list_sessions(self) -> List[RecordingSession]:
        return self.store.list_sessions()

    def delete_session(self, session_id: str) -> bool:
        with self._lock:
            if self.session and self.session.session_id == session_id:
                raise CaptureError("Cannot delete the session being recorded")
            session = self._open_sessions.pop(session_id, None) or self.store.load_session(session_id)
            if session:
                for segment in session.segments:
                    self.dispatcher.discard(segment.segment_id)
            return self.store.delete_session(session_id)

    # ------------------------------------------------------------------ state

    def current_state(self) -> RecorderState:
        engine = self.engine
        recording = bool(engine and engine.is_recording)
        return RecorderState(
            is_recording=recording,
            is_paused=bool(recording and engine.is_paused),
            recording_time=engine.recording_time if recording else 0.0,
            audio_level=engine.audio_level if recording else 0.0,
            last_error=self.last_error,
            session_id=self.session.session_id if self.session else None,
        )

    def _publish_state(self) -> None:
        state = self.current_state()
        if state != self._last_state:
            self._last_state = state
            pub.sendMessage(STATE_TOPIC, event=state)

    def _record_error(self, error: CaptureError) -> None:
        self.last_error = str(error)
        logger.error(f"Capture error: {error}")
        self._publish_state()

    # ------------------------------------------------------------------ callbacks

    def _on_tick(self) -> None:
        """Control context: advance the clock and cut segment boundaries."""
        with self._lock:
            if not self.is_recording:
                return
            recording_time = self.engine.tick()
            self.segmenter.on_tick(recording_time)
        self._publish_state()

    def _flush_engine(self) -> float:
        return self.engine.flush(self.flush_timeout)

    def _on_segment(self, segment: TranscriptionSegment) -> None:
        session = self._open_sessions.get(segment.session_id)
        if session is None:
            logger.warning(f"Segment for unknown session {segment.session_id}; dropping")
            return
        session.segments.append(segment)
        self.dispatcher.dispatch(segment)

    def _on_segment_update(self, segment: TranscriptionSegment) -> None:
        with self._lock:
            session = self._open_sessions.get(segment.session_id)
            if session and session.is_finalized:
                session.is_processing = any(not s.processing_status.is_terminal
                                            for s in session.segments)
                self.store.save_session(session)
                if not session.is_processing:
                    self._open_sessions.pop(session.session_id, None)
                    logger.info(f"All segments of session {session.session_id} processed")
        self.segment_publisher.publish_segment(segment)
