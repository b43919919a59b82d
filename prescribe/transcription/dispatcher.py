"""Remote-then-local transcription of segments with bounded, backed-off retries."""

import os
import copy
import asyncio
import logging
import threading
import concurrent.futures
from typing import Callable, Dict, Optional, Set

from .base import AbstractTranscriptionBackend
from ..errors import (
    AudioFileNotFoundError,
    ExtractionError,
    LocalRecognitionUnavailableError,
    PrescribeError,
    TranscriptionError,
)
from ..models.transcription import ProcessingStatus, TranscriptionResult, TranscriptionSegment
from ..segments.extractor import SegmentExtractor

logger = logging.getLogger(__name__)

FALLBACK_TEXT = "Transcription failed. Try again later."


class TranscriptionDispatcher:
    """Owns every mutation of a segment's status, text, retry count and busy flag.

    Attempts run on a private asyncio loop thread, so neither the audio
    callback nor the control loop ever waits on the network. Retries are
    handed to ``scheduler`` (the control loop) keyed by segment id, which
    guarantees at most one pending retry per segment.

    Status flow per attempt:
      processing -> completed                       (remote or local text)
      processing -> failed, retry in base**n sec    (both failed, n < max_attempts)
      processing -> local_fallback                  (both failed, n == max_attempts)
    where n is the retry count after the failure was counted.
    """

    def __init__(self,
                 remote: Optional[AbstractTranscriptionBackend],
                 local: Optional[AbstractTranscriptionBackend],
                 extractor: SegmentExtractor,
                 scheduler,
                 max_attempts: int = 3,
                 backoff_base: float = 2.0,
                 fallback_text: str = FALLBACK_TEXT,
                 on_update: Optional[Callable[[TranscriptionSegment], None]] = None):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.remote = remote
        self.local = local
        self.extractor = extractor
        self.scheduler = scheduler
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.fallback_text = fallback_text
        self.on_update = on_update

        self._lock = threading.Lock()
        self._in_flight: Dict[str, concurrent.futures.Future] = {}
        # In-flight segments discarded mid-attempt
        self._discarded: Set[str] = set()
        # Single worker keeps update callbacks in order and off the loop thread
        self._notifier: Optional[concurrent.futures.ThreadPoolExecutor] = None

        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self.loop_thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------ lifecycle

    def start(self) -> None:
        if self.loop_thread and self.loop_thread.is_alive():
            return
        self._notifier = concurrent.futures.ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="SegmentUpdate")
        self.loop = asyncio.new_event_loop()
        self.loop_thread = threading.Thread(target=self._run_loop, daemon=True)
        self.loop_thread.name = "TranscriptionDispatcherThread"
        self.loop_thread.start()
        logger.info("Transcription dispatcher started")

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self.loop)
        try:
            self.loop.run_forever()
        finally:
            self.loop.close()
            logger.debug("Dispatcher event loop closed")

    def shutdown(self, timeout: float = 30.0) -> bool:
        """Wait for in-flight attempts, then stop the loop.

        Returns True if every in-flight attempt finished within ``timeout``.
        Pending retries are left to the scheduler's owner.
        """
        with self._lock:
            pending = list(self._in_flight.values())
        logger.info(f"Shutting down dispatcher; waiting for {len(pending)} in-flight attempts")

        done, not_done = concurrent.futures.wait(pending, timeout=timeout)
        if not_done:
            logger.warning(f"{len(not_done)} transcription attempts still running at shutdown")

        if self.loop and self.loop.is_running():
            self.loop.call_soon_threadsafe(self.loop.stop)
        if self.loop_thread:
            self.loop_thread.join(2.0)
            if self.loop_thread.is_alive():
                logger.warning("Dispatcher thread did not terminate cleanly")
        self.loop_thread = None
        if self._notifier:
            self._notifier.shutdown(wait=True)
            self._notifier = None
        logger.info("Transcription dispatcher shutdown complete")
        return not not_done

    # ------------------------------------------------------------------ public API

    @staticmethod
    def backoff_delay(retry_count: int, base: float = 2.0) -> float:
        """Delay before retry number ``retry_count``."""
        return base ** retry_count

    def dispatch(self, segment: TranscriptionSegment) -> Optional[concurrent.futures.Future]:
        """Start one attempt for ``segment`` unless one is already running.

        Returns a future resolving when the attempt has updated the segment,
        or None if nothing was started.
        """
        with self._lock:
            segment_id = segment.segment_id
            if segment_id in self._in_flight:
                logger.warning(f"Segment {segment_id} already has an attempt in flight")
                return None
            if segment.processing_status.is_terminal:
                logger.debug(f"Segment {segment_id} is {segment.processing_status.value}; not dispatching")
                return None
            if self.loop is None or not self.loop_thread or not self.loop_thread.is_alive():
                raise RuntimeError("Dispatcher not started")

            # A manual dispatch supersedes any pending retry
            self.scheduler.cancel(segment_id)
            segment.is_processing = True
            segment.processing_status = ProcessingStatus.PROCESSING
            future = asyncio.run_coroutine_threadsafe(self._attempt(segment), self.loop)
            self._in_flight[segment_id] = future

        logger.info(f"Dispatching segment {segment_id} [{segment.start_time:.2f}s, "
                    f"{segment.end_time:.2f}s), attempt {segment.retry_count + 1}")
        return future

    def discard(self, segment_id: str) -> None:
        """Drop a segment: cancel its pending retry and never reschedule it."""
        with self._lock:
            if segment_id in self._in_flight:
                self._discarded.add(segment_id)
        if self.scheduler.cancel(segment_id):
            logger.info(f"Cancelled pending retry for discarded segment {segment_id}")

    def is_in_flight(self, segment_id: str) -> bool:
        with self._lock:
            return segment_id in self._in_flight

    def in_flight_count(self) -> int:
        with self._lock:
            return len(self._in_flight)

    # ------------------------------------------------------------------ attempt

    async def _attempt(self, segment: TranscriptionSegment) -> None:
        await self._notify(segment)
        chunk_id = f"{segment.session_id}.{segment.segment_id}.{segment.retry_count + 1}"
        try:
            result = await self._transcribe(segment, chunk_id)
        except PrescribeError as e:
            logger.warning(f"Transcription attempt failed for segment {segment.segment_id}: "
                           f"{e.__class__.__name__}: {e}")
            self._record_failure(segment)
        except Exception as e:
            logger.error(f"Unhandled exception transcribing segment {segment.segment_id}: {e}",
                         exc_info=True)
            self._record_failure(segment)
        else:
            self._record_success(segment, result)
        await self._notify(segment)

    async def _transcribe(self, segment: TranscriptionSegment, chunk_id: str) -> TranscriptionResult:
        if not os.path.exists(segment.audio_file_path):
            raise AudioFileNotFoundError(f"Audio file does not exist: {segment.audio_file_path}")

        loop = asyncio.get_running_loop()
        clip_path = None
        try:
            clip_path = await loop.run_in_executor(
                None, self.extractor.write_clip,
                segment.audio_file_path, segment.start_time, segment.end_time)
        except ExtractionError as e:
            logger.warning(f"Clip extraction failed for {chunk_id}; skipping remote: {e}")

        try:
            if clip_path and self.remote:
                try:
                    return await self.remote.transcribe_file(chunk_id, clip_path)
                except TranscriptionError as e:
                    logger.warning(f"Remote transcription failed for {chunk_id}: "
                                   f"{e.__class__.__name__}: {e}")

            if not self.local:
                raise LocalRecognitionUnavailableError("No local recognizer configured")
            if clip_path:
                return await self.local.transcribe_file(chunk_id, clip_path)
            return await self.local.transcribe_file(
                chunk_id, segment.audio_file_path,
                time_range=(segment.start_time, segment.end_time))
        finally:
            if clip_path:
                self.extractor.discard(clip_path)

    # ------------------------------------------------------------------ outcomes

    def _record_success(self, segment: TranscriptionSegment, result: TranscriptionResult) -> None:
        with self._lock:
            segment.transcription_text = result.text
            segment.processing_status = ProcessingStatus.COMPLETED
            segment.is_processing = False
            self._in_flight.pop(segment.segment_id, None)
            self._discarded.discard(segment.segment_id)
        logger.info(f"✅ Transcription completed for segment {segment.segment_id} "
                    f"via {result.service}: '{result.text[:80]}'")

    def _record_failure(self, segment: TranscriptionSegment) -> None:
        retry_delay = None
        with self._lock:
            segment.retry_count += 1
            segment.is_processing = False
            self._in_flight.pop(segment.segment_id, None)
            discarded = segment.segment_id in self._discarded
            self._discarded.discard(segment.segment_id)

            if segment.retry_count >= self.max_attempts:
                segment.processing_status = ProcessingStatus.LOCAL_FALLBACK
                segment.transcription_text = self.fallback_text
            else:
                segment.processing_status = ProcessingStatus.FAILED
                if not discarded:
                    retry_delay = self.backoff_delay(segment.retry_count, self.backoff_base)

        if segment.processing_status is ProcessingStatus.LOCAL_FALLBACK:
            logger.warning(f"Retries exhausted for segment {segment.segment_id}; "
                           f"using fallback text")
        elif retry_delay is not None:
            logger.warning(f"Scheduling retry {segment.retry_count} for segment "
                           f"{segment.segment_id} in {retry_delay:.0f} seconds")
            self.scheduler.schedule(segment.segment_id, retry_delay,
                                    lambda: self.dispatch(segment))

    async def _notify(self, segment: TranscriptionSegment) -> None:
        """Hand a snapshot of ``segment`` to ``on_update`` on the notifier thread."""
        if not self.on_update or self._notifier is None:
            return
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(self._notifier, self._deliver, copy.copy(segment))

    def _deliver(self, segment: TranscriptionSegment) -> None:
        try:
            self.on_update(segment)
        except Exception as e:
            logger.error(f"Segment update callback failed: {e}", exc_info=True)
