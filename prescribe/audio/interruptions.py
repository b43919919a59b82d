"""Reacts to capture interruptions and input route changes."""

import logging
from typing import Callable, Optional

from pubsub import pub

from ..errors import CaptureError
from ..models.events import (
    InterruptionEvent,
    InterruptionType,
    RouteChangeEvent,
    RouteChangeReason,
)

logger = logging.getLogger(__name__)

INTERRUPTION_TOPIC = "session.interruption"
ROUTE_CHANGE_TOPIC = "session.route_change"

_ROUTE_RESUME_KEY = "route-change-resume"

_RESTART_REASONS = (
    RouteChangeReason.NEW_DEVICE_AVAILABLE,
    RouteChangeReason.OLD_DEVICE_UNAVAILABLE,
)


class InterruptionHandler:
    """Pauses and resumes a CaptureEngine in response to external signals.

    ``scheduler`` is the control loop; the delayed resume after a route change
    runs on it so it is ordered with ticks and segment boundaries.
    """

    def __init__(self,
                 engine,
                 scheduler,
                 settle_delay: float = 0.5,
                 on_error: Optional[Callable[[CaptureError], None]] = None,
                 on_change: Optional[Callable[[], None]] = None):
        self.engine = engine
        self.scheduler = scheduler
        self.settle_delay = settle_delay
        self.on_error = on_error
        self.on_change = on_change
        self.subscribed = False

    def subscribe(self) -> None:
        pub.subscribe(self.on_interruption, INTERRUPTION_TOPIC)
        pub.subscribe(self.on_route_change, ROUTE_CHANGE_TOPIC)
        self.subscribed = True

    def unsubscribe(self) -> None:
        if not self.subscribed:
            return
        pub.unsubscribe(self.on_interruption, INTERRUPTION_TOPIC)
        pub.unsubscribe(self.on_route_change, ROUTE_CHANGE_TOPIC)
        self.scheduler.cancel(_ROUTE_RESUME_KEY)
        self.subscribed = False

    def on_interruption(self, event: InterruptionEvent) -> None:
        if event.type is InterruptionType.BEGAN:
            logger.info("Capture interrupted")
            self.scheduler.cancel(_ROUTE_RESUME_KEY)
            self._pause()
        elif event.type is InterruptionType.ENDED:
            if event.should_resume:
                logger.info("Interruption ended; resuming capture")
                self._resume()
            else:
                logger.info("Interruption ended without resume hint; staying paused")

    def on_route_change(self, event: RouteChangeEvent) -> None:
        if event.reason not in _RESTART_REASONS:
            logger.debug(f"Ignoring route change: {event.reason.value}")
            return
        if not self.engine.is_recording:
            return
        # Paused by an interruption or the user: the stream reopens on their resume
        if self.engine.is_paused and not self.scheduler.is_scheduled(_ROUTE_RESUME_KEY):
            logger.info(f"Input route changed ({event.reason.value}) while paused")
            return

        logger.info(f"Input route changed ({event.reason.value}); restarting stream "
                    f"in {self.settle_delay}s")
        self._pause()
        self.scheduler.schedule(_ROUTE_RESUME_KEY, self.settle_delay, self._resume)

    def _pause(self) -> None:
        self.engine.pause()
        if self.on_change:
            self.on_change()

    def _resume(self) -> None:
        try:
            self.engine.resume()
        except CaptureError as e:
            logger.error(f"Failed to resume recording: {e}")
            if self.on_error:
                self.on_error(e)
            return
        if self.on_change:
            self.on_change()
