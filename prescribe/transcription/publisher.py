"""Segment update publisher for pub/sub event publishing."""

import logging
from typing import Callable

from pubsub import pub

from ..models.transcription import TranscriptionSegment

logger = logging.getLogger(__name__)

SEGMENT_UPDATED_TOPIC = "segment.updated"


class SegmentPublisher:
    """Publishes segment state changes using pubsub.pub."""

    def __init__(self, topic: str = SEGMENT_UPDATED_TOPIC):
        """Initialize segment publisher.

        Args:
            topic: Pub/sub topic name for segment updates
        """
        self.topic = topic
        logger.info(f"SegmentPublisher initialized with topic: {topic}")

    def publish_segment(self, segment: TranscriptionSegment) -> None:
        pub.sendMessage(self.topic, event=segment)
        logger.debug(f"Published segment update: {segment.segment_id} "
                     f"({segment.processing_status.value})")

    def get_callback(self) -> Callable[[TranscriptionSegment], None]:
        """Get callback function for the TranscriptionDispatcher to use."""
        return self.publish_segment
