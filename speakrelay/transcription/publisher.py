"""Pipeline event publisher for pub/sub fan-out."""

import logging

from pubsub import pub

from ..models.events import PipelineEvent

logger = logging.getLogger(__name__)


class PipelineEventPublisher:
    """Publishes pipeline events using pubsub.pub."""

    def __init__(self, topic: str = "pipeline.events"):
        """Initialize pipeline event publisher.

        Args:
            topic: Pub/sub topic name for pipeline events
        """
        self.topic = topic
        logger.info(f"PipelineEventPublisher initialized with topic: {topic}")

    def publish(self, event: PipelineEvent) -> None:
        pub.sendMessage(self.topic, event=event)
        logger.debug(f"Published {event.kind} event on {self.topic}")

    def subscribe(self, listener) -> None:
        """Register ``listener(event)``. pubsub keeps only a weak reference to it."""
        pub.subscribe(listener, self.topic)

    def unsubscribe(self, listener) -> None:
        pub.unsubscribe(listener, self.topic)
