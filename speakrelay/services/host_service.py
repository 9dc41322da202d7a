"""Host service: microphone pipeline wired into the session relay."""

import logging
from typing import Optional

from ..config import SpeakRelayConfig
from ..models.events import PipelineEvent
from ..session.channel import SessionChannel
from ..session.coordinator import HostCoordinator
from ..transcription.publisher import PipelineEventPublisher
from .factory import create_capture_engine, create_channel

logger = logging.getLogger(__name__)


class HostService:
    """Owns the capture engine and the host coordinator for one session."""

    def __init__(self,
                 config: SpeakRelayConfig,
                 session_id: str,
                 channel: Optional[SessionChannel] = None,
                 pipeline_topic: str = "pipeline.events",
                 session_topic: str = "session.host"):
        """Initialize host service.

        Args:
            config: Application configuration
            session_id: Session to host (normalized by the channel)
            channel: Relay channel; built from config when omitted
            pipeline_topic: pubsub topic for pipeline events
            session_topic: pubsub topic for host session events
        """
        self.config = config
        self.channel = channel or create_channel(config, session_id)
        self.coordinator = HostCoordinator(self.channel, topic=session_topic)
        self.publisher = PipelineEventPublisher(pipeline_topic)
        self.engine = create_capture_engine(config, self.publisher.publish)
        self.client = self.engine.client
        self.status = "disconnected"
        self.last_error: Optional[Exception] = None

    @property
    def session_id(self) -> str:
        return self.coordinator.session_id

    def open(self) -> None:
        self.publisher.subscribe(self.coordinator.on_pipeline_event)
        self.publisher.subscribe(self._on_pipeline_event)
        self.coordinator.open()
        logger.info(f"Hosting session {self.session_id}")

    def start_capture(self) -> None:
        """Raises CaptureDeviceError if the microphone cannot be opened."""
        self.last_error = None
        self.engine.start()

    def stop_capture(self) -> None:
        self.engine.stop()

    def _on_pipeline_event(self, event: PipelineEvent) -> None:
        # connected -> warmup -> ready; error and disconnected end the run
        if event.kind in ("connected", "warmup", "ready", "disconnected"):
            if not (event.kind == "warmup" and self.status == "ready"):
                self.status = event.kind
        elif event.kind == "error" and event.fatal:
            self.status = "error"
            self.last_error = event.error
            logger.error(f"Capture stopped by fatal error: {event.error}")

    def close(self) -> None:
        """Stop capture, end the session for every guest and unsubscribe."""
        if self.engine.is_capturing:
            self.engine.stop()
        self.coordinator.end_session()
        for listener in (self.coordinator.on_pipeline_event, self._on_pipeline_event):
            try:
                self.publisher.unsubscribe(listener)
            except Exception as e:
                logger.warning(f"Error during unsubscribe: {e}")
