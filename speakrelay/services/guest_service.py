"""Guest service: joins a session and mirrors the host's transcript."""

import logging
from typing import Optional

from ..config import SpeakRelayConfig
from ..session.channel import SessionChannel
from ..models.session import GuestState
from ..session.coordinator import GuestCoordinator
from ..storage.identity import LocalIdentity
from .factory import create_channel

logger = logging.getLogger(__name__)


class GuestService:
    """Owns the guest coordinator and the persistent local identity."""

    def __init__(self,
                 config: SpeakRelayConfig,
                 session_id: str,
                 channel: Optional[SessionChannel] = None,
                 identity: Optional[LocalIdentity] = None,
                 session_topic: str = "session.guest"):
        self.config = config
        self.identity = identity or LocalIdentity(config.get_identity_file())
        self.channel = channel or create_channel(config, session_id)
        self.coordinator = GuestCoordinator(
            self.channel,
            guest_id=self.identity.guest_id(),
            settle_delay=config.get('relay.join_settle_delay_seconds', 1.5),
            verify_guest_id=config.get('relay.verify_guest_id', False),
            topic=session_topic,
        )

    @property
    def session_id(self) -> str:
        return self.coordinator.session_id

    def join(self) -> bool:
        self.coordinator.open()
        logger.info(f"Requesting to join {self.session_id} as {self.coordinator.guest_id}")
        return self.coordinator.request_join()

    def retry(self) -> bool:
        return self.coordinator.retry() and self.coordinator.request_join()

    def rejoin(self) -> bool:
        """Ask again after a rejection or after the host ended the session."""
        state = self.coordinator.state
        if state is GuestState.REJECTED:
            return self.retry()
        if state is GuestState.IDLE:
            logger.info(f"Requesting to join {self.session_id} again")
            return self.coordinator.request_join()
        return False

    def close(self) -> None:
        self.coordinator.close()
