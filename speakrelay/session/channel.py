"""Abstract relay channel shared by all transport backends."""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

from ..errors import MessageDecodeError
from ..models.messages import SignalingMessage, decode_message
from ..models.session import Role
from .ids import normalize_session_id

logger = logging.getLogger(__name__)

MessageHandler = Callable[[SignalingMessage], None]


class SessionChannel(ABC):
    """Bidirectional pub/sub channel for one session.

    Delivery is at-least-once; messages from one sender to one receiver keep
    their order, nothing is promised across senders.
    """

    def __init__(self, session_id: str):
        self.session_id = normalize_session_id(session_id)
        self.role: Optional[Role] = None
        self.on_message: Optional[MessageHandler] = None

    @abstractmethod
    def connect(self, role: Role, on_message: MessageHandler) -> None:
        """Join the session and start delivering inbound messages to ``on_message``."""

    @abstractmethod
    def send(self, message: SignalingMessage) -> None:
        """Broadcast to every currently known peer."""

    @abstractmethod
    def close(self) -> None:
        """Release every peer resource; no callbacks fire afterwards."""

    def _deliver(self, raw) -> None:
        """Decode an inbound payload and pass it on; malformed input is dropped."""
        try:
            message = decode_message(raw)
        except MessageDecodeError as e:
            logger.debug(f"Dropping malformed relay message on {self.session_id}: {e}")
            return
        handler = self.on_message
        if handler is None:
            return
        try:
            handler(message)
        except Exception as e:
            logger.error(f"Relay handler failed for {message.type}: {e}", exc_info=True)
