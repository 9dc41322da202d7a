"""Relay channel over a shared append-only message log."""

import logging
import time
import uuid
from typing import Optional

from ..models.messages import SignalingMessage, encode_message
from ..models.session import Role
from ..storage.message_log import MessageLog, Subscription
from .channel import MessageHandler, SessionChannel

logger = logging.getLogger(__name__)


class LogSessionChannel(SessionChannel):
    """Every participant appends to the session log and reads everyone else's appends."""

    def __init__(self, session_id: str, log: MessageLog, client_id: Optional[str] = None):
        super().__init__(session_id)
        self.log = log
        self.client_id = client_id or uuid.uuid4().hex[:8]
        self.subscription: Optional[Subscription] = None

    def connect(self, role: Role, on_message: MessageHandler) -> None:
        if self.subscription is not None:
            logger.warning(f"Channel {self.session_id} already connected")
            return
        self.role = role
        self.on_message = on_message
        self.log.set_presence(self.session_id, self.client_id, role.value)
        self.subscription = self.log.subscribe(self.session_id, self._on_record)
        logger.info(f"Joined {self.session_id} as {role.value} (client {self.client_id})")

    def _on_record(self, record: dict) -> None:
        if record.get("clientId") == self.client_id:
            return
        self._deliver(record)

    def send(self, message: SignalingMessage) -> None:
        record = encode_message(message)
        record["clientId"] = self.client_id
        record["ts"] = int(time.time() * 1000)
        self.log.append(self.session_id, record)
        logger.debug(f"Appended {message.type} to {self.session_id}")

    def close(self) -> None:
        self.on_message = None
        if self.subscription is not None:
            self.subscription.cancel()
            self.subscription = None
        self.log.clear_presence(self.session_id, self.client_id)
        logger.info(f"Left {self.session_id} (client {self.client_id})")
