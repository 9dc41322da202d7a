"""Storage for relay logs and local identity."""

from .message_log import MessageLog, InMemoryMessageLog, FileMessageLog, Subscription
from .identity import LocalIdentity

__all__ = [
    "MessageLog",
    "InMemoryMessageLog",
    "FileMessageLog",
    "Subscription",
    "LocalIdentity",
]
