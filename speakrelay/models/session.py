"""Session-related data models."""

from dataclasses import dataclass
from enum import Enum

from ..errors import InvalidTransitionError


class Role(str, Enum):
    HOST = "host"
    GUEST = "guest"


class GuestStatus(str, Enum):
    PENDING = "pending"
    CONNECTED = "connected"
    REJECTED = "rejected"


class GuestState(str, Enum):
    """Connection state as seen from the guest device."""
    IDLE = "idle"
    REQUESTING = "requesting"
    CONNECTED = "connected"
    REJECTED = "rejected"


@dataclass
class Session:
    """A participant's view of a relay session."""
    session_id: str  # normalized
    role: Role


@dataclass
class Guest:
    """A guest as tracked by the host."""
    id: str
    name: str
    status: GuestStatus = GuestStatus.PENDING

    @classmethod
    def from_sender_id(cls, sender_id: str) -> "Guest":
        return cls(id=sender_id, name=f"Guest {sender_id[:4]}")

    def approve(self) -> None:
        self._decide(GuestStatus.CONNECTED)

    def reject(self) -> None:
        self._decide(GuestStatus.REJECTED)

    def _decide(self, status: GuestStatus) -> None:
        if self.status is not GuestStatus.PENDING:
            raise InvalidTransitionError(
                f"Guest {self.id} is already {self.status.value}, cannot become {status.value}")
        self.status = status
