"""Session relay: identifiers, channels and coordinators."""

from .ids import normalize_session_id, generate_session_code, host_peer_id, peer_port
from .channel import SessionChannel
from .log_channel import LogSessionChannel
from .peer_channel import PeerSessionChannel
from .coordinator import HostCoordinator, GuestCoordinator

__all__ = [
    "normalize_session_id",
    "generate_session_code",
    "host_peer_id",
    "peer_port",
    "SessionChannel",
    "LogSessionChannel",
    "PeerSessionChannel",
    "HostCoordinator",
    "GuestCoordinator",
]
