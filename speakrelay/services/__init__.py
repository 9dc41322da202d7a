"""Services layer wiring the pipeline and relay together."""

from .host_service import HostService
from .guest_service import GuestService
from .factory import create_capture_engine, create_channel, create_silence_gate

__all__ = [
    "HostService",
    "GuestService",
    "create_capture_engine",
    "create_channel",
    "create_silence_gate",
]
