"""Error taxonomy for the capture, transcription and relay layers."""

from typing import Optional


class SpeakRelayError(Exception):
    """Base class for all SpeakRelay errors."""

    fatal = False


class CaptureDeviceError(SpeakRelayError):
    """Microphone could not be opened (missing, busy or permission denied)."""

    fatal = True


class TranscriptionError(SpeakRelayError):
    """Backend request failed or returned something we cannot use."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class AuthenticationError(TranscriptionError):
    """Backend rejected our credentials (HTTP 401/403)."""

    fatal = True


class WarmupError(TranscriptionError):
    """Backend model is still loading; later requests should succeed."""


class ChannelUnavailableError(SpeakRelayError):
    """Relay peer could not be reached."""


class MessageDecodeError(SpeakRelayError):
    """Relay message failed the shape check for its declared type."""


class InvalidTransitionError(SpeakRelayError):
    """A state change was requested that the state machine does not allow."""
