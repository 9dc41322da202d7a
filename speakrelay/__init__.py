"""SpeakRelay: live speech transcription relayed to remote guests."""

__version__ = "0.1.0"
