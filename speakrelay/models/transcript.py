"""Transcript entry model shared by the pipeline and the relay wire format."""

import threading
import time
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Sender(str, Enum):
    """Who produced a transcript entry."""
    SPEAKER = "speaker"
    REMOTE_MODEL = "remote-model"


class TranscriptEntry(BaseModel):
    """One immutable line of transcript."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    sender: Sender
    text: str
    timestamp: int  # milliseconds since epoch
    is_partial: bool = Field(default=False, alias="isPartial")
    # Shared by the partial fragments of one spoken turn.
    turn_id: Optional[str] = Field(default=None, alias="turnId")

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class _EntryClock:
    """Millisecond clock that never hands out the same value twice."""

    def __init__(self):
        self._lock = threading.Lock()
        self._last = 0

    def next(self) -> int:
        now = int(time.time() * 1000)
        with self._lock:
            self._last = max(now, self._last + 1)
            return self._last


_clock = _EntryClock()


def new_entry(text: str,
              sender: Sender = Sender.SPEAKER,
              is_partial: bool = False,
              turn_id: Optional[str] = None) -> TranscriptEntry:
    """Create an entry whose id is the current time in ms, kept strictly increasing."""
    stamp = _clock.next()
    return TranscriptEntry(
        id=str(stamp),
        sender=sender,
        text=text,
        timestamp=stamp,
        is_partial=is_partial,
        turn_id=turn_id,
    )
