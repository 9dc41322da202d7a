"""Accumulation buffer shared between the audio callback and the flush timer."""

import logging
import threading
from typing import List

import numpy as np

logger = logging.getLogger(__name__)


class AccumulationBuffer:
    """Collects resampled blocks until the next flush.

    The audio callback appends, the flush timer swaps. ``swap`` exchanges the
    pending block list for a fresh one and hands back the old list, so a flush
    never sees a half-written buffer and samples arriving while it encodes
    land in the new list. The lock covers only the append and the exchange.
    """

    def __init__(self):
        self._blocks: List[np.ndarray] = []
        self._length = 0
        self.lock = threading.Lock()

    def append(self, block: np.ndarray) -> None:
        if block.size == 0:
            return
        with self.lock:
            self._blocks.append(block)
            self._length += block.size

    def swap(self) -> np.ndarray:
        """Take everything accumulated so far as one contiguous float32 block."""
        with self.lock:
            blocks, length = self._blocks, self._length
            self._blocks, self._length = [], 0

        if not blocks:
            return np.zeros(0, dtype=np.float32)
        flat = np.concatenate(blocks).astype(np.float32, copy=False)
        logger.debug(f"Swapped out {len(blocks)} blocks ({length} samples)")
        return flat

    def __len__(self) -> int:
        return self._length

    def clear(self) -> None:
        with self.lock:
            self._blocks, self._length = [], 0
