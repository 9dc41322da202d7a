"""Persistent local guest identity."""

import json
import logging
import threading
import uuid
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class LocalIdentity:
    """Guest id stored on disk, created on first use and kept across restarts."""

    def __init__(self, path: str):
        self.path = Path(path)
        self._guest_id: Optional[str] = None
        self.lock = threading.Lock()

    def guest_id(self) -> str:
        with self.lock:
            if self._guest_id is None:
                self._guest_id = self._load() or self._create()
            return self._guest_id

    def _load(self) -> Optional[str]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable identity file {self.path}: {e}")
            return None
        guest_id = data.get("guest_id") if isinstance(data, dict) else None
        return guest_id if isinstance(guest_id, str) and guest_id else None

    def _create(self) -> str:
        guest_id = uuid.uuid4().hex[:8]
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump({"guest_id": guest_id}, f)
        logger.info(f"Created local guest identity {guest_id} at {self.path}")
        return guest_id
