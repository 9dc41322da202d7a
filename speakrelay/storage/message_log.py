"""Append-only per-session message logs backing the log relay channel."""

import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
RecordCallback = Callable[[Record], None]


class Subscription:
    """Handle returned by :meth:`MessageLog.subscribe`."""

    def __init__(self, cancel: Callable[[], None]):
        self._cancel = cancel
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self.active = False
            self._cancel()


class MessageLog(ABC):
    """Shared append-only log, one stream per session."""

    @abstractmethod
    def append(self, session_id: str, record: Record) -> int:
        """Append a record and return its position in the session's log."""

    @abstractmethod
    def subscribe(self, session_id: str, callback: RecordCallback) -> Subscription:
        """Deliver records appended after this call, in log order."""

    @abstractmethod
    def set_presence(self, session_id: str, client_id: str, role: str) -> None:
        pass

    @abstractmethod
    def clear_presence(self, session_id: str, client_id: str) -> None:
        pass

    @abstractmethod
    def presence(self, session_id: str) -> Dict[str, str]:
        """client id -> role for everyone currently marked present."""


class InMemoryMessageLog(MessageLog):
    """Process-local log. Subscribers are called synchronously on the appending thread."""

    def __init__(self):
        self._records: Dict[str, List[Record]] = {}
        self._subscribers: Dict[str, List[RecordCallback]] = {}
        self._presence: Dict[str, Dict[str, str]] = {}
        self.lock = threading.RLock()

    def append(self, session_id: str, record: Record) -> int:
        with self.lock:
            records = self._records.setdefault(session_id, [])
            records.append(dict(record))
            position = len(records) - 1
            subscribers = list(self._subscribers.get(session_id, []))
        for callback in subscribers:
            callback(dict(record))
        return position

    def subscribe(self, session_id: str, callback: RecordCallback) -> Subscription:
        with self.lock:
            self._subscribers.setdefault(session_id, []).append(callback)

        def cancel():
            with self.lock:
                subscribers = self._subscribers.get(session_id, [])
                if callback in subscribers:
                    subscribers.remove(callback)

        return Subscription(cancel)

    def records(self, session_id: str) -> List[Record]:
        with self.lock:
            return [dict(r) for r in self._records.get(session_id, [])]

    def set_presence(self, session_id: str, client_id: str, role: str) -> None:
        with self.lock:
            self._presence.setdefault(session_id, {})[client_id] = role

    def clear_presence(self, session_id: str, client_id: str) -> None:
        with self.lock:
            self._presence.get(session_id, {}).pop(client_id, None)

    def presence(self, session_id: str) -> Dict[str, str]:
        with self.lock:
            return dict(self._presence.get(session_id, {}))


class FileMessageLog(MessageLog):
    """JSON-lines log per session in a shared directory, tailed by polling threads."""

    def __init__(self, data_dir: str, poll_interval: float = 0.2):
        """Initialize file message log.

        Args:
            data_dir: Directory shared by every participant
            poll_interval: Seconds between tail reads
        """
        self.data_dir = Path(data_dir)
        self.sessions_dir = self.data_dir / "relay"
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        self.poll_interval = poll_interval
        self.lock = threading.Lock()
        logger.info(f"FileMessageLog initialized with data_dir: {self.data_dir}")

    def _log_path(self, session_id: str) -> Path:
        return self.sessions_dir / f"{session_id}.jsonl"

    def _presence_dir(self, session_id: str) -> Path:
        return self.sessions_dir / f"{session_id}.presence"

    def append(self, session_id: str, record: Record) -> int:
        line = json.dumps(record, ensure_ascii=False) + "\n"
        path = self._log_path(session_id)
        with self.lock:
            with open(path, "a", encoding="utf-8") as f:
                f.write(line)
                f.flush()
                position = f.tell()
        logger.debug(f"Appended record to {path.name} (offset {position})")
        return position

    def subscribe(self, session_id: str, callback: RecordCallback) -> Subscription:
        path = self._log_path(session_id)
        path.touch(exist_ok=True)
        start_offset = path.stat().st_size
        stop_event = threading.Event()

        thread = threading.Thread(
            target=self._tail,
            args=(path, start_offset, callback, stop_event),
            daemon=True,
        )
        thread.name = f"LogTail-{session_id}"
        thread.start()

        def cancel():
            stop_event.set()
            if thread is not threading.current_thread():
                thread.join(timeout=2.0)

        return Subscription(cancel)

    def _tail(self, path: Path, offset: int, callback: RecordCallback, stop_event: threading.Event) -> None:
        partial = b""
        while not stop_event.is_set():
            with open(path, "rb") as f:
                f.seek(offset)
                chunk = f.read()
            if chunk:
                offset += len(chunk)
                lines = (partial + chunk).split(b"\n")
                partial = lines.pop()  # incomplete trailing line, if any
                for line in lines:
                    if stop_event.is_set():
                        return
                    if not line.strip():
                        continue
                    try:
                        record = json.loads(line.decode("utf-8"))
                    except ValueError as e:
                        logger.debug(f"Skipping unreadable log line in {path.name}: {e}")
                        continue
                    try:
                        callback(record)
                    except Exception as e:
                        logger.error(f"Log subscriber failed: {e}", exc_info=True)
            stop_event.wait(self.poll_interval)

    def set_presence(self, session_id: str, client_id: str, role: str) -> None:
        presence_dir = self._presence_dir(session_id)
        presence_dir.mkdir(parents=True, exist_ok=True)
        (presence_dir / client_id).write_text(role, encoding="utf-8")

    def clear_presence(self, session_id: str, client_id: str) -> None:
        marker = self._presence_dir(session_id) / client_id
        try:
            marker.unlink()
        except FileNotFoundError:
            pass

    def presence(self, session_id: str) -> Dict[str, str]:
        presence_dir = self._presence_dir(session_id)
        if not presence_dir.exists():
            return {}
        return {p.name: p.read_text(encoding="utf-8") for p in presence_dir.iterdir() if p.is_file()}
