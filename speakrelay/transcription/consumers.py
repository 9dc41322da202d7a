"""Worker pool that posts encoded chunks and republishes results in order."""

import asyncio
import itertools
import logging
import queue
import threading
import time
from typing import Callable, Dict, List, NamedTuple, Optional

from ..models.audio import EncodedAudioPacket
from ..models.events import ErrorEvent, PipelineEvent

logger = logging.getLogger(__name__)


class TranscriptionTask(NamedTuple):
    """A task to be processed by a worker thread."""
    sequence_number: int
    packet: Optional[EncodedAudioPacket]
    pre_roll: bool = False


class ReorderBuffer:
    """Releases per-task results strictly in sequence order.

    Replies can come back in any order; results for a sequence number are held
    until every earlier sequence number has been released (an empty result
    still counts as released).
    """

    def __init__(self, release: Callable[[PipelineEvent], None], first_sequence: int = 0):
        self._release = release
        self._next = first_sequence
        self._held: Dict[int, List[PipelineEvent]] = {}
        self.lock = threading.Lock()

    def complete(self, sequence_number: int, events: List[PipelineEvent]) -> None:
        # Publishing happens under the lock so two workers cannot interleave releases.
        with self.lock:
            self._held[sequence_number] = events
            while self._next in self._held:
                for event in self._held.pop(self._next):
                    try:
                        self._release(event)
                    except Exception as e:
                        logger.error(f"Listener failed on {event.kind} event #{sequence_number}: {e}", exc_info=True)
                self._next += 1

    @property
    def held_count(self) -> int:
        return len(self._held)


class TranscriptionWorker:
    """Manages a pool of worker threads to process transcription tasks from a queue."""

    def __init__(self,
                 client,
                 publish: Callable[[PipelineEvent], None],
                 max_concurrent_threads: int = 2,
                 name: str = "transcription"):
        self.name = name
        self.client = client
        self.publish = publish
        self.max_concurrent_threads = max_concurrent_threads

        self.task_queue: "queue.Queue[Optional[TranscriptionTask]]" = queue.Queue()
        self.worker_threads: List[threading.Thread] = []
        self.shutdown_event = threading.Event()
        self.fatal_error = threading.Event()
        self._sequence = itertools.count()
        self._sequence_lock = threading.Lock()
        self.reorder = ReorderBuffer(self._release)

        self._start_workers()

    def _start_workers(self):
        """Create and start the pool of worker threads."""
        for i in range(self.max_concurrent_threads):
            thread = threading.Thread(target=self._worker_loop)
            thread.name = f"worker_{self.name}_{i}"
            thread.daemon = True
            thread.start()
            self.worker_threads.append(thread)
        logger.info(f"Started {len(self.worker_threads)} {self.name} workers")

    def submit(self, packet: EncodedAudioPacket) -> Optional[int]:
        """Queue a packet for transcription. Does not wait for the reply."""
        return self._enqueue(packet, pre_roll=False)

    def submit_pre_roll(self) -> Optional[int]:
        return self._enqueue(None, pre_roll=True)

    def _enqueue(self, packet: Optional[EncodedAudioPacket], pre_roll: bool) -> Optional[int]:
        if self.shutdown_event.is_set():
            logger.warning(f"{self.name} worker is shut down, dropping packet")
            return None
        with self._sequence_lock:
            sequence_number = next(self._sequence)
            if packet is not None:
                packet.sequence_number = sequence_number
            self.task_queue.put(TranscriptionTask(sequence_number, packet, pre_roll))
        logger.debug(f"Queued {self.name} task #{sequence_number} (pre_roll={pre_roll})")
        return sequence_number

    def _worker_loop(self):
        """The main loop for each worker thread. Initializes an asyncio loop."""
        thread_name = threading.current_thread().name
        logger.debug(f"Worker thread {thread_name} starting")

        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)

        try:
            while True:
                task = self.task_queue.get()

                if task is None:
                    logger.debug(f"Worker {thread_name} received sentinel, exiting.")
                    self.task_queue.task_done()
                    break

                events: List[PipelineEvent] = []
                try:
                    events = loop.run_until_complete(self._process(task))
                except Exception as e:
                    logger.error(f"Unhandled exception in transcription task #{task.sequence_number}: {e}",
                                 exc_info=True)
                finally:
                    self.reorder.complete(task.sequence_number, events)
                    self.task_queue.task_done()
        finally:
            loop.close()
            logger.debug(f"Worker thread {thread_name} exiting and closing its event loop.")

    async def _process(self, task: TranscriptionTask) -> List[PipelineEvent]:
        if self.fatal_error.is_set():
            logger.debug(f"Skipping task #{task.sequence_number} after fatal error")
            return []
        if task.pre_roll:
            return await self.client.pre_roll()
        return await self.client.transcribe(task.packet)

    def _release(self, event: PipelineEvent) -> None:
        if isinstance(event, ErrorEvent) and event.fatal:
            if self.fatal_error.is_set():
                logger.debug(f"Suppressing repeated fatal error: {event.error}")
                return
            self.fatal_error.set()
        self.publish(event)

    def wait_idle(self, timeout: float = 30.0) -> bool:
        """Poll until every queued task has been processed."""
        start_time = time.time()
        while time.time() - start_time < timeout:
            if self.task_queue.unfinished_tasks == 0:
                return True
            time.sleep(0.05)
        logger.warning(f"[{self.name}] Timeout waiting for queue, "
                       f"{self.task_queue.unfinished_tasks} tasks remain.")
        return False

    def shutdown(self, timeout: float = 30.0) -> bool:
        """Drain outstanding tasks, then stop the worker threads."""
        logger.info(f"Shutting down {self.name} worker...")
        drained = self.wait_idle(timeout)
        self.shutdown_event.set()

        for _ in self.worker_threads:
            self.task_queue.put(None)
        for thread in self.worker_threads:
            if thread is threading.current_thread():
                continue
            thread.join(2.0)
            if thread.is_alive():
                logger.warning(f"Worker thread {thread.name} did not terminate cleanly.")

        logger.info(f"{self.name} worker shutdown complete.")
        return drained

    def get_pending_task_count(self) -> int:
        return self.task_queue.qsize()
