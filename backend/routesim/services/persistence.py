"""
Fire-and-forget persistence queue.

The engine pushes write jobs (tagged with their run id) onto a bounded
queue; a single worker thread applies them to the store. Submitting never
blocks: when the queue is full, or after close(), the job is dropped.
Store failures are logged and dropped, never retried.
"""

import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import Any, Optional

from routesim.exceptions import PersistenceFailure


logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 1024

WRITE_METHODS = ("create_run", "close_run", "append_sample")


@dataclass(frozen=True)
class WriteJob:
    method: str
    run_id: str
    kwargs: dict[str, Any] = field(default_factory=dict)


_STOP = object()


class PersistenceQueue:
    """Bounded write-behind queue in front of a RunRepository."""

    def __init__(self, store, maxsize: int = DEFAULT_QUEUE_SIZE):
        self._store = store
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._closed = False
        self.dropped = 0
        self.failed = 0
        self._worker = threading.Thread(
            target=self._run, name="persistence-writer", daemon=True
        )
        self._worker.start()

    @property
    def closed(self) -> bool:
        return self._closed

    def submit(self, method: str, run_id: str, **kwargs) -> bool:
        """
        Enqueue a write without blocking.

        Returns:
            True if the job was queued, False if it was dropped
        """
        if method not in WRITE_METHODS:
            raise ValueError(f"Unknown write method: {method}")
        if self._closed:
            logger.debug(f"Queue closed, dropping {method} for run {run_id}")
            self.dropped += 1
            return False
        try:
            self._queue.put_nowait(WriteJob(method, run_id, kwargs))
        except queue.Full:
            logger.debug(f"Queue full, dropping {method} for run {run_id}")
            self.dropped += 1
            return False
        return True

    def flush(self) -> None:
        """Block until every queued job has been applied or dropped."""
        self._queue.join()

    def close(self, timeout: Optional[float] = 5.0) -> None:
        """Apply pending jobs, then stop the worker."""
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put(_STOP, timeout=timeout)
        except queue.Full:
            logger.warning("Persistence queue still full at shutdown; pending writes lost")
            return
        self._worker.join(timeout)

    def _run(self) -> None:
        while True:
            job = self._queue.get()
            try:
                if job is _STOP:
                    return
                self._apply(job)
            finally:
                self._queue.task_done()

    def _apply(self, job: WriteJob) -> None:
        try:
            getattr(self._store, job.method)(job.run_id, **job.kwargs)
        except PersistenceFailure as e:
            self.failed += 1
            logger.debug(f"Dropped {job.method} for run {job.run_id}: {e}")
        except Exception as e:
            self.failed += 1
            logger.warning(f"Failed {job.method} for run {job.run_id}: {e}")
