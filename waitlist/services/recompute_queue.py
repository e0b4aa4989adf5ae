"""Coalescing, single-flight queue of entries awaiting position recomputation."""
from concurrent.futures import Executor
from typing import Callable, Dict, Hashable, List, Optional
import logging
import threading

logger = logging.getLogger(__name__)


class RecomputeQueue:
    """Collects entry ids and drains them in batches, one drain at a time.

    Repeated enqueues of an id before a drain collapse into one recompute.
    The decision to go idle is taken under the same lock as enqueue, so an
    id added while a batch is being processed is always picked up by the
    next pass of the drain loop.
    """

    def __init__(self, process_batch: Callable[[List[Hashable]], None], executor: Optional[Executor] = None):
        self._process_batch = process_batch
        self._executor = executor
        self._pending = set()
        self._draining = False
        self._lock = threading.Lock()
        self._batches_processed = 0
        self._batches_failed = 0

    def enqueue(self, entry_id: Hashable) -> None:
        with self._lock:
            self._pending.add(entry_id)
            if self._draining:
                return
            self._draining = True
        self._start()

    def drain(self) -> int:
        """Drain now on the calling thread. Returns 0 if a drain is already running."""
        with self._lock:
            if self._draining:
                return 0
            self._draining = True
        return self._drain_loop()

    def _start(self) -> None:
        if self._executor is None:
            self._drain_loop()
        else:
            try:
                self._executor.submit(self._drain_loop)
            except RuntimeError:
                # Executor already shut down
                with self._lock:
                    self._draining = False
                raise

    def _take_batch(self) -> List[Hashable]:
        with self._lock:
            if not self._pending:
                self._draining = False
                return []
            batch = list(self._pending)
            self._pending.clear()
            return batch

    def _drain_loop(self) -> int:
        batches = 0
        while True:
            batch = self._take_batch()
            if not batch:
                return batches
            batches += 1
            try:
                self._process_batch(batch)
                self._batches_processed += 1
            except Exception:
                # Keep the worker alive; affected ids are recomputed on their next event
                self._batches_failed += 1
                logger.exception(f"Position recompute failed for batch {sorted(batch, key=str)}")

    def stats(self) -> Dict[str, object]:
        with self._lock:
            return {
                "pending": len(self._pending),
                "draining": self._draining,
                "batches_processed": self._batches_processed,
                "batches_failed": self._batches_failed,
            }

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
