"""Audit Retry Writer - out-of-band redelivery of failed audit writes.

A failed audit write must not hold up the login that produced it, and it
must not be silently lost either. Entries handed to this writer are retried
on a background thread; entries that still fail are dead-lettered and
raised as a CRITICAL log event for operators.
"""

import atexit
import logging
import queue
import threading
import time
from typing import List, Optional, Tuple

from adaptive_auth.common.constants import AuditConstants
from adaptive_auth.governance.audit.schemas import AuditEntry
from adaptive_auth.governance.audit.store import AuditStore


logger = logging.getLogger(__name__)


class AuditRetryWriter:
    """Background redelivery queue for audit entries."""
    
    def __init__(
        self,
        store: AuditStore,
        max_retries: int = AuditConstants.MAX_WRITE_RETRIES,
        backoff_seconds: float = AuditConstants.RETRY_BACKOFF_SECONDS,
        max_queue_size: int = AuditConstants.QUEUE_SIZE,
        flush_timeout: float = AuditConstants.FLUSH_TIMEOUT_SECONDS,
    ):
        """Initialize the retry writer and start its thread.
        
        Args:
            store: Store to redeliver into
            max_retries: Attempts per entry before it is dead-lettered
            backoff_seconds: Linear backoff step between attempts
            max_queue_size: Maximum number of pending entries
            flush_timeout: Default wait for ``flush`` and ``shutdown``
        """
        self.store = store
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.flush_timeout = flush_timeout
        
        self._queue: "queue.Queue[Optional[Tuple[AuditEntry, int]]]" = queue.Queue(
            maxsize=max_queue_size
        )
        self._shutdown_event = threading.Event()
        self._stats_lock = threading.Lock()
        self._dead_letters: List[AuditEntry] = []
        self._entries_recovered = 0
        
        self._writer_thread = threading.Thread(
            target=self._writer_loop,
            name="AuditRetryWriter",
            daemon=True,
        )
        self._writer_thread.start()
        atexit.register(self.shutdown)
    
    def submit(self, entry: AuditEntry) -> None:
        """Queue an entry whose first write failed."""
        try:
            self._queue.put_nowait((entry, 1))
        except queue.Full:
            self._dead_letter(entry, "retry queue full")
    
    def _writer_loop(self) -> None:
        while not self._shutdown_event.is_set():
            try:
                item = self._queue.get(timeout=AuditConstants.QUEUE_GET_TIMEOUT)
            except queue.Empty:
                continue
            try:
                if item is None:
                    break
                self._attempt(*item)
            finally:
                self._queue.task_done()
    
    def _attempt(self, entry: AuditEntry, attempt: int) -> None:
        if self.backoff_seconds:
            time.sleep(self.backoff_seconds * attempt)
        try:
            self.store.append_entry(entry)
        except Exception as e:
            if attempt >= self.max_retries or self._shutdown_event.is_set():
                self._dead_letter(entry, str(e))
                return
            logger.warning(
                "Audit write retry failed",
                extra={"entry_id": entry.entry_id, "attempt": attempt, "error": str(e)}
            )
            try:
                self._queue.put_nowait((entry, attempt + 1))
            except queue.Full:
                self._dead_letter(entry, "retry queue full")
            return
        
        with self._stats_lock:
            self._entries_recovered += 1
        logger.info(
            "Audit entry recovered",
            extra={"entry_id": entry.entry_id, "attempt": attempt}
        )
    
    def _dead_letter(self, entry: AuditEntry, error: str) -> None:
        with self._stats_lock:
            self._dead_letters.append(entry)
        logger.critical(
            "Audit entry could not be persisted",
            extra={
                "entry_id": entry.entry_id,
                "event_type": entry.event_type.value,
                "user_id": entry.user_id,
                "error": error,
                "alert": "audit_write_exhausted",
            }
        )
    
    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait until nothing is pending.
        
        Returns:
            True if the queue drained before the timeout
        """
        timeout = self.flush_timeout if timeout is None else timeout
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if self._queue.unfinished_tasks == 0:
                return True
            time.sleep(0.01)
        return self._queue.unfinished_tasks == 0
    
    def shutdown(self, timeout: Optional[float] = None) -> None:
        if self._shutdown_event.is_set():
            return
        self.flush(timeout)
        self._shutdown_event.set()
        try:
            self._queue.put_nowait(None)
        except queue.Full:
            pass
        self._writer_thread.join(timeout=self.flush_timeout if timeout is None else timeout)
        
        # Anything still queued will never be written
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                break
            if item is not None:
                self._dead_letter(item[0], "writer shut down")
            self._queue.task_done()
    
    @property
    def dead_letters(self) -> List[AuditEntry]:
        with self._stats_lock:
            return list(self._dead_letters)
    
    def get_stats(self) -> dict:
        with self._stats_lock:
            return {
                "entries_recovered": self._entries_recovered,
                "dead_letters": len(self._dead_letters),
                "pending": self._queue.qsize(),
            }
