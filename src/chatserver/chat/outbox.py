"""
=============================================================================
PER-SESSION OUTBOUND QUEUE
=============================================================================

By default a broadcast writes to every recipient on the SENDER's thread.
If one recipient stops reading, its TCP window fills up, sendall() blocks,
and the sender is stuck until that peer drains or dies.

With ServerConfig.outbound_queue=True every session gets an Outbox:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   bob's thread                      alice's Outbox                   │
    │   ────────────                      ──────────────                   │
    │   broadcast("bob: hi")  ──put()──►  [ "carol: yo" | "bob: hi" ]      │
    │        │ returns at once                   │                          │
    │        ▼                                   │ get()                    │
    │   next line                         writer thread                    │
    │                                     └─► alice.connection.send_line() │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The queue is FIFO and each sender enqueues from its own single thread,
so lines from one sender still reach every recipient in order.

The queue is bounded. A recipient that falls outbound_queue_size lines
behind starts losing lines (best-effort delivery) instead of making the
server buffer without limit.

=============================================================================
"""

import logging
import queue
import threading
from typing import Optional

from ..core.connection import Connection


logger = logging.getLogger(__name__)

_STOP = object()


class Outbox:
    """
    Bounded FIFO of outgoing lines drained by one writer thread.

    Args:
        connection: The transport to write to.
        maxsize: Lines buffered before put() starts dropping.
    """

    def __init__(self, connection: Connection, maxsize: int = 256):
        self.connection = connection
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._closed = threading.Event()
        self.dropped = 0
        self._thread = threading.Thread(
            target=self._drain,
            name=f"Outbox-{connection.id}",
            daemon=True,
        )

    def start(self) -> "Outbox":
        self._thread.start()
        return self

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def is_closed(self) -> bool:
        return self._closed.is_set()

    def put(self, text: str) -> bool:
        """
        Queue one line without blocking.

        Returns:
            False if the outbox is closed or full (the line is dropped).
        """
        if self._closed.is_set():
            return False
        try:
            self._queue.put_nowait(text)
        except queue.Full:
            self.dropped += 1
            logger.warning(
                f"[{self.connection.id}] Outbox full ({self._queue.maxsize} lines), dropping line"
            )
            return False
        return True

    def _drain(self):
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            if not self.connection.send_line(item):
                # Peer is gone; the session's own read loop will notice
                # and tear the session down
                self._closed.set()
                break
        logger.debug(f"[{self.connection.id}] Outbox writer stopped")

    def close(self, timeout: Optional[float] = 1.0):
        """
        Stop accepting lines, let the writer flush what is queued, and
        wait up to timeout for it to finish. Idempotent.
        """
        if self._closed.is_set() and not self._thread.is_alive():
            return
        self._closed.set()

        if not self._thread.is_alive():
            return

        try:
            self._queue.put(_STOP, timeout=timeout)
        except queue.Full:
            # Writer is wedged on a dead peer; closing the connection
            # afterwards makes its sendall() fail and ends the thread
            pass

        self._thread.join(timeout)
