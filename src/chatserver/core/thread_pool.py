"""
=============================================================================
THREAD POOL IMPLEMENTATION
=============================================================================

A pool of worker threads pulling tasks from a shared queue. In the chat
server every task is one client session, and a session keeps its worker
for as long as the client stays connected.

=============================================================================
WHY THE CHAT POOL SIZES ITSELF DIFFERENTLY
=============================================================================

A request/response task is short: a busy pool can queue it and a worker will be
free in milliseconds. A chat session can last hours. If a session were
queued behind busy workers it would simply never be served.

So the pool keeps one rule:

    workers >= sessions in flight

Every submit() either finds (or creates) a worker for the new session,
or refuses it outright when max_workers sessions are already running.
A refused client gets a "server is full" line instead of a silent hang.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        Thread Pool                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   submit(serve, conn)                                                │
    │       │                                                              │
    │       ├── in_flight == max_workers?  → return False (refuse)         │
    │       ├── in_flight += 1                                             │
    │       ├── workers < in_flight?       → start another Worker          │
    │       └── queue.put(task)                                            │
    │                                                                      │
    │   ┌──────────┐ ┌──────────┐ ┌──────────┐                             │
    │   │ Worker 0 │ │ Worker 1 │ │ Worker 2 │   each: get → run → done    │
    │   │ (alice)  │ │ (bob)    │ │ (idle)   │                             │
    │   └──────────┘ └──────────┘ └──────────┘                             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Workers are stopped with the "poison pill" pattern: shutdown() puts one
None per worker in the queue, and a worker that gets None exits.

=============================================================================
"""

import threading
import queue
import time
import logging
from typing import Callable, Optional, Any
from dataclasses import dataclass, field
from enum import Enum


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    """Worker thread states, used for stats."""
    IDLE = "idle"        # Waiting for task
    BUSY = "busy"        # Executing task
    STOPPED = "stopped"  # Thread exited


@dataclass
class Task:
    """
    A deferred function call: "call func(*args, **kwargs) on a worker".

    Attributes:
        func: The function to execute.
        args: Positional arguments for the function.
        kwargs: Keyword arguments for the function.
        submitted_at: Time the task was submitted (to log queue wait).
    """
    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    submitted_at: float = field(default_factory=time.time)


class Worker(threading.Thread):
    """
    Worker thread that processes tasks from the queue.

    ┌─────────────────────────────────────────────────────────────────────┐
    │   1. Wait for task from queue (blocking, wakes every idle_timeout)  │
    │   2. None? → exit (poison pill)                                      │
    │   3. Run task, log any exception (never crash the worker)           │
    │   4. Tell the pool the task is done, go back to 1                   │
    └─────────────────────────────────────────────────────────────────────┘
    """

    def __init__(
        self,
        task_queue: queue.Queue,
        worker_id: int,
        on_task_done: Callable[[], None],
        idle_timeout: float = 60.0,
    ):
        # daemon=True: a client stuck in a blocking read must not keep
        # the process alive after shutdown
        super().__init__(name=f"Worker-{worker_id}", daemon=True)
        self.task_queue = task_queue
        self.worker_id = worker_id
        self.idle_timeout = idle_timeout
        self._on_task_done = on_task_done

        self.state = WorkerState.IDLE
        self._shutdown = threading.Event()

        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        while not self._shutdown.is_set():
            try:
                task = self.task_queue.get(timeout=self.idle_timeout)
            except queue.Empty:
                continue

            if task is None:
                self.task_queue.task_done()
                break

            try:
                self._execute_task(task)
            finally:
                self.task_queue.task_done()
                self._on_task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute_task(self, task: Task):
        self.state = WorkerState.BUSY
        start_time = time.time()

        waited = start_time - task.submitted_at
        if waited > 1.0:
            logger.warning(f"Worker {self.worker_id} picked up a task after {waited:.2f}s in queue")

        try:
            task.func(*task.args, **task.kwargs)
            elapsed = time.time() - start_time
            logger.debug(f"Worker {self.worker_id} finished task after {elapsed:.3f}s")
            self.tasks_completed += 1
        except Exception as e:
            elapsed = time.time() - start_time
            logger.exception(f"Worker {self.worker_id} task failed after {elapsed:.3f}s: {e}")
            self.tasks_failed += 1
        finally:
            self.state = WorkerState.IDLE

    def shutdown(self):
        """Signal the worker to stop."""
        self._shutdown.set()


class ThreadPool:
    """
    Thread pool sized for long-lived tasks.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      ThreadPool Usage                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   pool = ThreadPool(min_workers=4, max_workers=64)                  │
    │   pool.start()                                                       │
    │                                                                      │
    │   if not pool.submit(handler.serve, args=(session,)):               │
    │       session.write_line("[Server] Server is full, ...")            │
    │                                                                      │
    │   pool.stats          # {"workers": {...}, "tasks": {...}}          │
    │   pool.shutdown(timeout=5.0)                                         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: int = 64,
        idle_timeout: float = 1.0,
    ):
        """
        Args:
            min_workers: Worker threads created at startup.
            max_workers: Maximum concurrent tasks (and worker threads).
            idle_timeout: Seconds an idle worker waits before re-checking
                          its shutdown flag.
        """
        if max_workers < min_workers:
            raise ValueError("max_workers must be >= min_workers")

        self.min_workers = min_workers
        self.max_workers = max_workers
        self.idle_timeout = idle_timeout

        # Unbounded: the in-flight counter already caps what goes in
        self._task_queue: queue.Queue[Optional[Task]] = queue.Queue()

        self._workers: list[Worker] = []
        self._lock = threading.Lock()  # Protects _workers and _in_flight
        self._in_flight = 0
        self._rejected = 0
        self._started = False
        self._shutdown = False
        self._next_worker_id = 0

    def start(self):
        """Start the pool with min_workers threads. Idempotent."""
        if self._started:
            return

        logger.info(f"Starting thread pool with {self.min_workers} workers (max {self.max_workers})")

        with self._lock:
            for _ in range(self.min_workers):
                self._add_worker()

        self._shutdown = False
        self._started = True

    def _add_worker(self) -> Worker:
        """Start one more worker. Caller must hold self._lock."""
        if len(self._workers) >= self.max_workers:
            raise RuntimeError("Maximum workers reached")

        worker = Worker(
            task_queue=self._task_queue,
            worker_id=self._next_worker_id,
            on_task_done=self._task_finished,
            idle_timeout=self.idle_timeout,
        )
        self._next_worker_id += 1
        self._workers.append(worker)
        worker.start()
        return worker

    def _task_finished(self):
        with self._lock:
            self._in_flight -= 1

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        kwargs: Optional[dict] = None,
    ) -> bool:
        """
        Submit a task for execution.

        Returns:
            True if a worker will run the task, False if max_workers tasks
            are already in flight.

        Raises:
            RuntimeError: If the pool is not started or is shutting down.
        """
        if not self._started:
            raise RuntimeError("Thread pool not started")

        if self._shutdown:
            raise RuntimeError("Thread pool is shutting down")

        with self._lock:
            if self._in_flight >= self.max_workers:
                self._rejected += 1
                return False

            self._in_flight += 1

            # Keep at least one worker per in-flight task, so a task in the
            # queue always has an idle worker about to pick it up
            if len(self._workers) < self._in_flight:
                logger.debug(
                    f"Scaling up: {len(self._workers)} -> {len(self._workers) + 1} workers"
                )
                self._add_worker()

        self._task_queue.put(Task(func=func, args=args, kwargs=kwargs or {}))
        return True

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Shutdown the thread pool.

        1. Refuse new tasks
        2. If wait=True: wait (up to timeout) for in-flight tasks to finish
        3. Send one poison pill per worker and join them

        Workers still busy after the deadline are daemon threads and are
        abandoned.
        """
        if not self._started:
            return

        logger.info("Shutting down thread pool...")
        self._shutdown = True

        if wait:
            deadline = None if timeout is None else time.time() + timeout
            while self.in_flight > 0:
                if deadline is not None and time.time() > deadline:
                    logger.warning(f"Shutdown timeout, abandoning {self.in_flight} running tasks")
                    break
                time.sleep(0.05)

        with self._lock:
            workers = list(self._workers)

        for _ in workers:
            self._task_queue.put(None)

        for worker in workers:
            worker.shutdown()
            worker.join(timeout=0.5)

        with self._lock:
            self._workers.clear()
        self._started = False

        logger.info("Thread pool shutdown complete")

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def in_flight(self) -> int:
        with self._lock:
            return self._in_flight

    @property
    def active_workers(self) -> int:
        return sum(1 for w in self._workers if w.state != WorkerState.STOPPED)

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def idle_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.IDLE)

    @property
    def stats(self) -> dict:
        """Worker and task counts for logs and the server's stats."""
        with self._lock:
            workers = list(self._workers)
            in_flight = self._in_flight
            rejected = self._rejected

        return {
            "workers": {
                "total": len(workers),
                "busy": sum(1 for w in workers if w.state == WorkerState.BUSY),
                "idle": sum(1 for w in workers if w.state == WorkerState.IDLE),
            },
            "tasks": {
                "in_flight": in_flight,
                "completed": sum(w.tasks_completed for w in workers),
                "failed": sum(w.tasks_failed for w in workers),
                "rejected": rejected,
            },
        }
