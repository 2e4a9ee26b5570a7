"""
=============================================================================
THREAD POOL
=============================================================================

Worker threads that run Sessions. The acceptor never does I/O on a client
socket itself; it only queues the Session and goes back to accept().

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   accept() ──► Session ──► ┌─────────────────┐                       │
    │   accept() ──► Session ──► │   task queue    │ ──► Worker-0  run()   │
    │   accept() ──► Session ──► │  (bounded, 100) │ ──► Worker-1  run()   │
    │                            └─────────────────┘ ──► Worker-2  run()   │
    │                                   │            ──► Worker-3  run()   │
    │                                   ▼                                   │
    │                          queue full? the acceptor                    │
    │                          closes the connection                       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Workers start at min_workers and grow toward max_workers when every worker
is busy and sessions are waiting.

=============================================================================
INTERVIEW QUESTIONS
=============================================================================

Q: "Why a bounded queue?"
A: "An unbounded queue turns overload into unbounded memory growth and
   unbounded latency. Bounding it makes overload visible at accept time,
   where the cheapest response is to drop the connection."

Q: "How do workers know to exit?"
A: "Poison pills: shutdown() puts one None per worker on the queue. A
   worker that takes None leaves its loop. Tasks queued before the pills
   are still run first, since the queue is FIFO."

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
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Task:
    """
    A deferred call: "run func(*args) later".

    Attributes:
        func: The function to execute (usually Session.run).
        args: Positional arguments for the function.
        submitted_at: Time the task was queued (for wait-time logging).
    """
    func: Callable[..., Any]
    args: tuple = ()
    submitted_at: float = field(default_factory=time.time)


class Worker(threading.Thread):
    """
    Worker thread that runs tasks from the shared queue until it receives
    a poison pill (None).
    """

    def __init__(self, task_queue: queue.Queue, worker_id: int):
        super().__init__(name=f"Worker-{worker_id}", daemon=True)

        self.task_queue = task_queue
        self.worker_id = worker_id
        self.state = WorkerState.IDLE

        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        while True:
            task = self.task_queue.get()
            try:
                if task is None:
                    break
                self._execute_task(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute_task(self, task: Task):
        """Run one task. A failing task is logged and never kills the worker."""
        self.state = WorkerState.BUSY
        start_time = time.time()
        waited = start_time - task.submitted_at

        try:
            task.func(*task.args)
            self.tasks_completed += 1
            logger.debug(
                f"Worker {self.worker_id} completed task in "
                f"{time.time() - start_time:.3f}s (queued {waited:.3f}s)"
            )
        except Exception as e:
            self.tasks_failed += 1
            logger.exception(f"Worker {self.worker_id} task failed: {e}")
        finally:
            self.state = WorkerState.IDLE


class ThreadPool:
    """
    Bounded pool of worker threads.

        pool = ThreadPool(min_workers=4, max_workers=16, queue_size=100)
        pool.start()
        if not pool.submit(session.run):
            connection.close()      # overloaded
        pool.shutdown(timeout=5.0)
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: int = 16,
        queue_size: int = 100,
    ):
        self.min_workers = min_workers
        self.max_workers = max_workers
        self.max_queue_size = queue_size

        self._task_queue: "queue.Queue[Optional[Task]]" = queue.Queue(maxsize=queue_size)
        self._workers: list[Worker] = []
        self._lock = threading.Lock()  # Protects _workers
        self._started = False
        self._shutdown = False
        self._next_worker_id = 0

    def start(self):
        """Start min_workers worker threads."""
        if self._started:
            return

        logger.info(f"Starting thread pool with {self.min_workers} workers")
        with self._lock:
            for _ in range(self.min_workers):
                self._add_worker()
        self._started = True

    def _add_worker(self) -> Worker:
        """Start one more worker. Caller holds self._lock."""
        worker = Worker(self._task_queue, self._next_worker_id)
        self._next_worker_id += 1
        self._workers.append(worker)
        worker.start()
        return worker

    def submit(self, func: Callable[..., Any], *args: Any) -> bool:
        """
        Queue func(*args) without blocking.

        Returns:
            True if queued, False if the queue is full.

        Raises:
            RuntimeError: If the pool is not started or is shutting down.
        """
        if not self._started:
            raise RuntimeError("Thread pool not started")
        if self._shutdown:
            raise RuntimeError("Thread pool is shutting down")

        try:
            self._task_queue.put(Task(func=func, args=args), block=False)
        except queue.Full:
            return False

        self._maybe_scale_up()
        return True

    def _maybe_scale_up(self):
        """Add a worker if all are busy and work is waiting."""
        with self._lock:
            if len(self._workers) >= self.max_workers:
                return
            busy = sum(1 for w in self._workers if w.state == WorkerState.BUSY)
            if busy == len(self._workers) and self._task_queue.qsize() > 0:
                logger.debug(
                    f"Scaling up: {len(self._workers)} -> {len(self._workers) + 1} workers"
                )
                self._add_worker()

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Stop the pool.

        Args:
            wait: Let queued tasks run before the workers exit.
            timeout: Upper bound on the whole wait, in seconds. Workers are
                     daemon threads, so any still busy after it cannot keep
                     the process alive.
        """
        if not self._started:
            return

        logger.info("Shutting down thread pool...")
        logger.debug(f"Pool stats at shutdown: {self.stats}")
        self._shutdown = True
        deadline = None if timeout is None else time.time() + timeout

        if not wait:
            # Drop whatever has not started yet
            try:
                while True:
                    self._task_queue.get_nowait()
                    self._task_queue.task_done()
            except queue.Empty:
                pass

        with self._lock:
            workers = list(self._workers)

        for _ in workers:
            remaining = None if deadline is None else max(0.0, deadline - time.time())
            try:
                self._task_queue.put(None, timeout=remaining)
            except queue.Full:
                logger.warning("Shutdown timeout while queueing stop signals")
                break

        for worker in workers:
            remaining = None if deadline is None else max(0.0, deadline - time.time())
            worker.join(timeout=remaining)
            if worker.is_alive():
                logger.warning(f"Worker {worker.worker_id} still busy at shutdown")

        with self._lock:
            self._workers.clear()
        self._started = False

        logger.info("Thread pool shutdown complete")

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def worker_count(self) -> int:
        return len(self._workers)

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def queued(self) -> int:
        return self._task_queue.qsize()

    @property
    def stats(self) -> dict:
        """Worker and task counts, for debug logging."""
        return {
            "workers": {
                "total": len(self._workers),
                "busy": self.busy_workers,
            },
            "tasks": {
                "queued": self.queued,
                "completed": sum(w.tasks_completed for w in self._workers),
                "failed": sum(w.tasks_failed for w in self._workers),
            },
        }
