"""
=============================================================================
THREAD POOL
=============================================================================

Runs one connection per worker thread.

=============================================================================
WHY THREADS FOR A FILE SERVER?
=============================================================================

Serving a file is a chain of blocking calls: open(), read(), sendall().
Each of them releases the GIL while it waits on the kernel, so a worker
stuck on a slow disk or a slow client costs one thread and nothing else:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   Worker-0  ──read──send──read──send──read──send── done             │
    │   Worker-1  ──read──send─────────(slow client)─────────send── done  │
    │   Worker-2  ──open─(NFS stall)──read──send── done                   │
    │   Worker-3  ──read──send── done ──read──send── done                 │
    │                                                                      │
    │   No worker waits for another.                                      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
SIZING
=============================================================================

    min_workers    started up front, always running
    max_workers    long-lived workers; one more is added whenever
                   queued connections outnumber idle workers
    queue_size     connections accepted but not yet picked up

A connection holds its worker until the connection ends, and a stalled
download can hold it for the whole write timeout. Waiting in the queue
behind such downloads would let a few slow clients block everyone, so
once max_workers are all busy the pool starts OVERFLOW workers instead:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   queued > idle,  workers < max_workers  → long-lived worker        │
    │   queued > idle,  workers >= max_workers → overflow worker          │
    │                                                                      │
    │   overflow worker: same loop, but retires after one idle_timeout    │
    │   with nothing queued                                               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The number of threads therefore follows the number of open connections,
and max_workers only sets how many stay around when load drops. submit()
reports failure only if the queue itself is full, and the server
answers 503.

=============================================================================
SHUTDOWN
=============================================================================

    1. stop accepting tasks
    2. wait (up to a deadline) for the queue to drain AND busy workers
       to finish their current connection
    3. one poison pill (None) per worker
    4. join workers

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
    """Worker thread states, for monitoring."""

    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Task:
    """A deferred call: func(*args) on some worker, later."""

    func: Callable[..., Any]
    args: tuple = ()
    submitted_at: float = field(default_factory=time.monotonic)


class Worker(threading.Thread):
    """
    Worker thread that processes tasks from the queue.

        1. get() a task (blocking, idle_timeout at a time)
        2. None is a poison pill → exit
        3. run it; exceptions are logged, never kill the worker
        4. task_done(), back to 1

    `on_busy` runs right after the worker marks itself BUSY, so the pool
    can re-check for queued work nobody is free to take. An overflow
    worker is also given a `retire` callback: when a get() times out it
    asks the pool whether it may go, and exits if so.
    """

    def __init__(
        self,
        task_queue: "queue.Queue[Optional[Task]]",
        worker_id: int,
        idle_timeout: float = 1.0,
        on_busy: Optional[Callable[[], None]] = None,
        retire: Optional[Callable[["Worker"], bool]] = None,
    ):
        super().__init__(name=f"Worker-{worker_id}", daemon=True)
        self.task_queue = task_queue
        self.worker_id = worker_id
        self.idle_timeout = idle_timeout
        self.on_busy = on_busy
        self.retire = retire

        self.state = WorkerState.IDLE
        self._shutdown = threading.Event()

        self.tasks_completed = 0
        self.tasks_failed = 0

    @property
    def is_overflow(self) -> bool:
        return self.retire is not None

    def run(self):
        logger.debug("Worker %d started", self.worker_id)

        while not self._shutdown.is_set():
            try:
                task = self.task_queue.get(timeout=self.idle_timeout)
            except queue.Empty:
                if self.retire is not None and self.retire(self):
                    break
                continue

            try:
                if task is None:
                    break
                self._execute_task(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug("Worker %d stopped", self.worker_id)

    def _execute_task(self, task: Task):
        self.state = WorkerState.BUSY
        start_time = time.monotonic()

        try:
            if self.on_busy is not None:
                self.on_busy()
            task.func(*task.args)
            self.tasks_completed += 1
            logger.debug(
                "Worker %d completed task in %.3fs (queued %.3fs)",
                self.worker_id,
                time.monotonic() - start_time,
                start_time - task.submitted_at,
            )
        except Exception:
            # One connection's failure never takes the worker down
            logger.exception(
                "Worker %d task failed after %.3fs",
                self.worker_id, time.monotonic() - start_time,
            )
            self.tasks_failed += 1
        finally:
            self.state = WorkerState.IDLE

    def shutdown(self):
        """Signal the worker to stop after its current task."""
        self._shutdown.set()


class ThreadPool:
    """
    Thread pool for concurrent connection handling.

        pool = ThreadPool(min_workers=4, max_workers=32, queue_size=256)
        pool.start()
        if not pool.submit(handle_connection, conn, block=False):
            reject(conn)                     # queue full
        ...
        pool.shutdown(timeout=30)            # waits for in-flight work
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: int = 32,
        queue_size: int = 256,
        idle_timeout: float = 1.0,
    ):
        """
        Args:
            min_workers: Workers created at startup.
            max_workers: Long-lived workers kept under load; past this,
                         overflow workers come and go with demand.
            queue_size: Maximum queued tasks.
            idle_timeout: How often idle workers re-check for shutdown.
        """
        self.min_workers = min_workers
        self.max_workers = max_workers
        self.queue_size = queue_size
        self.idle_timeout = idle_timeout

        self._task_queue: "queue.Queue[Optional[Task]]" = queue.Queue(maxsize=queue_size)
        self._workers: list[Worker] = []
        self._lock = threading.Lock()  # Protects _workers

        self._started = False
        self._shutdown = False
        self._next_worker_id = 0
        self._retired_completed = 0
        self._retired_failed = 0

    def start(self):
        """Start the minimum number of workers. Idempotent."""
        if self._started:
            return

        logger.info("Starting thread pool with %d workers", self.min_workers)
        with self._lock:
            for _ in range(self.min_workers):
                self._add_worker()
        self._started = True

    def _add_worker(self, overflow: bool = False) -> Worker:
        """Start one more worker. Caller holds self._lock."""
        worker = Worker(
            task_queue=self._task_queue,
            worker_id=self._next_worker_id,
            idle_timeout=self.idle_timeout,
            on_busy=self._maybe_scale_up,
            retire=self._retire if overflow else None,
        )
        self._next_worker_id += 1
        self._workers.append(worker)
        worker.start()
        return worker

    def _retire(self, worker: Worker) -> bool:
        """
        Let an idle overflow worker exit, unless work is waiting.

        Runs under the same lock as _maybe_scale_up(), so a task is never
        queued on the strength of a worker that is already leaving.
        """
        with self._lock:
            if self._task_queue.qsize() or worker not in self._workers:
                return False
            worker.state = WorkerState.STOPPED
            self._workers.remove(worker)
            self._retired_completed += worker.tasks_completed
            self._retired_failed += worker.tasks_failed
        logger.debug("Overflow worker %d retired", worker.worker_id)
        return True

    def submit(
        self,
        func: Callable[..., Any],
        *args: Any,
        block: bool = True,
        queue_timeout: Optional[float] = None,
    ) -> bool:
        """
        Queue func(*args) for execution.

        Returns:
            True if accepted, False if the queue stayed full.

        Raises:
            RuntimeError: If the pool is not started or is shutting down.
        """
        if not self._started:
            raise RuntimeError("Thread pool not started")
        if self._shutdown:
            raise RuntimeError("Thread pool is shutting down")

        try:
            self._task_queue.put(Task(func=func, args=args), block=block, timeout=queue_timeout)
        except queue.Full:
            return False

        self._maybe_scale_up()
        return True

    def _maybe_scale_up(self):
        """Add a worker while queued tasks outnumber idle workers."""
        with self._lock:
            if not self._started:
                return
            idle = sum(1 for w in self._workers if w.state == WorkerState.IDLE)
            if self._task_queue.qsize() <= idle:
                return
            overflow = len(self._workers) >= self.max_workers
            logger.debug(
                "Scaling up: %d -> %d workers%s",
                len(self._workers), len(self._workers) + 1,
                " (overflow)" if overflow else "",
            )
            self._add_worker(overflow=overflow)

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Stop the pool.

        Args:
            wait: Let queued and in-flight tasks finish first.
            timeout: Upper bound on that wait, in seconds (None = forever).
        """
        if not self._started:
            return

        logger.info("Shutting down thread pool...")
        self._shutdown = True
        deadline = None if timeout is None else time.monotonic() + timeout

        if wait:
            # unfinished_tasks counts queued AND running tasks
            while self._task_queue.unfinished_tasks:
                if deadline is not None and time.monotonic() > deadline:
                    logger.warning(
                        "Shutdown timeout: %d tasks queued, %d still running",
                        self._task_queue.qsize(), self.busy_workers,
                    )
                    break
                time.sleep(0.05)

        with self._lock:
            workers = list(self._workers)
            self._workers.clear()
            self._started = False

        for worker in workers:
            worker.shutdown()
            try:
                self._task_queue.put_nowait(None)
            except queue.Full:
                # Worker exits via its shutdown flag on the next idle poll
                pass

        for worker in workers:
            worker.join(timeout=2.0)

        logger.info("Thread pool shutdown complete")

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def idle_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.IDLE)

    @property
    def stats(self) -> dict:
        """Worker and task counts, for monitoring."""
        return {
            "workers": {
                "total": len(self._workers),
                "overflow": sum(1 for w in self._workers if w.is_overflow),
                "busy": self.busy_workers,
                "idle": self.idle_workers,
            },
            "tasks": {
                "queued": self._task_queue.qsize(),
                "completed": self._retired_completed + sum(w.tasks_completed for w in self._workers),
                "failed": self._retired_failed + sum(w.tasks_failed for w in self._workers),
            },
        }

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown(wait=True)
        return False
