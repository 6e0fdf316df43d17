"""
Event Dispatcher
================

Thread pool that runs listener callbacks off the network read loop.

This module provides:
    - Dispatcher: fixed-size worker pool pulling from one shared queue
    - SerialLane: per-session ordering on top of a shared Dispatcher
    - DispatcherProvider: owner of the process-wide Dispatcher,
      reference-counted by active sessions
    - DispatcherLease: one session's release-once hold on the Dispatcher

Design Rules:
    - Slow listeners never block the consumer's socket read
    - Tasks from one session run in submission order, whatever the pool size
    - A failing task is logged; it never kills a worker
    - Shutdown stops intake, drains queued tasks, then joins workers

Example:
    provider = DispatcherProvider(num_threads=1)
    dispatcher = provider.acquire()
    lane = SerialLane(dispatcher)
    lane.submit(lambda: print("runs on a worker"))

    provider.release()
    provider.shutdown_if_idle()
"""

import itertools
import logging
import queue
import threading
from collections import deque
from typing import Callable, Deque, List, Optional


logger = logging.getLogger(__name__)

Task = Callable[[], None]

_STOP = object()
_pool_ids = itertools.count(1)


class Dispatcher:
    """
    Fixed-size worker pool.

    Attributes:
        num_threads: Number of worker threads
        name: Prefix of worker thread names
    """

    def __init__(
        self,
        num_threads: int = 1,
        name: str = "chirpstream-dispatcher",
        daemon: bool = True,
    ) -> None:
        """
        Initialize and start the worker threads.

        Args:
            num_threads: Worker count. Must be >= 1.
            name: Thread name prefix
            daemon: Run workers as daemon threads
        """
        if num_threads < 1:
            raise ValueError("num_threads must be >= 1")

        self.num_threads = num_threads
        self.name = f"{name}-{next(_pool_ids)}"
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._lock = threading.Lock()
        self._accepting = True
        self._completed: int = 0
        self._failed: int = 0

        self._workers: List[threading.Thread] = [
            threading.Thread(
                target=self._work,
                name=f"{self.name}[{index}]",
                daemon=daemon,
            )
            for index in range(num_threads)
        ]
        for worker in self._workers:
            worker.start()
        logger.info(f"Dispatcher {self.name} started with {num_threads} thread(s)")

    @property
    def active(self) -> bool:
        """Whether the dispatcher still accepts tasks."""
        return self._accepting

    @property
    def pending(self) -> int:
        """Tasks queued but not yet picked up."""
        return self._queue.qsize()

    def submit(self, task: Task) -> None:
        """
        Queue a task for a worker.

        Raises:
            RuntimeError: the dispatcher has been shut down
        """
        with self._lock:
            if not self._accepting:
                raise RuntimeError(f"Dispatcher {self.name} is shut down")
            self._queue.put(task)

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        """
        Stop accepting tasks and let queued tasks drain.

        Args:
            wait: Join the workers after queueing the stop markers. Ignored
                when called from one of this dispatcher's own workers.
            timeout: Per-worker join timeout in seconds
        """
        with self._lock:
            if not self._accepting:
                return
            self._accepting = False
            # Stop markers queue behind pending work, so it drains first
            for _ in self._workers:
                self._queue.put(_STOP)

        logger.info(f"Dispatcher {self.name} shutting down")
        if wait:
            self.join(timeout)

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the workers to exit (no-op from a worker thread)."""
        if threading.current_thread() in self._workers:
            return
        for worker in self._workers:
            worker.join(timeout)

    def metrics(self) -> dict:
        """Counters for observability."""
        with self._lock:
            completed, failed = self._completed, self._failed
        return {
            "name": self.name,
            "num_threads": self.num_threads,
            "pending": self.pending,
            "completed": completed,
            "failed": failed,
            "active": self.active,
        }

    def _work(self) -> None:
        while True:
            task = self._queue.get()
            if task is _STOP:
                break
            try:
                task()
            except Exception:
                logger.exception("Dispatched task failed")
                with self._lock:
                    self._failed += 1
            else:
                with self._lock:
                    self._completed += 1
        logger.debug(f"{threading.current_thread().name} exiting")


class SerialLane:
    """
    Runs one session's tasks in order on a shared Dispatcher.

    At most one drain task per lane is queued on the dispatcher at any
    time, so tasks submitted through the same lane never run concurrently
    and never overtake each other, even with several worker threads.
    """

    def __init__(self, dispatcher: Dispatcher) -> None:
        self._dispatcher = dispatcher
        self._pending: Deque[Task] = deque()
        self._lock = threading.Lock()
        self._scheduled = False

    @property
    def pending(self) -> int:
        return len(self._pending)

    def submit(self, task: Task) -> None:
        """
        Queue a task behind everything previously submitted to this lane.

        Raises:
            RuntimeError: the underlying dispatcher has been shut down
        """
        with self._lock:
            self._pending.append(task)
            if self._scheduled:
                return
            self._scheduled = True

        try:
            self._dispatcher.submit(self._drain)
        except RuntimeError:
            with self._lock:
                self._pending.clear()
                self._scheduled = False
            raise

    def _drain(self) -> None:
        while True:
            with self._lock:
                if not self._pending:
                    self._scheduled = False
                    return
                task = self._pending.popleft()
            try:
                task()
            except Exception:
                logger.exception("Listener task failed")


class DispatcherLease:
    """
    One session's hold on the shared dispatcher.

    release() returns the hold to the provider at most once, so the
    session closing itself and the owner cleaning it up can both call it.
    """

    def __init__(self, provider: "DispatcherProvider", dispatcher: Dispatcher) -> None:
        self.dispatcher = dispatcher
        self._provider = provider
        self._lock = threading.Lock()
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> bool:
        """
        Unregister the session from the provider.

        Returns:
            True on the first call, False afterwards
        """
        with self._lock:
            if self._released:
                return False
            self._released = True
        self._provider.release()
        return True


class DispatcherProvider:
    """
    Owns the Dispatcher shared by every stream in the process.

    The dispatcher is created on the first acquire() and counted per
    active session. shutdown_if_idle() tears it down only when no
    session holds it; the check and the teardown happen under one lock.
    A later acquire() builds a fresh dispatcher.

    Attributes:
        num_threads: Pool size used when the dispatcher is (re)created
    """

    def __init__(self, num_threads: int = 1, daemon: bool = True) -> None:
        self.num_threads = num_threads
        self.daemon = daemon
        self._lock = threading.Lock()
        self._dispatcher: Optional[Dispatcher] = None
        self._active_sessions: int = 0

    @property
    def active_sessions(self) -> int:
        return self._active_sessions

    @property
    def dispatcher(self) -> Optional[Dispatcher]:
        """Current dispatcher, None when torn down or never created."""
        return self._dispatcher

    def acquire(self, num_threads: Optional[int] = None) -> Dispatcher:
        """
        Register an active session and return the shared dispatcher.

        Args:
            num_threads: Pool size if the dispatcher has to be created;
                ignored while one is running
        """
        with self._lock:
            if self._dispatcher is None:
                self._dispatcher = Dispatcher(
                    num_threads=num_threads or self.num_threads,
                    daemon=self.daemon,
                )
            self._active_sessions += 1
            return self._dispatcher

    def lease(self, num_threads: Optional[int] = None) -> DispatcherLease:
        """Acquire the dispatcher wrapped in a release-once lease."""
        return DispatcherLease(self, self.acquire(num_threads))

    def release(self) -> None:
        """Unregister an active session. The dispatcher stays up."""
        with self._lock:
            if self._active_sessions > 0:
                self._active_sessions -= 1

    def shutdown_if_idle(self, wait: bool = True) -> bool:
        """
        Tear the dispatcher down when no session is active.

        Returns:
            True if a dispatcher was shut down
        """
        with self._lock:
            if self._active_sessions > 0 or self._dispatcher is None:
                return False
            dispatcher = self._dispatcher
            self._dispatcher = None
            dispatcher.shutdown(wait=False)
        # Join outside the lock: a draining listener may start a new stream
        if wait:
            dispatcher.join()
        return True


# Process-wide provider handed to StreamClient instances by default
default_provider = DispatcherProvider()
