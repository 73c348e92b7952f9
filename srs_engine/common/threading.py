"""
Concurrency Helpers for the Scheduling Engine

This module provides the two concurrency primitives the engine relies on:
1. Per-key locking so that updates to one (learner, item) pair are
   serialized while unrelated pairs proceed in parallel
2. A background executor for offloading heavy work (curve analysis,
   advisory calls) with timeout management and metrics collection
"""

import time
import threading
import concurrent.futures
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Iterator, List, Optional, TypeVar

# Type definitions
R = TypeVar('R')

# Configure logging
logger = logging.getLogger(__name__)


class KeyedLock:
    """
    A registry of reentrant locks, one per key.

    Locks are reference counted and dropped once no thread holds or waits
    on them, so the registry does not grow with the number of keys ever seen.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.RLock] = {}
        self._refs: Dict[Hashable, int] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """
        Hold the lock for ``key`` for the duration of the block.

        Args:
            key: Any hashable key, typically ``(learner_id, item_id)``
        """
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            self._refs[key] = self._refs.get(key, 0) + 1

        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._refs[key] -= 1
                if self._refs[key] == 0:
                    del self._refs[key]
                    del self._locks[key]

    def __len__(self) -> int:
        """Number of keys currently held or awaited"""
        with self._guard:
            return len(self._locks)


@dataclass
class TaskMetrics:
    """Metrics collected for each task execution"""
    task_id: str
    start_time: float
    end_time: float = 0
    success: bool = False
    error: Optional[Exception] = None

    @property
    def duration(self) -> float:
        """Calculate task execution duration in seconds"""
        if self.end_time > 0:
            return self.end_time - self.start_time
        return 0


class BackgroundExecutor:
    """
    Thin wrapper around ``ThreadPoolExecutor`` with timeouts and metrics.

    Features:
    - Fire-and-forget submission returning a Future
    - Blocking calls bounded by a timeout
    - Recent task metrics
    """

    def __init__(self, max_workers: int = 2, thread_name_prefix: str = "srs-worker"):
        """
        Initialize the executor.

        Args:
            max_workers: Maximum number of worker threads
            thread_name_prefix: Prefix for worker thread names
        """
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix=thread_name_prefix
        )
        self._max_workers = max_workers
        self._lock = threading.RLock()
        self._metrics_history: List[TaskMetrics] = []
        self._task_counter = 0
        self._shutdown = False
        logger.debug(f"BackgroundExecutor initialized with {max_workers} workers")

    def submit(self, func: Callable[..., R], *args, **kwargs) -> concurrent.futures.Future:
        """
        Submit a task to the pool.

        Args:
            func: The function to execute
            *args: Positional arguments for the function
            **kwargs: Keyword arguments for the function

        Returns:
            Future object for the submitted task

        Raises:
            RuntimeError: If the executor is shutting down
        """
        with self._lock:
            if self._shutdown:
                raise RuntimeError("BackgroundExecutor is shutting down")
            self._task_counter += 1
            task_id = f"{getattr(func, '__name__', 'task')}-{self._task_counter}"

        return self._executor.submit(self._task_wrapper, task_id, func, args, kwargs)

    def call_with_timeout(
        self,
        func: Callable[..., R],
        *args,
        timeout: Optional[float] = None,
        **kwargs
    ) -> R:
        """
        Run a function in the pool and wait for its result.

        The worker is not interrupted on timeout; its eventual result is
        discarded.

        Args:
            func: The function to execute
            *args: Positional arguments for the function
            timeout: Maximum time to wait in seconds
            **kwargs: Keyword arguments for the function

        Returns:
            The result of the function

        Raises:
            concurrent.futures.TimeoutError: If the call exceeds its timeout
            Exception: Any exception raised by the function
        """
        future = self.submit(func, *args, **kwargs)
        try:
            return future.result(timeout=timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            logger.warning(f"{getattr(func, '__name__', 'task')} timed out after {timeout} seconds")
            raise

    def _task_wrapper(self, task_id: str, func: Callable[..., R], args, kwargs) -> R:
        metrics = TaskMetrics(task_id=task_id, start_time=time.time())
        try:
            result = func(*args, **kwargs)
            metrics.success = True
            return result
        except Exception as e:
            metrics.error = e
            logger.error(f"Error executing task {task_id}: {e}")
            raise
        finally:
            metrics.end_time = time.time()
            with self._lock:
                self._metrics_history.append(metrics)
                if len(self._metrics_history) > 1000:
                    self._metrics_history = self._metrics_history[-1000:]

    def shutdown(self, wait: bool = True):
        """
        Shut down the executor.

        Args:
            wait: Whether to wait for all pending tasks to complete
        """
        with self._lock:
            if self._shutdown:
                return
            self._shutdown = True
        logger.debug("Shutting down BackgroundExecutor")
        self._executor.shutdown(wait=wait)

    def get_metrics(self) -> Dict[str, Any]:
        """
        Get current metrics for the executor.

        Returns:
            Dictionary of metrics
        """
        with self._lock:
            completed_tasks = len(self._metrics_history)
            successful_tasks = sum(1 for m in self._metrics_history if m.success)

            if completed_tasks > 0:
                success_rate = successful_tasks / completed_tasks
                avg_duration = sum(m.duration for m in self._metrics_history) / completed_tasks
            else:
                success_rate = 1.0
                avg_duration = 0.0

            return {
                "workers": self._max_workers,
                "submitted_tasks": self._task_counter,
                "completed_tasks": completed_tasks,
                "success_rate": success_rate,
                "avg_duration": avg_duration
            }
