from __future__ import annotations

import heapq
import itertools
import logging
import os
import threading
import time
from enum import Enum
from typing import Callable, List, Optional, Tuple

_logger = logging.getLogger("monitor_logging.scheduler")

FlushCallable = Callable[[], None]


class SchedulerClosedError(RuntimeError):
  """Raised when work is submitted to a scheduler that has been shut down."""


class FlushTaskState(str, Enum):
  SCHEDULED = "scheduled"
  RUNNING = "running"
  DONE = "done"
  CANCELLED = "cancelled"


class FlushTask:
  """
  Handle for one flush submitted to a FlushScheduler.
  """

  def __init__(self, due_at: float) -> None:
    self.due_at = due_at
    self.exception: Optional[BaseException] = None
    self._state = FlushTaskState.SCHEDULED
    self._finished = threading.Event()

  @property
  def state(self) -> FlushTaskState:
    return self._state

  def done(self) -> bool:
    return self._finished.is_set()

  def wait(self, timeout: Optional[float] = None) -> bool:
    """Block until the task has finished or been cancelled."""
    return self._finished.wait(timeout)

  def _set_running(self) -> None:
    self._state = FlushTaskState.RUNNING

  def _set_done(self) -> None:
    self._state = FlushTaskState.DONE
    self._finished.set()

  def _set_cancelled(self) -> None:
    self._state = FlushTaskState.CANCELLED
    self._finished.set()

  def __repr__(self) -> str:
    return f"FlushTask(state={self._state.value}, due_at={self.due_at:.3f})"


_Entry = Tuple[float, int, FlushTask, FlushCallable]


class FlushScheduler:
  """
  Single-worker executor for immediate and delayed flushes.

  All work runs on one background thread, so two flushes never execute
  concurrently. Tasks run in due-time order, ties broken by submission
  order. Pending delayed tasks are not deduplicated.

  Like the client queue it grew out of, the scheduler is fork aware: the
  worker thread is started lazily and restarted in a child process.
  """

  def __init__(
    self,
    name: str = "monitor-logging-flush",
    join_timeout: float = 5.0,
    clock: Callable[[], float] = time.monotonic,
  ) -> None:
    self._name = name
    self._join_timeout = join_timeout
    self._clock = clock
    self._cond = threading.Condition()
    self._heap: List[_Entry] = []
    self._counter = itertools.count()
    self._thread: Optional[threading.Thread] = None
    self._closed = False
    self._pid = os.getpid()

  @property
  def closed(self) -> bool:
    return self._closed

  @property
  def pending(self) -> int:
    """Number of submitted tasks that have not started yet."""
    with self._cond:
      return len(self._heap)

  def schedule_flush(self, flush: FlushCallable, delay: float) -> FlushTask:
    """Run ``flush`` on the worker after ``delay`` seconds."""
    if delay < 0:
      raise ValueError(f"delay must be >= 0, got {delay}")
    return self._submit(flush, delay)

  def flush_now(self, flush: FlushCallable) -> FlushTask:
    """Run ``flush`` on the worker as soon as it is free."""
    return self._submit(flush, 0.0)

  def shutdown(self, wait: bool = True, drain: bool = True) -> None:
    """
    Stop accepting work and release the worker thread.

    With ``drain`` every pending task, delayed ones included, runs right
    away before the worker exits. Without it pending tasks are cancelled.
    Safe to call more than once.
    """
    with self._cond:
      self._closed = True
      if not drain:
        for _, _, task, _ in self._heap:
          task._set_cancelled()
        self._heap.clear()
      elif self._heap:
        self._ensure_worker()
      self._cond.notify_all()
      thread = self._thread

    if (
      wait
      and thread is not None
      and thread.is_alive()
      and thread is not threading.current_thread()
    ):
      thread.join(timeout=self._join_timeout)
      if thread.is_alive():
        _logger.warning(
          "Flush worker %s did not stop within %.1fs", self._name, self._join_timeout
        )

  def close(self) -> None:
    self.shutdown(wait=True, drain=True)

  def __enter__(self) -> "FlushScheduler":
    return self

  def __exit__(self, *exc_info) -> None:
    self.close()

  def _submit(self, flush: FlushCallable, delay: float) -> FlushTask:
    with self._cond:
      if self._closed:
        raise SchedulerClosedError(f"Flush scheduler {self._name} is shut down")
      task = FlushTask(due_at=self._clock() + delay)
      heapq.heappush(self._heap, (task.due_at, next(self._counter), task, flush))
      self._ensure_worker()
      self._cond.notify()
    return task

  def _ensure_worker(self) -> None:
    # Caller holds self._cond.
    current_pid = os.getpid()
    if self._pid != current_pid:
      # Forked: the parent's worker thread does not exist here.
      self._pid = current_pid
      self._thread = None

    if self._thread is not None and self._thread.is_alive():
      return

    self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
    self._thread.start()

  def _next_task(self) -> Optional[Tuple[FlushTask, FlushCallable]]:
    with self._cond:
      while True:
        if self._heap:
          due_at = self._heap[0][0]
          remaining = due_at - self._clock()
          if remaining <= 0 or self._closed:
            _, _, task, flush = heapq.heappop(self._heap)
            task._set_running()
            return task, flush
          self._cond.wait(timeout=remaining)
        elif self._closed:
          return None
        else:
          self._cond.wait()

  def _run(self) -> None:
    while True:
      entry = self._next_task()
      if entry is None:
        return
      task, flush = entry
      try:
        flush()
      except Exception as exc:
        task.exception = exc
        _logger.exception("Monitor log flush task failed")
      finally:
        task._set_done()
