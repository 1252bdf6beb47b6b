from __future__ import annotations

import functools
import logging
import threading
from enum import Enum
from typing import Callable, Dict, Optional

from .batching import build_post_request_from_logs, build_requests
from .config import MonitorConfig
from .models import MonitorLog
from .queue import LogQueue
from .scheduler import FlushScheduler, FlushTask, SchedulerClosedError
from .transport import BatchTransport

_logger = logging.getLogger("monitor_logging.manager")

IdentityProvider = Callable[[], Optional[str]]


class ManagerState(str, Enum):
  IDLE = "idle"
  ACCUMULATING = "accumulating"
  FLUSHING = "flushing"


class LoggingManager:
  """
  Accumulates monitoring logs and flushes them in batches.

  Logs are flushed right away once the queue reaches its flush threshold,
  otherwise a single delayed flush is scheduled so that buffered logs
  never wait longer than ``flush_interval_seconds``. Every flush runs on
  the scheduler's worker thread; ``add_log`` only enqueues and submits.

  An immediate flush does not cancel an outstanding delayed one. Both are
  safe: a flush over an empty queue sends nothing.
  """

  def __init__(
    self,
    queue: LogQueue,
    transport: BatchTransport,
    scheduler: Optional[FlushScheduler] = None,
    identity_provider: Optional[IdentityProvider] = None,
    config: Optional[MonitorConfig] = None,
  ) -> None:
    self._config = config or MonitorConfig()
    self._queue = queue
    self._transport = transport
    self._scheduler = scheduler or FlushScheduler()
    self._identity_provider: IdentityProvider = identity_provider or (
      lambda: self._config.application_id
    )
    self._request_factory = functools.partial(
      build_post_request_from_logs, package_name=self._config.package_name
    )

    self._lock = threading.Lock()
    self._flush_timer: Optional[FlushTask] = None
    self._flushing = False
    self._stats: Dict[str, int] = {
      "flushes": 0,
      "requests_sent": 0,
      "logs_sent": 0,
      "transport_errors": 0,
    }

  @property
  def state(self) -> ManagerState:
    with self._lock:
      if self._flushing:
        return ManagerState.FLUSHING
      if self._flush_timer is not None:
        return ManagerState.ACCUMULATING
      return ManagerState.IDLE

  @property
  def pending_count(self) -> int:
    return len(self._queue)

  @property
  def stats(self) -> Dict[str, int]:
    with self._lock:
      return {**self._stats, "dropped": self._queue.dropped}

  def add_log(self, log: MonitorLog) -> None:
    """
    Record a log. Never blocks on network I/O.
    """
    if not self._config.enabled:
      return

    if self._queue.add(log):
      self.flush_and_wait()
      return

    with self._lock:
      if self._flush_timer is not None:
        return
      try:
        self._flush_timer = self._scheduler.schedule_flush(
          self._run_scheduled_flush, self._config.flush_interval_seconds
        )
      except SchedulerClosedError:
        _logger.debug("Scheduler closed; monitor logs stay queued")

  def flush_and_wait(self) -> Optional[FlushTask]:
    """
    Submit a flush to the worker without delay.

    Returns the task so callers can wait on it, or None when the
    scheduler has already been shut down.
    """
    try:
      return self._scheduler.flush_now(self._flush)
    except SchedulerClosedError:
      _logger.debug("Scheduler closed; skipping monitor log flush")
      return None

  def close(self, flush: bool = True) -> None:
    """
    Flush whatever is buffered (optionally), stop the worker and release
    the transport if it has a ``close()``.
    """
    if flush:
      self.flush_and_wait()
    self._scheduler.shutdown(wait=True, drain=flush)

    close_transport = getattr(self._transport, "close", None)
    if callable(close_transport):
      close_transport()

  def _run_scheduled_flush(self) -> None:
    with self._lock:
      self._flush_timer = None
    self._flush()

  def _flush(self) -> None:
    with self._lock:
      self._flushing = True
    try:
      application_id = self._identity_provider()
      requests = build_requests(
        self._queue,
        application_id,
        max_logs_per_request=self._config.max_logs_per_request,
        request_factory=self._request_factory,
      )
      if not requests:
        return

      log_count = sum(request.log_count for request in requests)
      try:
        self._transport.transmit(requests)
      except Exception:
        # Transmission is best-effort; the batch is not re-enqueued.
        _logger.exception("Failed to transmit %s monitor log(s)", log_count)
        with self._lock:
          self._stats["transport_errors"] += 1
        return

      with self._lock:
        self._stats["requests_sent"] += len(requests)
        self._stats["logs_sent"] += log_count
    finally:
      with self._lock:
        self._flushing = False
        self._stats["flushes"] += 1
