from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Deque, Optional

from .models import MonitorLog

_logger = logging.getLogger("monitor_logging.queue")

DEFAULT_FLUSH_THRESHOLD = 100
DEFAULT_MAX_SIZE = 1000


class LogQueue:
  """
  In-memory FIFO buffer of pending monitoring logs.

  The queue is shared between the threads that record logs and the single
  flush worker that drains it. Every public operation takes the lock once,
  so callers may interleave ``add`` and ``fetch`` freely but never observe
  a half-inserted element.

  The queue is bounded by ``max_size``. Once full, new logs are dropped on
  the floor; telemetry is best-effort.
  """

  def __init__(
    self,
    flush_threshold: int = DEFAULT_FLUSH_THRESHOLD,
    max_size: int = DEFAULT_MAX_SIZE,
  ) -> None:
    if flush_threshold < 1:
      raise ValueError(f"flush_threshold must be >= 1, got {flush_threshold}")
    if max_size < flush_threshold:
      raise ValueError(
        f"max_size ({max_size}) must be >= flush_threshold ({flush_threshold})"
      )
    self._items: Deque[MonitorLog] = deque()
    self._lock = threading.Lock()
    self._flush_threshold = flush_threshold
    self._max_size = max_size
    self._dropped = 0

  @property
  def flush_threshold(self) -> int:
    return self._flush_threshold

  @property
  def max_size(self) -> int:
    return self._max_size

  @property
  def dropped(self) -> int:
    """Number of logs rejected because the queue was full."""
    with self._lock:
      return self._dropped

  def add(self, record: MonitorLog) -> bool:
    """
    Append a log and report whether the flush threshold has been reached.
    """
    with self._lock:
      if len(self._items) >= self._max_size:
        self._dropped += 1
        size = len(self._items)
        accepted = False
      else:
        self._items.append(record)
        size = len(self._items)
        accepted = True

    if not accepted:
      _logger.debug("Monitor log queue full (%s), dropping %s", size, record.event_name)
    return size >= self._flush_threshold

  def fetch(self) -> Optional[MonitorLog]:
    """Remove and return the oldest log, or None when the queue is empty."""
    with self._lock:
      if not self._items:
        return None
      return self._items.popleft()

  def is_empty(self) -> bool:
    with self._lock:
      return not self._items

  def __len__(self) -> int:
    with self._lock:
      return len(self._items)
