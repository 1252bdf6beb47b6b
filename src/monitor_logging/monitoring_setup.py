from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from logging import Handler, LogRecord
from typing import Any, Dict, Iterator, Optional

from .config import MonitorConfig
from .manager import IdentityProvider, LoggingManager
from .models import MonitorLog
from .queue import LogQueue
from .scheduler import FlushScheduler
from .transport import BatchTransport, HttpBatchTransport


_INTERNAL_LOGGERS = ("monitor_logging", "httpx", "httpcore")


def _is_internal_logger(name: str) -> bool:
  return any(name == prefix or name.startswith(prefix + ".") for prefix in _INTERNAL_LOGGERS)


class MonitorLogHandler(Handler):
  """
  Logging handler that turns standard log records into monitoring events.

  The formatted message becomes the event name and the logger name the
  category. A ``time_spent`` value passed through ``extra`` is carried
  over as the event duration.
  """

  def __init__(self, manager: LoggingManager) -> None:
    super().__init__()
    self._manager = manager

  @property
  def manager(self) -> LoggingManager:
    return self._manager

  def emit(self, record: LogRecord) -> None:
    # Records from this package and its HTTP stack would feed back into
    # the queue they describe.
    if _is_internal_logger(record.name):
      return
    try:
      attributes: Dict[str, Any] = {"level": record.levelname}
      if record.exc_info and record.exc_info[0] is not None:
        attributes["exception_type"] = record.exc_info[0].__name__

      time_spent = getattr(record, "time_spent", None)
      log = MonitorLog(
        event_name=record.getMessage(),
        category=record.name,
        time_start=int(record.created * 1000),
        time_spent=int(time_spent) if time_spent is not None else None,
        attributes=attributes,
      )
      self._manager.add_log(log)
    except Exception:
      # Never break application logging.
      self.handleError(record)


def setup_monitoring(
  logger: Optional[logging.Logger] = None,
  *,
  application_id: Optional[str] = None,
  graph_url: Optional[str] = None,
  access_token: Optional[str] = None,
  transport: Optional[BatchTransport] = None,
  identity_provider: Optional[IdentityProvider] = None,
) -> Optional[LoggingManager]:
  """
  Build a LoggingManager with its queue, scheduler and transport.

  When ``logger`` is given, a MonitorLogHandler feeding the manager is
  attached to it. If the logger already has one, its manager is returned
  and nothing new is built. Returns None when monitoring is disabled.
  The caller owns the returned manager and should ``close()`` it on exit.
  """
  config = MonitorConfig.from_params_or_env(
    application_id=application_id,
    graph_url=graph_url,
    access_token=access_token,
  )
  if not config.enabled:
    return None

  if logger is not None:
    # Avoid attaching duplicate handlers to the same logger.
    for existing in logger.handlers:
      if isinstance(existing, MonitorLogHandler):
        return existing.manager

  if transport is None:
    transport = HttpBatchTransport(
      graph_url=config.graph_url,
      access_token=config.access_token,
    )

  manager = LoggingManager(
    queue=LogQueue(
      flush_threshold=config.flush_threshold,
      max_size=config.max_queue_size,
    ),
    transport=transport,
    scheduler=FlushScheduler(),
    identity_provider=identity_provider,
    config=config,
  )

  if logger is not None:
    logger.addHandler(MonitorLogHandler(manager))

  return manager


@contextmanager
def measure(
  manager: LoggingManager,
  event_name: str,
  category: str = "performance",
  **attributes: Any,
) -> Iterator[None]:
  """
  Time the enclosed block and record it as a monitoring event.

  The event is recorded even if the block raises.
  """
  time_start = int(time.time() * 1000)
  started = time.perf_counter()
  try:
    yield
  finally:
    manager.add_log(
      MonitorLog(
        event_name=event_name,
        category=category,
        time_start=time_start,
        time_spent=int((time.perf_counter() - started) * 1000),
        attributes=attributes,
      )
    )
