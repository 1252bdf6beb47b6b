import json
import logging
import time
from typing import List, Sequence

import pytest

from monitor_logging import (  # type: ignore[import]
  LoggingManager,
  MonitorLogHandler,
  measure,
  setup_monitoring,
)
from monitor_logging.config import MonitorConfig  # type: ignore[import]
from monitor_logging.models import TransportRequest  # type: ignore[import]
from monitor_logging.queue import LogQueue  # type: ignore[import]
from monitor_logging.scheduler import FlushScheduler  # type: ignore[import]


class RecordingTransport:
  def __init__(self) -> None:
    self.requests: List[TransportRequest] = []

  def transmit(self, requests: Sequence[TransportRequest]) -> None:
    self.requests.extend(requests)

  def entries(self):
    return [entry for r in self.requests for entry in json.loads(r.params["monitorings"])]


@pytest.fixture(autouse=True)
def monitor_env(monkeypatch, tmp_path):
  monkeypatch.chdir(tmp_path)
  monkeypatch.setenv("MONITOR_APPLICATION_ID", "test-app")
  monkeypatch.delenv("MONITOR_ENABLED", raising=False)
  monkeypatch.delenv("MONITOR_FLUSH_THRESHOLD", raising=False)
  monkeypatch.delenv("MONITOR_MAX_QUEUE_SIZE", raising=False)


def test_setup_monitoring_attaches_handler_and_ships_records():
  transport = RecordingTransport()
  logger = logging.getLogger("monitor-setup-logger")
  logger.setLevel(logging.INFO)

  manager = setup_monitoring(logger, transport=transport)
  try:
    assert isinstance(manager, LoggingManager)
    logger.info("checkout completed", extra={"time_spent": 42})
  finally:
    manager.close()
    for handler in list(logger.handlers):
      if isinstance(handler, MonitorLogHandler):
        logger.removeHandler(handler)

  entries = transport.entries()
  assert len(entries) == 1
  assert entries[0]["event_name"] == "checkout completed"
  assert entries[0]["category"] == "monitor-setup-logger"
  assert entries[0]["time_spent"] == 42
  assert entries[0]["level"] == "INFO"
  assert transport.requests[0].graph_path == "test-app/monitorings"


def test_setup_monitoring_reuses_manager_of_attached_handler():
  logger = logging.getLogger("monitor-dup-logger")
  first = setup_monitoring(logger, transport=RecordingTransport())
  second = setup_monitoring(logger, transport=RecordingTransport())
  try:
    handlers = [h for h in logger.handlers if isinstance(h, MonitorLogHandler)]
    assert len(handlers) == 1
    assert second is first
    assert handlers[0].manager is first
  finally:
    first.close()
    for handler in list(logger.handlers):
      logger.removeHandler(handler)


def test_handler_ignores_records_from_the_client_itself():
  class CountingScheduler(FlushScheduler):
    def __init__(self) -> None:
      super().__init__()
      self.immediate = 0

    def flush_now(self, flush):
      self.immediate += 1
      return super().flush_now(flush)

  scheduler = CountingScheduler()
  log_queue = LogQueue(flush_threshold=2, max_size=5)
  manager = LoggingManager(
    queue=log_queue,
    transport=RecordingTransport(),
    scheduler=scheduler,
    identity_provider=lambda: None,
    config=MonitorConfig(flush_threshold=2, max_queue_size=5),
  )
  root = logging.getLogger()
  previous_level = root.level
  handler = MonitorLogHandler(manager)
  root.setLevel(logging.DEBUG)
  root.addHandler(handler)
  try:
    app_logger = logging.getLogger("monitor-app-logger")
    app_logger.info("first")
    app_logger.info("second")
    time.sleep(0.5)

    # Without an application id each flush logs a debug message; it must
    # not come back in as a new event and trigger another flush.
    assert scheduler.immediate == 1
    assert len(log_queue) == 2

    for i in range(5):
      app_logger.info("overflow %s", i)
    # The "queue full" debug records are not re-enqueued either.
    assert len(log_queue) == 5
    assert manager.stats["dropped"] == 2
  finally:
    root.removeHandler(handler)
    root.setLevel(previous_level)
    manager.close(flush=False)


def test_setup_monitoring_disabled_via_env(monkeypatch):
  monkeypatch.setenv("MONITOR_ENABLED", "false")

  assert setup_monitoring(transport=RecordingTransport()) is None


def test_handler_records_exception_type():
  transport = RecordingTransport()
  manager = LoggingManager(
    queue=LogQueue(flush_threshold=10, max_size=10),
    transport=transport,
    config=MonitorConfig(application_id="test-app", flush_threshold=10),
  )
  logger = logging.getLogger("monitor-error-logger")
  logger.setLevel(logging.INFO)
  handler = MonitorLogHandler(manager)
  logger.addHandler(handler)
  try:
    try:
      1 / 0
    except ZeroDivisionError:
      logger.exception("boom")
  finally:
    logger.removeHandler(handler)
    manager.close()

  entries = transport.entries()
  assert entries[0]["event_name"] == "boom"
  assert entries[0]["exception_type"] == "ZeroDivisionError"
  assert entries[0]["level"] == "ERROR"


def test_measure_records_elapsed_time_even_on_error():
  transport = RecordingTransport()
  manager = LoggingManager(
    queue=LogQueue(flush_threshold=10, max_size=10),
    transport=transport,
    config=MonitorConfig(application_id="test-app", flush_threshold=10),
  )

  with measure(manager, "load_feed", category="startup", screen="home"):
    pass
  with pytest.raises(KeyError):
    with measure(manager, "load_profile"):
      raise KeyError("missing")
  manager.close()

  entries = transport.entries()
  assert [e["event_name"] for e in entries] == ["load_feed", "load_profile"]
  assert entries[0]["category"] == "startup"
  assert entries[0]["screen"] == "home"
  assert entries[0]["time_spent"] >= 0
