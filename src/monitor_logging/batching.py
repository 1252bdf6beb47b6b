"""
Turn queued monitoring logs into transport requests.

These helpers are synchronous and hold no state of their own. Draining is
destructive, so ``build_requests`` must be the only consumer of the queue
while a flush is running.
"""

from __future__ import annotations

import json
import logging
import platform
from typing import Callable, List, Optional, Sequence

from .models import MonitorLog, TransportRequest
from .queue import LogQueue

_logger = logging.getLogger("monitor_logging.batching")

DEFAULT_MAX_LOGS_PER_REQUEST = 100
MONITORINGS_PARAM = "monitorings"
MONITORINGS_PATH = "{application_id}/monitorings"

RequestFactory = Callable[[Sequence[MonitorLog], str], Optional[TransportRequest]]


def build_post_request_from_logs(
  logs: Sequence[MonitorLog],
  application_id: str,
  package_name: Optional[str] = None,
) -> Optional[TransportRequest]:
  """
  Encode a group of logs into a single POST request.

  Returns None when there is nothing to send.
  """
  if not logs:
    return None

  params = {
    MONITORINGS_PARAM: json.dumps([log.to_json_dict() for log in logs]),
    "device_os_version": platform.release(),
    "device_model": platform.machine(),
  }
  if package_name:
    params["unique_application_identifier"] = package_name

  return TransportRequest(
    graph_path=MONITORINGS_PATH.format(application_id=application_id),
    params=params,
    log_count=len(logs),
  )


def build_requests(
  queue: LogQueue,
  application_id: Optional[str],
  max_logs_per_request: int = DEFAULT_MAX_LOGS_PER_REQUEST,
  request_factory: RequestFactory = build_post_request_from_logs,
) -> List[TransportRequest]:
  """
  Drain ``queue`` into requests of at most ``max_logs_per_request`` logs.

  Without an application id nothing is drained and no requests are built;
  the logs stay queued for a later flush.
  """
  if max_logs_per_request < 1:
    raise ValueError(f"max_logs_per_request must be >= 1, got {max_logs_per_request}")

  if not application_id:
    _logger.debug("No application id available; leaving monitor logs queued")
    return []

  requests: List[TransportRequest] = []
  group: List[MonitorLog] = []

  def close_group() -> None:
    request = request_factory(group, application_id)
    if request is not None:
      requests.append(request)

  while not queue.is_empty():
    log = queue.fetch()
    if log is None:
      # Drained by someone else between the two calls.
      break
    group.append(log)
    if len(group) >= max_logs_per_request:
      close_group()
      group = []

  if group:
    close_group()

  return requests
