from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urlencode

import httpx

from ..models import TransportRequest

_logger = logging.getLogger("monitor_logging.transport")


@dataclass
class HttpBatchTransport:
  """
  HTTP transport that sends monitoring requests as one Graph batch call.

  Network failures are retried with a small linear backoff and logged at
  WARNING level, but never raise back to the caller. Client errors (4xx)
  are not retried.
  """

  graph_url: str
  access_token: Optional[str] = None
  max_retries: int = 3
  base_backoff_seconds: float = 0.1
  timeout_seconds: float = 5.0
  client: Optional[httpx.Client] = None
  _owns_client: bool = field(default=False, init=False, repr=False)

  def transmit(self, requests: Sequence[TransportRequest]) -> None:
    if not requests:
      return

    data = self._encode(requests)
    client = self._get_client()

    for attempt in range(1, self.max_retries + 1):
      try:
        response = client.post(self.graph_url, data=data, timeout=self.timeout_seconds)
        response.raise_for_status()
        _logger.debug(
          "Sent %s monitoring request(s) (%s logs)",
          len(requests),
          sum(r.log_count for r in requests),
        )
        return
      except httpx.HTTPStatusError as exc:
        if exc.response.status_code < 500:
          _logger.warning(
            "monitor_logging HTTP transport rejected by server (%s); dropping batch",
            exc.response.status_code,
          )
          return
        _logger.warning(
          "monitor_logging HTTP transport got server error (attempt %s/%s): %s",
          attempt,
          self.max_retries,
          exc,
        )
      except httpx.HTTPError as exc:
        _logger.warning(
          "monitor_logging HTTP transport failed to reach server (attempt %s/%s): %s",
          attempt,
          self.max_retries,
          exc,
        )

      if attempt == self.max_retries:
        # Give up; logs in this batch are dropped.
        return
      # Runs on the flush worker thread, never on the caller's.
      time.sleep(self.base_backoff_seconds * attempt)

  def close(self) -> None:
    if self._owns_client and self.client is not None:
      self.client.close()
      self.client = None
      self._owns_client = False

  def _get_client(self) -> httpx.Client:
    if self.client is None:
      self.client = httpx.Client()
      self._owns_client = True
    return self.client

  def _encode(self, requests: Sequence[TransportRequest]) -> Dict[str, Any]:
    batch: List[Dict[str, Any]] = [
      {
        "method": request.method,
        "relative_url": request.graph_path,
        "body": urlencode(request.params),
      }
      for request in requests
    ]
    data: Dict[str, Any] = {"batch": json.dumps(batch)}
    if self.access_token:
      data["access_token"] = self.access_token
    return data
