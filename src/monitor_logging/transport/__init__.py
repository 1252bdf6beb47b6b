from __future__ import annotations

from typing import Protocol, Sequence

from ..models import TransportRequest
from .http_transport import HttpBatchTransport


class BatchTransport(Protocol):
  """
  Anything that can ship a group of requests.

  Delivery is fire-and-forget: implementations handle their own failures.
  A transport may also define ``close()``; LoggingManager.close() calls it.
  """

  def transmit(self, requests: Sequence[TransportRequest]) -> None:
    ...


__all__ = ["BatchTransport", "HttpBatchTransport"]
