from __future__ import annotations

import time
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


def _now_ms() -> int:
  return int(time.time() * 1000)


class MonitorLog(BaseModel):
  """
  A single monitoring event recorded by application code.

  Logs are immutable once created and each one counts as one unit
  towards the batching limits.
  """

  model_config = ConfigDict(frozen=True)

  event_name: str = Field(..., min_length=1)
  category: str = "performance"
  time_start: int = Field(default_factory=_now_ms, description="Epoch milliseconds")
  time_spent: Optional[int] = Field(default=None, ge=0, description="Milliseconds")
  attributes: Dict[str, Any] = Field(default_factory=dict)

  def to_json_dict(self) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
      "event_name": self.event_name,
      "category": self.category,
      "time_start": self.time_start,
    }
    if self.time_spent is not None:
      payload["time_spent"] = self.time_spent
    # Attributes never override the core fields.
    for key, value in self.attributes.items():
      payload.setdefault(key, value)
    return payload


class TransportRequest(BaseModel):
  """
  One encoded POST request carrying a batch of monitoring logs.
  """

  model_config = ConfigDict(frozen=True)

  graph_path: str
  params: Dict[str, str]
  log_count: int = Field(..., ge=1)
  method: str = "POST"
