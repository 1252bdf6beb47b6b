"""
monitor_logging

Client-side monitoring logger that buffers telemetry events in memory and
ships them in batches from a single background worker.
"""

from .batching import build_post_request_from_logs, build_requests
from .config import MonitorConfig
from .manager import LoggingManager, ManagerState
from .models import MonitorLog, TransportRequest
from .monitoring_setup import MonitorLogHandler, measure, setup_monitoring
from .queue import LogQueue
from .scheduler import FlushScheduler, FlushTask, FlushTaskState, SchedulerClosedError
from .transport import BatchTransport, HttpBatchTransport

__all__ = [
  "BatchTransport",
  "FlushScheduler",
  "FlushTask",
  "FlushTaskState",
  "HttpBatchTransport",
  "LogQueue",
  "LoggingManager",
  "ManagerState",
  "MonitorConfig",
  "MonitorLog",
  "MonitorLogHandler",
  "SchedulerClosedError",
  "TransportRequest",
  "build_post_request_from_logs",
  "build_requests",
  "measure",
  "setup_monitoring",
]
