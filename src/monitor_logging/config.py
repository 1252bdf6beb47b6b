from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

_logger = logging.getLogger("monitor_logging.config")

DEFAULT_GRAPH_URL = "https://graph.facebook.com/v2.12/"
DEFAULT_FLUSH_THRESHOLD = 100
DEFAULT_MAX_QUEUE_SIZE = 1000
DEFAULT_FLUSH_INTERVAL_SECONDS = 60.0
DEFAULT_MAX_LOGS_PER_REQUEST = 100
CONFIG_FILE_PATH = Path("_monitor/config.json")


@dataclass(frozen=True)
class MonitorConfig:
  """
  Configuration for the monitoring log client.

  ``application_id`` may be None: logs are then buffered but never sent
  until an identity becomes available.
  """

  application_id: Optional[str] = None
  graph_url: str = DEFAULT_GRAPH_URL
  access_token: Optional[str] = None
  package_name: Optional[str] = None
  flush_threshold: int = DEFAULT_FLUSH_THRESHOLD
  max_queue_size: int = DEFAULT_MAX_QUEUE_SIZE
  flush_interval_seconds: float = DEFAULT_FLUSH_INTERVAL_SECONDS
  max_logs_per_request: int = DEFAULT_MAX_LOGS_PER_REQUEST
  enabled: bool = True

  @classmethod
  def from_env(cls) -> "MonitorConfig":
    """
    Load configuration from environment variables.

    Optional:
      - MONITOR_APPLICATION_ID
      - MONITOR_GRAPH_URL (default: https://graph.facebook.com/v2.12/)
      - MONITOR_ACCESS_TOKEN
      - MONITOR_PACKAGE_NAME
      - MONITOR_FLUSH_THRESHOLD, MONITOR_MAX_QUEUE_SIZE,
        MONITOR_FLUSH_INTERVAL_SECONDS, MONITOR_MAX_LOGS_PER_REQUEST
      - MONITOR_ENABLED
    """
    return cls.from_params_or_env()

  @classmethod
  def from_params_or_env(
    cls,
    application_id: Optional[str] = None,
    graph_url: Optional[str] = None,
    access_token: Optional[str] = None,
    package_name: Optional[str] = None,
    flush_threshold: Optional[int] = None,
    flush_interval_seconds: Optional[float] = None,
    max_logs_per_request: Optional[int] = None,
  ) -> "MonitorConfig":
    """
    Build configuration from explicit parameters, falling back to environment variables.

    Priority:
      1. Explicit function arguments
      2. Environment variables
      3. Config file (_monitor/config.json)
      4. Defaults (no application id)
    """
    file_config = _read_config_file()

    app_id = (
      application_id
      or os.getenv("MONITOR_APPLICATION_ID")
      or file_config.get("application_id")
      or file_config.get("applicationId")
    )

    url = graph_url or os.getenv("MONITOR_GRAPH_URL", DEFAULT_GRAPH_URL)
    _validate_graph_url(url)

    threshold = flush_threshold or _get_int("MONITOR_FLUSH_THRESHOLD", DEFAULT_FLUSH_THRESHOLD)
    max_queue_size = max(
      _get_int("MONITOR_MAX_QUEUE_SIZE", DEFAULT_MAX_QUEUE_SIZE),
      threshold,
    )

    return cls(
      application_id=app_id or None,
      graph_url=url,
      access_token=access_token or os.getenv("MONITOR_ACCESS_TOKEN"),
      package_name=package_name or os.getenv("MONITOR_PACKAGE_NAME"),
      flush_threshold=threshold,
      max_queue_size=max_queue_size,
      flush_interval_seconds=(
        flush_interval_seconds
        if flush_interval_seconds is not None
        else _get_float("MONITOR_FLUSH_INTERVAL_SECONDS", DEFAULT_FLUSH_INTERVAL_SECONDS)
      ),
      max_logs_per_request=(
        max_logs_per_request
        or _get_int("MONITOR_MAX_LOGS_PER_REQUEST", DEFAULT_MAX_LOGS_PER_REQUEST)
      ),
      enabled=_get_enabled_flag(),
    )


def _read_config_file() -> dict:
  if not CONFIG_FILE_PATH.exists():
    return {}
  try:
    config = json.loads(CONFIG_FILE_PATH.read_text())
  except (OSError, ValueError) as exc:
    _logger.warning("Ignoring unreadable config file %s: %s", CONFIG_FILE_PATH, exc)
    return {}
  return config if isinstance(config, dict) else {}


def _validate_graph_url(url: str) -> None:
  parsed = urlparse(url)
  if parsed.scheme not in ("http", "https") or not parsed.netloc:
    raise ValueError(
      f"Invalid MONITOR_GRAPH_URL '{url}'. "
      "Expected an http(s) URL like https://graph.facebook.com/v2.12/."
    )


def _get_int(name: str, default: int) -> int:
  raw = os.getenv(name)
  if raw is None:
    return default
  try:
    value = int(raw)
  except ValueError:
    # Fallback to default on invalid input
    return default
  return value if value >= 1 else default


def _get_float(name: str, default: float) -> float:
  raw = os.getenv(name)
  if raw is None:
    return default
  try:
    value = float(raw)
  except ValueError:
    return default
  return value if value >= 0 else default


def _get_enabled_flag() -> bool:
  """
  Determine whether monitoring is enabled.

  Uses MONITOR_ENABLED env var; defaults to True.
  Accepts common truthy/falsey strings.
  """
  raw = os.getenv("MONITOR_ENABLED")
  if raw is None:
    return True

  value = raw.strip().lower()
  if value in ("1", "true", "yes", "on"):
    return True
  if value in ("0", "false", "no", "off"):
    return False

  # Unknown value -> treat as disabled.
  return False
