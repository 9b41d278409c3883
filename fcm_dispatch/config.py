"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from fcm_dispatch.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)


@dataclass(frozen=True)
class Settings:
  """Typed settings for the dispatch service."""

  environment: str
  debug: bool
  log_dir: str
  log_max_bytes: int
  log_backup_count: int
  sdk_log_level: str
  push_enabled: bool
  dry_run: bool
  max_in_flight: int
  retry_max_attempts: int
  retry_initial_backoff_ms: int
  retry_max_backoff_ms: int
  default_deadline_seconds: float | None
  api_secret: str | None
  firebase_project_id: str | None
  firebase_service_account_json_path: str | None


_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _parse_optional_seconds(name: str) -> float | None:
  raw = os.getenv(name)
  if raw is None or raw.strip() == "":
    return None

  value = float(raw)

  if value <= 0:
    raise ValueError(f"{name} must be positive when provided.")

  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("FCM_DISPATCH_ENV", "development").lower()
  debug = _parse_bool(os.getenv("FCM_DISPATCH_DEBUG"))

  log_max_bytes = _positive_int("FCM_DISPATCH_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("FCM_DISPATCH_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("FCM_DISPATCH_LOG_BACKUP_COUNT must be zero or a positive integer.")

  # Firebase SDK and HTTP client loggers are noisy at INFO; keep them quieter unless asked.
  sdk_log_level = os.getenv("FCM_DISPATCH_SDK_LOG_LEVEL", "WARNING").strip().upper()
  if sdk_log_level not in _LOG_LEVELS:
    raise ValueError(f"FCM_DISPATCH_SDK_LOG_LEVEL must be one of {sorted(_LOG_LEVELS)}.")

  # Backpressure: bounded in-flight gateway calls per dispatch.
  max_in_flight = _positive_int("FCM_DISPATCH_MAX_IN_FLIGHT", "10")
  retry_max_attempts = _positive_int("FCM_DISPATCH_RETRY_MAX_ATTEMPTS", "3")
  retry_initial_backoff_ms = int(os.getenv("FCM_DISPATCH_RETRY_INITIAL_BACKOFF_MS", "500"))
  retry_max_backoff_ms = int(os.getenv("FCM_DISPATCH_RETRY_MAX_BACKOFF_MS", "8000"))
  if retry_initial_backoff_ms < 0 or retry_max_backoff_ms < 0:
    raise ValueError("FCM_DISPATCH_RETRY_*_BACKOFF_MS must not be negative.")

  push_enabled = _parse_bool(os.getenv("FCM_DISPATCH_PUSH_ENABLED"))
  firebase_project_id = _optional_str(os.getenv("FIREBASE_PROJECT_ID"))

  # Validate gateway configuration only when push delivery is enabled.
  if push_enabled and not firebase_project_id:
    raise ValueError("FIREBASE_PROJECT_ID must be set when push delivery is enabled.")

  return Settings(
    environment=environment,
    debug=debug,
    log_dir=(os.getenv("FCM_DISPATCH_LOG_DIR") or "./logs").strip(),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    sdk_log_level=sdk_log_level,
    push_enabled=push_enabled,
    dry_run=_parse_bool(os.getenv("FCM_DISPATCH_DRY_RUN")),
    max_in_flight=max_in_flight,
    retry_max_attempts=retry_max_attempts,
    retry_initial_backoff_ms=retry_initial_backoff_ms,
    retry_max_backoff_ms=retry_max_backoff_ms,
    default_deadline_seconds=_parse_optional_seconds("FCM_DISPATCH_DEFAULT_DEADLINE_SECONDS"),
    api_secret=_optional_str(os.getenv("FCM_DISPATCH_API_SECRET")),
    firebase_project_id=firebase_project_id,
    firebase_service_account_json_path=_optional_str(os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON_PATH")),
  )
