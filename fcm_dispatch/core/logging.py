"""Process-wide logging for the dispatch service: stdout plus a rotating file per environment."""

import logging
import logging.handlers
import sys
import time
import traceback
from pathlib import Path
from types import TracebackType

from fcm_dispatch.config import Settings

LOG_LINE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"

# Server loggers share our handlers instead of their own.
SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi")
# Firebase Admin and its HTTP stack; level comes from settings.sdk_log_level.
SDK_LOGGERS = ("firebase_admin", "google.auth", "urllib3", "cachecontrol")

_LOG_FILE_PATH: Path | None = None


class TruncatedFormatter(logging.Formatter):
  """Formatter that keeps the exception header and the last frames of a traceback."""

  def __init__(self, *args, keep_frames: int = 5, **kwargs) -> None:
    super().__init__(*args, **kwargs)
    self._keep_frames = keep_frames

  # ruff: noqa: N802
  def formatException(self, ei: tuple[type[BaseException] | None, BaseException | None, TracebackType | None]) -> str:
    lines = traceback.format_exception(*ei)
    if len(lines) > self._keep_frames + 1:
      return "".join(lines[:1] + ["    ...\n"] + lines[-self._keep_frames :])
    return "".join(lines)


def _backup_namer(default_name: str) -> str:
  """Name rotated files dispatch.log-1 instead of dispatch.log.1."""
  parts = default_name.rsplit(".", 1)
  if len(parts) == 2 and parts[1].isdigit():
    return f"{parts[0]}-{parts[1]}"
  return default_name


def log_file_path(settings: Settings) -> Path:
  """Return a per-start log file path tagged with the environment."""
  return Path(settings.log_dir).resolve() / f"fcm_dispatch_{settings.environment}_{time.strftime('%Y%m%d_%H%M%S')}.log"


def _build_handlers(settings: Settings) -> tuple[logging.Handler, logging.Handler, Path]:
  log_path = log_file_path(settings)
  try:
    log_path.parent.mkdir(parents=True, exist_ok=True)
  except OSError as exc:
    raise RuntimeError(f"Failed to create log directory at {log_path.parent}: {exc}") from exc

  # Debug runs keep full tracebacks on the console.
  stream = logging.StreamHandler(sys.stdout)
  stream.setFormatter(logging.Formatter(LOG_LINE_FORMAT, datefmt=LOG_DATE_FORMAT) if settings.debug else TruncatedFormatter(LOG_LINE_FORMAT, datefmt=LOG_DATE_FORMAT))

  file_handler = logging.handlers.RotatingFileHandler(log_path, encoding="utf-8", maxBytes=settings.log_max_bytes, backupCount=settings.log_backup_count)
  file_handler.namer = _backup_namer
  file_handler.setFormatter(logging.Formatter(LOG_LINE_FORMAT, datefmt=LOG_DATE_FORMAT))
  return stream, file_handler, log_path


def setup_logging(settings: Settings) -> Path:
  """Install our handlers on the root logger and route server and SDK loggers through them."""
  stream_handler, file_handler, log_path = _build_handlers(settings)
  for logger_name in SERVER_LOGGERS:
    log = logging.getLogger(logger_name)
    log.handlers = [stream_handler, file_handler]
    log.propagate = False

  for logger_name in SDK_LOGGERS:
    logging.getLogger(logger_name).setLevel(settings.sdk_log_level)

  level = logging.DEBUG if settings.debug else logging.INFO
  logging.basicConfig(level=level, handlers=[stream_handler, file_handler], force=True)
  return log_path


def initialize_logging(settings: Settings) -> Path:
  """Initialize logging once per process; later calls return the existing log path."""
  global _LOG_FILE_PATH
  if _LOG_FILE_PATH is not None:
    return _LOG_FILE_PATH
  _LOG_FILE_PATH = setup_logging(settings)
  logging.getLogger(__name__).info("Logging initialized environment=%s debug=%s sdk_level=%s file=%s", settings.environment, settings.debug, settings.sdk_log_level, _LOG_FILE_PATH)
  return _LOG_FILE_PATH
