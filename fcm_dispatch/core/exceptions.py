import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

from fcm_dispatch.dispatch.contracts import DispatchError, InvalidMessageError, InvalidTargetError

logger = logging.getLogger(__name__)


def _error_code(exc: DispatchError) -> str:
  if isinstance(exc, InvalidMessageError):
    return "invalid_message"
  if isinstance(exc, InvalidTargetError):
    return "invalid_target"
  return "dispatch_error"


async def dispatch_exception_handler(request: Request, exc: DispatchError) -> JSONResponse:
  """Report request-level validation failures as 422 with a stable error code."""
  # These are caller errors; log at info to keep error logs for service faults.
  logger.info("Dispatch request rejected path=%s error=%s", request.url.path, exc)
  return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": str(exc), "error": _error_code(exc)})


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
  """Log unexpected failures and return a generic 500 without internals."""
  logger.error("Unhandled error path=%s error=%s", request.url.path, exc, exc_info=True)
  return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": "Internal Server Error", "error": "internal_error"})
