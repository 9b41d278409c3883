import logging
import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from fcm_dispatch.config import Settings, get_settings
from fcm_dispatch.dispatch.coordinator import DispatchCoordinator
from fcm_dispatch.dispatch.factory import DispatchServices
from fcm_dispatch.dispatch.topic_membership import TopicMembershipManager

logger = logging.getLogger(__name__)


def get_dispatch_services(request: Request) -> DispatchServices:
  """Return the services built by the lifespan for this app."""
  services = getattr(request.app.state, "dispatch_services", None)
  if services is None:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Dispatch services are not initialised.")
  return services


def get_coordinator(services: Annotated[DispatchServices, Depends(get_dispatch_services)]) -> DispatchCoordinator:
  return services.coordinator


def get_topic_manager(services: Annotated[DispatchServices, Depends(get_dispatch_services)]) -> TopicMembershipManager:
  return services.topics


def verify_api_secret(settings: Annotated[Settings, Depends(get_settings)], authorization: str | None = Header(default=None), x_fcm_dispatch_secret: str | None = Header(default=None)) -> None:
  """Require the shared secret on every dispatch endpoint."""
  # Secure-by-default: without a configured secret nobody may dispatch.
  if not settings.api_secret:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Dispatch authentication is not configured.")

  shared_secret_valid = secrets.compare_digest((x_fcm_dispatch_secret or ""), settings.api_secret)
  bearer_valid = secrets.compare_digest((authorization or ""), f"Bearer {settings.api_secret}")
  if not shared_secret_valid and not bearer_valid:
    logger.warning("Unauthorized dispatch attempt")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid dispatch secret.")
