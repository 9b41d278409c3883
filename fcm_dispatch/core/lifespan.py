import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from fcm_dispatch.config import get_settings
from fcm_dispatch.core.logging import initialize_logging
from fcm_dispatch.dispatch.factory import build_dispatch_services


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Initialise logging and build dispatch services once per process."""
  settings = get_settings()
  logger = logging.getLogger("fcm_dispatch.core.lifespan")

  initialize_logging(settings)
  # Build the gateway before handling requests so credential errors surface at startup.
  app.state.dispatch_services = build_dispatch_services(settings)
  logger.info("Startup complete environment=%s push_enabled=%s dry_run=%s max_in_flight=%d", settings.environment, settings.push_enabled, settings.dry_run, settings.max_in_flight)

  yield

  logger.info("Shutdown complete.")
