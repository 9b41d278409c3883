import logging

import firebase_admin
from firebase_admin import credentials

from fcm_dispatch.config import Settings

logger = logging.getLogger(__name__)

FIREBASE_APP_NAME = "fcm-dispatch"


def build_firebase_app(settings: Settings) -> firebase_admin.App | None:
  """Create (or reuse) the named Firebase Admin app used for messaging.

  Returns None when no project is configured; callers fall back to the null gateway.
  """
  if not settings.firebase_project_id:
    logger.warning("Firebase Project ID not set. Firebase Admin SDK not initialized.")
    return None

  try:
    return firebase_admin.get_app(FIREBASE_APP_NAME)
  except ValueError:
    pass

  options = {"projectId": settings.firebase_project_id}
  if settings.firebase_service_account_json_path:
    cred = credentials.Certificate(settings.firebase_service_account_json_path)
    app = firebase_admin.initialize_app(cred, options, name=FIREBASE_APP_NAME)
  else:
    # Use default credentials (e.g. Google Application Default Credentials)
    app = firebase_admin.initialize_app(options=options, name=FIREBASE_APP_NAME)
  logger.info("Firebase Admin SDK initialized for project %s.", settings.firebase_project_id)
  return app
