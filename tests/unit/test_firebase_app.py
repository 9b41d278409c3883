from __future__ import annotations

from unittest.mock import MagicMock

from fcm_dispatch.core import firebase as firebase_module
from fcm_dispatch.core.firebase import FIREBASE_APP_NAME, build_firebase_app


def test_returns_none_without_project_id(make_settings):
  assert build_firebase_app(make_settings()) is None


def test_reuses_existing_named_app(make_settings, monkeypatch):
  existing = MagicMock()
  initialize = MagicMock()
  monkeypatch.setattr(firebase_module.firebase_admin, "get_app", lambda name: existing)
  monkeypatch.setattr(firebase_module.firebase_admin, "initialize_app", initialize)

  assert build_firebase_app(make_settings(firebase_project_id="demo")) is existing
  initialize.assert_not_called()


def test_initializes_with_default_credentials(make_settings, monkeypatch):
  created = MagicMock()
  initialize = MagicMock(return_value=created)

  def _missing(name):
    raise ValueError(name)

  monkeypatch.setattr(firebase_module.firebase_admin, "get_app", _missing)
  monkeypatch.setattr(firebase_module.firebase_admin, "initialize_app", initialize)

  app = build_firebase_app(make_settings(firebase_project_id="demo"))

  assert app is created
  initialize.assert_called_once_with(options={"projectId": "demo"}, name=FIREBASE_APP_NAME)
