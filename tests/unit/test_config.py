from __future__ import annotations

import os

import pytest
from fcm_dispatch.config import get_settings
from fcm_dispatch.utils.env import load_env_file


@pytest.fixture(autouse=True)
def _clear_settings_cache():
  get_settings.cache_clear()
  yield
  get_settings.cache_clear()


def test_defaults(monkeypatch):
  for name in ("FCM_DISPATCH_PUSH_ENABLED", "FCM_DISPATCH_MAX_IN_FLIGHT", "FCM_DISPATCH_RETRY_MAX_ATTEMPTS", "FCM_DISPATCH_DEFAULT_DEADLINE_SECONDS", "FCM_DISPATCH_API_SECRET"):
    monkeypatch.delenv(name, raising=False)

  settings = get_settings()

  assert settings.push_enabled is False
  assert settings.max_in_flight == 10
  assert settings.retry_max_attempts == 3
  assert settings.default_deadline_seconds is None
  assert settings.api_secret is None


def test_push_enabled_requires_project_id(monkeypatch):
  monkeypatch.setenv("FCM_DISPATCH_PUSH_ENABLED", "true")
  monkeypatch.delenv("FIREBASE_PROJECT_ID", raising=False)

  with pytest.raises(ValueError, match="FIREBASE_PROJECT_ID"):
    get_settings()


def test_rejects_non_positive_max_in_flight(monkeypatch):
  monkeypatch.setenv("FCM_DISPATCH_MAX_IN_FLIGHT", "0")

  with pytest.raises(ValueError, match="FCM_DISPATCH_MAX_IN_FLIGHT"):
    get_settings()


def test_parses_deadline_and_secret(monkeypatch):
  monkeypatch.setenv("FCM_DISPATCH_DEFAULT_DEADLINE_SECONDS", "2.5")
  monkeypatch.setenv("FCM_DISPATCH_API_SECRET", "  s3cret  ")

  settings = get_settings()

  assert settings.default_deadline_seconds == 2.5
  assert settings.api_secret == "s3cret"


def test_load_env_file_does_not_override_existing(monkeypatch, tmp_path):
  env_file = tmp_path / ".env"
  env_file.write_text('# comment\nexport FCM_TEST_NEW="quoted"\nFCM_TEST_EXISTING=from-file\nnot a pair\n', encoding="utf-8")
  monkeypatch.setenv("FCM_TEST_EXISTING", "from-env")
  monkeypatch.setenv("FCM_TEST_NEW", "placeholder")
  monkeypatch.delenv("FCM_TEST_NEW")

  load_env_file(env_file)

  assert os.environ["FCM_TEST_NEW"] == "quoted"
  assert os.environ["FCM_TEST_EXISTING"] == "from-env"


def test_sdk_log_level_defaults_to_warning_and_is_validated(monkeypatch):
  monkeypatch.delenv("FCM_DISPATCH_SDK_LOG_LEVEL", raising=False)
  assert get_settings().sdk_log_level == "WARNING"

  get_settings.cache_clear()
  monkeypatch.setenv("FCM_DISPATCH_SDK_LOG_LEVEL", "chatty")
  with pytest.raises(ValueError, match="FCM_DISPATCH_SDK_LOG_LEVEL"):
    get_settings()
