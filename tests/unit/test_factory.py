from __future__ import annotations

from unittest.mock import MagicMock

from fcm_dispatch.dispatch.factory import build_dispatch_services, build_gateway_client
from fcm_dispatch.dispatch.fcm_gateway import FirebaseGatewayClient, NullGatewayClient


def test_disabled_push_uses_null_gateway(make_settings):
  assert isinstance(build_gateway_client(make_settings()), NullGatewayClient)


def test_enabled_push_without_app_falls_back_to_null_gateway(make_settings, monkeypatch):
  monkeypatch.setattr("fcm_dispatch.dispatch.factory.build_firebase_app", lambda settings: None)
  assert isinstance(build_gateway_client(make_settings(push_enabled=True, firebase_project_id="demo")), NullGatewayClient)


def test_enabled_push_uses_firebase_gateway(make_settings, monkeypatch):
  app = MagicMock()
  monkeypatch.setattr("fcm_dispatch.dispatch.factory.build_firebase_app", lambda settings: app)

  gateway = build_gateway_client(make_settings(push_enabled=True, firebase_project_id="demo", dry_run=True))

  assert isinstance(gateway, FirebaseGatewayClient)


def test_services_share_injected_gateway(make_settings):
  gateway = MagicMock()

  services = build_dispatch_services(make_settings(default_deadline_seconds=3.0), gateway=gateway)

  assert services.coordinator._gateway is gateway
  assert services.topics._gateway is gateway
  assert services.coordinator._retry_policy.max_attempts == 2
  assert services.coordinator._default_timeout.total_seconds() == 3.0
