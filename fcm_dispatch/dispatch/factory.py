"""Factory helpers for dispatch services."""

from __future__ import annotations

import datetime
from dataclasses import dataclass

from fcm_dispatch.config import Settings
from fcm_dispatch.core.firebase import build_firebase_app
from fcm_dispatch.dispatch.contracts import GatewayClient, RecipientResolver
from fcm_dispatch.dispatch.coordinator import DispatchCoordinator
from fcm_dispatch.dispatch.fcm_gateway import FirebaseGatewayClient, NullGatewayClient
from fcm_dispatch.dispatch.retry import RetryPolicy
from fcm_dispatch.dispatch.topic_membership import TopicMembershipManager


@dataclass(frozen=True)
class DispatchServices:
  """Services sharing one gateway client."""

  coordinator: DispatchCoordinator
  topics: TopicMembershipManager


def build_gateway_client(settings: Settings) -> GatewayClient:
  """Choose the Firebase gateway when push is enabled and configured, else the null gateway."""
  if not settings.push_enabled:
    return NullGatewayClient()

  app = build_firebase_app(settings)
  if app is None:
    return NullGatewayClient()
  return FirebaseGatewayClient(app, dry_run=settings.dry_run)


def build_dispatch_services(settings: Settings, *, gateway: GatewayClient | None = None, resolver: RecipientResolver | None = None) -> DispatchServices:
  """Construct dispatch services based on environment configuration."""
  gateway = gateway or build_gateway_client(settings)
  retry_policy = RetryPolicy(max_attempts=settings.retry_max_attempts, initial_backoff_ms=settings.retry_initial_backoff_ms, max_backoff_ms=settings.retry_max_backoff_ms)
  default_timeout = datetime.timedelta(seconds=settings.default_deadline_seconds) if settings.default_deadline_seconds else None

  coordinator = DispatchCoordinator(gateway, resolver=resolver, retry_policy=retry_policy, max_in_flight=settings.max_in_flight, default_timeout=default_timeout)
  topics = TopicMembershipManager(gateway, resolver=resolver, retry_policy=retry_policy, max_in_flight=settings.max_in_flight)
  return DispatchServices(coordinator=coordinator, topics=topics)
