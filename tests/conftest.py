"""Shared fixtures for dispatch tests."""

from __future__ import annotations

import dataclasses
import threading
import time
from collections.abc import Sequence

import pytest

from fcm_dispatch.config import Settings
from fcm_dispatch.dispatch.contracts import FailureReason, GatewayTransportError, GroupSendResponse, NotificationMessage, RecipientResult, TopicSendResponse
from fcm_dispatch.dispatch.retry import RetryPolicy


class FakeGateway:
  """In-memory gateway that records calls and replays configured failures."""

  def __init__(self) -> None:
    self.device_calls: list[tuple[str, ...]] = []
    self.topic_calls: list[str] = []
    self.group_calls: list[str] = []
    self.membership_calls: list[tuple[str, tuple[str, ...], str]] = []
    self.failures: dict[str, FailureReason] = {}
    self.omitted: set[str] = set()
    # Ids whose batch raises a transport error on every attempt.
    self.transport_failure_ids: set[str] = set()
    self.topic_error: Exception | None = None
    self.group_response = GroupSendResponse(message_id="group-msg")
    self.call_delay_seconds = 0.0
    self._lock = threading.Lock()
    self._in_flight = 0
    self.max_in_flight_seen = 0

  def _enter(self) -> None:
    with self._lock:
      self._in_flight += 1
      self.max_in_flight_seen = max(self.max_in_flight_seen, self._in_flight)

  def _exit(self) -> None:
    with self._lock:
      self._in_flight -= 1

  def _results(self, ids: Sequence[str]) -> list[RecipientResult]:
    return [RecipientResult(device_id=device_id, message_id=None if device_id in self.failures else f"msg-{device_id}", error=self.failures.get(device_id)) for device_id in ids if device_id not in self.omitted]

  def send_to_devices(self, ids: Sequence[str], message: NotificationMessage) -> list[RecipientResult]:
    self._enter()
    try:
      if self.call_delay_seconds:
        time.sleep(self.call_delay_seconds)
      with self._lock:
        self.device_calls.append(tuple(ids))
      if self.transport_failure_ids.intersection(ids):
        raise GatewayTransportError("connection reset")
      return self._results(ids)
    finally:
      self._exit()

  def send_to_topic(self, name: str, message: NotificationMessage) -> TopicSendResponse:
    self.topic_calls.append(name)
    if self.topic_error is not None:
      raise self.topic_error
    return TopicSendResponse(message_id=f"topic-{name}")

  def send_to_group(self, notification_key: str, message: NotificationMessage) -> GroupSendResponse:
    self.group_calls.append(notification_key)
    return self.group_response

  def subscribe_to_topic(self, ids: Sequence[str], topic: str) -> list[RecipientResult]:
    self.membership_calls.append(("subscribe", tuple(ids), topic))
    if self.transport_failure_ids.intersection(ids):
      raise GatewayTransportError("connection reset")
    return self._results(ids)

  def unsubscribe_from_topic(self, ids: Sequence[str], topic: str) -> list[RecipientResult]:
    self.membership_calls.append(("unsubscribe", tuple(ids), topic))
    return self._results(ids)


class RecordingResolver:
  def __init__(self) -> None:
    self.invalidated: list[str] = []

  def invalidate(self, device_id: str) -> None:
    self.invalidated.append(device_id)

  def resolve(self, descriptor):
    raise NotImplementedError


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def gateway() -> FakeGateway:
  return FakeGateway()


@pytest.fixture
def resolver() -> RecordingResolver:
  return RecordingResolver()


@pytest.fixture
def fast_retry() -> RetryPolicy:
  return RetryPolicy(max_attempts=3, initial_backoff_ms=0, max_backoff_ms=0, jitter=False)


@pytest.fixture
def make_settings():
  """Return a builder for Settings with test-friendly defaults."""

  def _build(**overrides) -> Settings:
    base = Settings(
      environment="test",
      debug=False,
      log_dir="./logs",
      log_max_bytes=1024 * 1024,
      log_backup_count=1,
      sdk_log_level="WARNING",
      push_enabled=False,
      dry_run=False,
      max_in_flight=5,
      retry_max_attempts=2,
      retry_initial_backoff_ms=0,
      retry_max_backoff_ms=0,
      default_deadline_seconds=None,
      api_secret=None,
      firebase_project_id=None,
      firebase_service_account_json_path=None,
    )
    return dataclasses.replace(base, **overrides)

  return _build
