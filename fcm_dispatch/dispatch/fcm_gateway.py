"""Gateway client implementations backed by the Firebase Admin SDK."""

from __future__ import annotations

import logging
import warnings
from collections.abc import Sequence

import firebase_admin
from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import messaging

from fcm_dispatch.dispatch.contracts import (
  FailureReason,
  GatewayRejectedError,
  GatewayTransportError,
  GroupSendResponse,
  NotificationMessage,
  Priority,
  RecipientResult,
  TopicSendResponse,
)

logger = logging.getLogger(__name__)

# send_each_for_multicast accepts at most 500 tokens per call.
FCM_MULTICAST_LIMIT = 500

_TRANSPORT_ERRORS = (firebase_exceptions.UnavailableError, firebase_exceptions.InternalError, firebase_exceptions.DeadlineExceededError, firebase_exceptions.UnknownError)

# Keys are normalised with `_topic_error_key`; older SDKs report lowercase hyphenated reasons, newer ones the raw FCM codes.
_TOPIC_ERROR_REASONS = {
  "REGISTRATION_TOKEN_NOT_REGISTERED": FailureReason.NOT_REGISTERED,
  "NOT_FOUND": FailureReason.NOT_REGISTERED,
  "UNREGISTERED": FailureReason.NOT_REGISTERED,
  "INVALID_ARGUMENT": FailureReason.INVALID_TOKEN,
  "INTERNAL": FailureReason.UNAVAILABLE,
  "INTERNAL_ERROR": FailureReason.UNAVAILABLE,
  "UNAVAILABLE": FailureReason.UNAVAILABLE,
  "TOO_MANY_TOPICS": FailureReason.RATE_LIMITED,
  "RESOURCE_EXHAUSTED": FailureReason.RATE_LIMITED,
}


def classify_firebase_error(exc: BaseException) -> FailureReason:
  """Map a Firebase Admin SDK exception onto a failure reason."""
  if isinstance(exc, messaging.UnregisteredError):
    return FailureReason.NOT_REGISTERED

  if isinstance(exc, messaging.SenderIdMismatchError):
    return FailureReason.INVALID_TOKEN

  if isinstance(exc, messaging.QuotaExceededError | firebase_exceptions.ResourceExhaustedError):
    return FailureReason.RATE_LIMITED

  if isinstance(exc, firebase_exceptions.InvalidArgumentError):
    # FCM reports oversized payloads and malformed tokens with the same code.
    text = str(exc).lower()
    if "too big" in text or "too large" in text or "size" in text:
      return FailureReason.MESSAGE_TOO_LARGE
    return FailureReason.INVALID_TOKEN

  if isinstance(exc, _TRANSPORT_ERRORS):
    return FailureReason.UNAVAILABLE

  return FailureReason.UNKNOWN


def _topic_error_key(reason: str | None) -> str:
  return (reason or "").strip().upper().replace("-", "_")


def classify_topic_error(reason: str | None) -> FailureReason:
  """Map a topic-management error reason onto a failure reason."""
  return _TOPIC_ERROR_REASONS.get(_topic_error_key(reason), FailureReason.UNKNOWN)


def _raise_gateway_error(exc: firebase_exceptions.FirebaseError, *, operation: str) -> None:
  """Re-raise a whole-call SDK failure as a transport or rejection error."""
  if isinstance(exc, _TRANSPORT_ERRORS):
    raise GatewayTransportError(f"FCM {operation} transport failure (code={exc.code}): {exc}") from exc

  raise GatewayRejectedError(classify_firebase_error(exc), f"FCM {operation} rejected (code={exc.code}): {exc}") from exc


def _is_transport_outage(responses: Sequence[messaging.SendResponse]) -> bool:
  """Return True when every message in a chunk failed to reach FCM."""
  return bool(responses) and all(not response.success and isinstance(response.exception, _TRANSPORT_ERRORS) for response in responses)


def _android_priority(priority: Priority) -> str:
  return "high" if priority is Priority.HIGH else "normal"


def _apns_priority(priority: Priority) -> str:
  return "10" if priority is Priority.HIGH else "5"


class FirebaseGatewayClient:
  """`firebase_admin.messaging` backed gateway; the SDK app is injected, never looked up globally.

  Device ids are FCM registration tokens. Newer SDKs deprecate the `token`
  fields in favour of installation ids, so the deprecation warning is silenced
  where tokens are addressed, as the SDK does internally.
  """

  def __init__(self, app: firebase_admin.App, *, dry_run: bool = False) -> None:
    self._app = app
    self._dry_run = dry_run

  def _platform_options(self, message: NotificationMessage) -> dict:
    android = messaging.AndroidConfig(priority=_android_priority(message.priority), notification=messaging.AndroidNotification(sound=message.sound))
    apns = messaging.APNSConfig(headers={"apns-priority": _apns_priority(message.priority)}, payload=messaging.APNSPayload(aps=messaging.Aps(sound=message.sound)))
    return {"notification": messaging.Notification(title=message.title, body=message.body), "data": dict(message.data) or None, "android": android, "apns": apns}

  def _message(self, message: NotificationMessage, **addressing: str) -> messaging.Message:
    with warnings.catch_warnings():
      warnings.simplefilter("ignore", DeprecationWarning)
      return messaging.Message(**addressing, **self._platform_options(message))

  def _multicast(self, tokens: list[str], message: NotificationMessage) -> messaging.MulticastMessage:
    with warnings.catch_warnings():
      warnings.simplefilter("ignore", DeprecationWarning)
      return messaging.MulticastMessage(tokens=tokens, **self._platform_options(message))

  def send_to_devices(self, ids: Sequence[str], message: NotificationMessage) -> list[RecipientResult]:
    """Send to device ids, chunked to the SDK's multicast ceiling; results keep input order.

    Raises GatewayTransportError only while nothing has been delivered, so a
    retry of the whole call never reaches a device twice. Once a chunk has gone
    out, later transport failures are reported per recipient as unavailable.
    """
    results: list[RecipientResult] = []
    delivered = False

    for start in range(0, len(ids), FCM_MULTICAST_LIMIT):
      chunk = list(ids[start : start + FCM_MULTICAST_LIMIT])
      try:
        batch_response = messaging.send_each_for_multicast(self._multicast(chunk, message), dry_run=self._dry_run, app=self._app)
      except firebase_exceptions.FirebaseError as exc:
        if not delivered:
          _raise_gateway_error(exc, operation="multicast")
        reason = classify_firebase_error(exc)
        logger.warning("FCM multicast chunk failed after earlier chunks were sent: offset=%d count=%d reason=%s error=%s", start, len(chunk), reason.value, exc)
        results.extend(RecipientResult(device_id=token, error=reason) for token in chunk)
        continue

      # The SDK reports network failures per message instead of raising.
      if not delivered and _is_transport_outage(batch_response.responses):
        first_error = batch_response.responses[0].exception
        raise GatewayTransportError(f"FCM multicast transport failure for all {len(chunk)} tokens (code={first_error.code}): {first_error}") from first_error

      # send_each_for_multicast preserves the order of the tokens.
      for token, response in zip(chunk, batch_response.responses, strict=True):
        if response.success:
          delivered = True
          results.append(RecipientResult(device_id=token, message_id=response.message_id))
        else:
          reason = classify_firebase_error(response.exception)
          logger.debug("FCM delivery failed token_prefix=%s reason=%s error=%s", token[:12], reason.value, response.exception)
          results.append(RecipientResult(device_id=token, error=reason))

    return results

  def send_to_topic(self, name: str, message: NotificationMessage) -> TopicSendResponse:
    """Publish to a topic; FCM answers with a single message id."""
    try:
      message_id = messaging.send(self._message(message, topic=name), dry_run=self._dry_run, app=self._app)
    except firebase_exceptions.FirebaseError as exc:
      _raise_gateway_error(exc, operation="topic send")
    return TopicSendResponse(message_id=message_id)

  def send_to_group(self, notification_key: str, message: NotificationMessage) -> GroupSendResponse:
    """Send to a device group by addressing its notification key as the token.

    The v1 API does not report per-member results, so counts stay unknown.
    """
    try:
      message_id = messaging.send(self._message(message, token=notification_key), dry_run=self._dry_run, app=self._app)
    except firebase_exceptions.FirebaseError as exc:
      _raise_gateway_error(exc, operation="group send")
    return GroupSendResponse(message_id=message_id)

  def subscribe_to_topic(self, ids: Sequence[str], topic: str) -> list[RecipientResult]:
    """Subscribe device ids to a topic."""
    try:
      response = messaging.subscribe_to_topic(list(ids), topic, app=self._app)
    except firebase_exceptions.FirebaseError as exc:
      _raise_gateway_error(exc, operation="topic subscribe")
    return _topic_management_results(ids, response, operation="topic subscribe")

  def unsubscribe_from_topic(self, ids: Sequence[str], topic: str) -> list[RecipientResult]:
    """Unsubscribe device ids from a topic."""
    try:
      response = messaging.unsubscribe_from_topic(list(ids), topic, app=self._app)
    except firebase_exceptions.FirebaseError as exc:
      _raise_gateway_error(exc, operation="topic unsubscribe")
    return _topic_management_results(ids, response, operation="topic unsubscribe")


def _topic_management_results(ids: Sequence[str], response: messaging.TopicManagementResponse, *, operation: str) -> list[RecipientResult]:
  """Expand a topic-management response (errors by index only) into one result per id.

  Membership changes are idempotent, so a response where every id failed with
  a backend error is raised as a transport failure and retried as a whole.
  """
  errors = {error.index: classify_topic_error(error.reason) for error in response.errors}
  if ids and len(errors) == len(ids) and set(errors.values()) == {FailureReason.UNAVAILABLE}:
    raise GatewayTransportError(f"FCM {operation} failed for all {len(ids)} tokens with backend errors")
  return [RecipientResult(device_id=device_id, error=errors.get(index)) for index, device_id in enumerate(ids)]


class NullGatewayClient:
  """No-op gateway used when push delivery is disabled or unconfigured."""

  def send_to_devices(self, ids: Sequence[str], message: NotificationMessage) -> list[RecipientResult]:
    logger.debug("Push delivery disabled; dropping device send count=%d", len(ids))
    return [RecipientResult(device_id=device_id) for device_id in ids]

  def send_to_topic(self, name: str, message: NotificationMessage) -> TopicSendResponse:
    logger.debug("Push delivery disabled; dropping topic send topic=%s", name)
    return TopicSendResponse()

  def send_to_group(self, notification_key: str, message: NotificationMessage) -> GroupSendResponse:
    logger.debug("Push delivery disabled; dropping group send")
    return GroupSendResponse()

  def subscribe_to_topic(self, ids: Sequence[str], topic: str) -> list[RecipientResult]:
    logger.debug("Push delivery disabled; dropping topic subscribe topic=%s count=%d", topic, len(ids))
    return [RecipientResult(device_id=device_id) for device_id in ids]

  def unsubscribe_from_topic(self, ids: Sequence[str], topic: str) -> list[RecipientResult]:
    logger.debug("Push delivery disabled; dropping topic unsubscribe topic=%s count=%d", topic, len(ids))
    return [RecipientResult(device_id=device_id) for device_id in ids]
