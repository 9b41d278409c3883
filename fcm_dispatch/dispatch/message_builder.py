"""Build gateway-agnostic notification messages from domain content."""

from __future__ import annotations

import json
from typing import Any

from fcm_dispatch.dispatch.contracts import InvalidMessageError, NotificationMessage, Priority, PushContent

# FCM rejects message payloads above 4KB.
MAX_PAYLOAD_BYTES = 4096
DEFAULT_SOUND = "default"
DEFAULT_PRIORITY = Priority.HIGH

_RESERVED_DATA_KEYS = frozenset({"from", "notification", "message_type"})
_RESERVED_DATA_PREFIXES = ("google.", "gcm.")


def payload_size_bytes(message: NotificationMessage) -> int:
  """Return the approximate serialized size of a message payload in bytes."""
  # Mirror the gateway's JSON envelope with compact separators so the estimate stays conservative.
  envelope = {"notification": {"title": message.title, "body": message.body, "sound": message.sound}, "data": dict(message.data)}
  return len(json.dumps(envelope, separators=(",", ":"), ensure_ascii=False).encode("utf-8"))


def _coerce_data(data: Any) -> dict[str, str]:
  if not data:
    return {}

  coerced: dict[str, str] = {}
  for key, value in dict(data).items():
    name = str(key)
    if name in _RESERVED_DATA_KEYS or name.startswith(_RESERVED_DATA_PREFIXES):
      raise InvalidMessageError(f"Data key {name!r} is reserved by the gateway.")
    # The gateway only accepts string values in the data payload.
    coerced[name] = value if isinstance(value, str) else str(value)
  return coerced


def _coerce_priority(raw: Priority | str | None) -> Priority:
  if raw is None:
    return DEFAULT_PRIORITY
  try:
    return Priority(raw)
  except ValueError as exc:
    raise InvalidMessageError(f"Unsupported priority: {raw!r}") from exc


class MessageBuilder:
  """Apply delivery policy and validation to domain content."""

  def __init__(self, *, default_sound: str | None = DEFAULT_SOUND, default_priority: Priority = DEFAULT_PRIORITY, max_payload_bytes: int = MAX_PAYLOAD_BYTES) -> None:
    self._default_sound = default_sound
    self._default_priority = default_priority
    self._max_payload_bytes = max_payload_bytes

  def build(self, content: PushContent | NotificationMessage) -> NotificationMessage:
    """Return a validated NotificationMessage; raise InvalidMessageError on bad input."""
    body = (content.body or "").strip()
    if not body:
      raise InvalidMessageError("Notification body must not be empty.")

    # Caller-provided values win over policy defaults.
    priority = self._default_priority if content.priority is None else _coerce_priority(content.priority)
    sound = content.sound if content.sound is not None else self._default_sound
    title = content.title.strip() if content.title and content.title.strip() else None

    message = NotificationMessage(body=body, title=title, data=_coerce_data(content.data), sound=sound, priority=priority)

    size = payload_size_bytes(message)
    if size > self._max_payload_bytes:
      raise InvalidMessageError(f"Notification payload is {size} bytes; the limit is {self._max_payload_bytes}.")

    return message


def build_message(content: PushContent | NotificationMessage) -> NotificationMessage:
  """Build a message with the default delivery policy."""
  return MessageBuilder().build(content)
