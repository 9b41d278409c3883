"""Contracts for push dispatch: value types, error taxonomy and collaborator protocols."""

from __future__ import annotations

import datetime
import enum
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Protocol

from fcm_dispatch.dispatch.topics import slugify_topic

MAX_DEVICE_GROUP_MEMBERS = 20

_TOPIC_NAME_RE = re.compile(r"^[a-zA-Z0-9\-_.~%]+$")


class Priority(str, enum.Enum):
  """Delivery priority understood by the gateway."""

  NORMAL = "normal"
  HIGH = "high"


class TargetKind(str, enum.Enum):
  """Discriminant of a delivery target."""

  DEVICES = "devices"
  TOPIC = "topic"
  DEVICE_GROUP = "device_group"


class FailureReason(str, enum.Enum):
  """Per-recipient (or per-call) failure classification."""

  INVALID_TOKEN = "invalid_token"
  NOT_REGISTERED = "not_registered"
  MESSAGE_TOO_LARGE = "message_too_large"
  RATE_LIMITED = "rate_limited"
  UNAVAILABLE = "unavailable"
  UNKNOWN = "unknown"


class OutcomeStatus(str, enum.Enum):
  """Aggregate status of a single gateway call."""

  DELIVERED = "delivered"
  PARTIAL = "partial"
  FAILED = "failed"


class DispatchError(Exception):
  """Base class for request-level dispatch failures."""


class InvalidMessageError(DispatchError):
  """Raised when a message is empty, oversized or uses reserved data keys."""


class InvalidTargetError(DispatchError):
  """Raised when a delivery target is malformed."""


class GatewayError(Exception):
  """Base class for failures raised by a gateway adapter call."""


class GatewayTransportError(GatewayError):
  """The gateway call itself failed (network, 5xx, timeout); safe to retry."""


class GatewayRejectedError(GatewayError):
  """The gateway rejected the whole call with a non-transport reason."""

  def __init__(self, reason: FailureReason, message: str | None = None) -> None:
    super().__init__(message or f"Gateway rejected call (reason={reason.value})")
    self.reason = reason


@dataclass(frozen=True)
class NotificationMessage:
  """Gateway-agnostic notification payload."""

  body: str
  title: str | None = None
  data: Mapping[str, str] = field(default_factory=dict)
  sound: str | None = None
  priority: Priority = Priority.HIGH

  def __post_init__(self) -> None:
    # Freeze the data mapping so shared messages cannot be mutated across concurrent batches.
    object.__setattr__(self, "data", MappingProxyType(dict(self.data)))


@dataclass(frozen=True)
class PushContent:
  """Domain-side message content handed to the message builder."""

  body: str
  title: str | None = None
  data: Mapping[str, Any] | None = None
  sound: str | None = None
  priority: Priority | str | None = None


@dataclass(frozen=True)
class Devices:
  """Address an explicit, ordered set of device ids."""

  ids: tuple[str, ...]
  kind: TargetKind = field(default=TargetKind.DEVICES, init=False)

  def __post_init__(self) -> None:
    # Keep the first occurrence of every id so no id can land in two batches.
    object.__setattr__(self, "ids", tuple(dict.fromkeys(self.ids)))

  def validate(self) -> None:
    """Reject blank device ids."""
    for device_id in self.ids:
      if not isinstance(device_id, str) or not device_id.strip():
        raise InvalidTargetError("Device ids must be non-empty strings.")


@dataclass(frozen=True)
class Topic:
  """Address every device subscribed to a topic."""

  name: str
  kind: TargetKind = field(default=TargetKind.TOPIC, init=False)

  @classmethod
  def from_label(cls, label: str) -> Topic:
    """Build a topic target from a human-readable label."""
    return cls(name=slugify_topic(label))

  def validate(self) -> None:
    """Reject empty names and characters FCM does not accept in topic names."""
    if not self.name or not self.name.strip():
      raise InvalidTargetError("Topic name must not be empty.")

    if not _TOPIC_NAME_RE.fullmatch(self.name):
      raise InvalidTargetError(f"Topic name contains unsupported characters: {self.name!r}")


@dataclass(frozen=True)
class DeviceGroup:
  """Address a gateway-side device group through its notification key."""

  notification_key: str
  member_count: int
  kind: TargetKind = field(default=TargetKind.DEVICE_GROUP, init=False)

  def validate(self) -> None:
    """Reject empty keys and groups above the gateway's member ceiling."""
    if not self.notification_key or not self.notification_key.strip():
      raise InvalidTargetError("Device group notification key must not be empty.")

    if self.member_count < 0:
      raise InvalidTargetError("Device group member count must not be negative.")

    if self.member_count > MAX_DEVICE_GROUP_MEMBERS:
      raise InvalidTargetError(f"Device group has {self.member_count} members; the limit is {MAX_DEVICE_GROUP_MEMBERS}.")


DeliveryTarget = Devices | Topic | DeviceGroup


def _utcnow() -> datetime.datetime:
  return datetime.datetime.now(datetime.UTC)


@dataclass(frozen=True)
class DispatchRequest:
  """A single call into the dispatch core."""

  message: PushContent | NotificationMessage
  target: DeliveryTarget
  requested_at: datetime.datetime = field(default_factory=_utcnow)
  deadline: datetime.datetime | None = None


@dataclass(frozen=True)
class Batch:
  """A contiguous slice of a device-id sequence sized for one gateway call."""

  index: int
  ids: tuple[str, ...]


@dataclass(frozen=True)
class DeliveryOutcome:
  """Result of one batch (one gateway call)."""

  batch_index: int
  target_kind: TargetKind
  succeeded: frozenset[str] = frozenset()
  failed: Mapping[str, FailureReason] = field(default_factory=dict)
  status: OutcomeStatus = OutcomeStatus.DELIVERED
  error: FailureReason | None = None
  attempts: int = 1
  message_id: str | None = None
  success_count: int | None = None

  def __post_init__(self) -> None:
    object.__setattr__(self, "failed", MappingProxyType(dict(self.failed)))


@dataclass(frozen=True)
class DispatchResult:
  """Aggregated result of a dispatch request, in batch order."""

  total_requested: int
  total_succeeded: int
  outcomes: tuple[DeliveryOutcome, ...] = ()
  invalidations: frozenset[str] = frozenset()
  retry_candidates: frozenset[str] = frozenset()
  rejected: frozenset[str] = frozenset()

  @property
  def failed(self) -> dict[str, FailureReason]:
    """Merge per-batch failures into a single mapping."""
    merged: dict[str, FailureReason] = {}
    for outcome in self.outcomes:
      merged.update(outcome.failed)
    return merged

  @property
  def status(self) -> OutcomeStatus:
    """Summarise outcome statuses; an empty dispatch counts as delivered."""
    statuses = {outcome.status for outcome in self.outcomes}
    if not statuses or statuses == {OutcomeStatus.DELIVERED}:
      return OutcomeStatus.DELIVERED
    if statuses == {OutcomeStatus.FAILED}:
      return OutcomeStatus.FAILED
    return OutcomeStatus.PARTIAL


@dataclass(frozen=True)
class RecipientResult:
  """Per-recipient entry of a gateway response."""

  device_id: str
  message_id: str | None = None
  error: FailureReason | None = None

  @property
  def success(self) -> bool:
    return self.error is None


@dataclass(frozen=True)
class TopicSendResponse:
  """Call-level response for a topic send."""

  message_id: str | None = None


@dataclass(frozen=True)
class GroupSendResponse:
  """Response for a device-group send; counts are None when the gateway does not report them."""

  message_id: str | None = None
  success_count: int | None = None
  failure_count: int | None = None
  failed_ids: tuple[str, ...] = ()


class GatewayClient(Protocol):
  """Capability-shaped binding to the push gateway's send API."""

  def send_to_devices(self, ids: Sequence[str], message: NotificationMessage) -> list[RecipientResult]:
    """Send to explicit device ids and return one result per id, in order."""

  def send_to_topic(self, name: str, message: NotificationMessage) -> TopicSendResponse:
    """Publish to a topic."""

  def send_to_group(self, notification_key: str, message: NotificationMessage) -> GroupSendResponse:
    """Send to a device group."""

  def subscribe_to_topic(self, ids: Sequence[str], topic: str) -> list[RecipientResult]:
    """Subscribe device ids to a topic."""

  def unsubscribe_from_topic(self, ids: Sequence[str], topic: str) -> list[RecipientResult]:
    """Unsubscribe device ids from a topic."""


class RecipientResolver(Protocol):
  """External registry that owns device-id lifecycle."""

  def invalidate(self, device_id: str) -> None:
    """Record that a device id is no longer deliverable."""

  def resolve(self, descriptor: Any) -> DeliveryTarget:
    """Map a logical target descriptor to a concrete delivery target."""
