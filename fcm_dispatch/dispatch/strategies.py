"""Delivery strategies: how a batch is addressed, sent and parsed per target kind."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from fcm_dispatch.dispatch.batcher import MAX_IDS_PER_CALL, split
from fcm_dispatch.dispatch.contracts import (
  Batch,
  DeliveryOutcome,
  DeliveryTarget,
  DeviceGroup,
  Devices,
  FailureReason,
  GatewayClient,
  NotificationMessage,
  OutcomeStatus,
  RecipientResult,
  TargetKind,
  Topic,
)


def _status_for(*, succeeded: int, failed: int) -> OutcomeStatus:
  if failed == 0:
    return OutcomeStatus.DELIVERED
  if succeeded == 0:
    return OutcomeStatus.FAILED
  return OutcomeStatus.PARTIAL


def parse_recipient_results(index: int, kind: TargetKind, ids: Sequence[str], results: Sequence[RecipientResult]) -> DeliveryOutcome:
  """Split a per-recipient gateway response into succeeded and failed ids."""
  by_id = {result.device_id: result for result in results}

  succeeded: set[str] = set()
  failed: dict[str, FailureReason] = {}
  for device_id in ids:
    result = by_id.get(device_id)
    # Ids the gateway left out of its response cannot be counted as delivered.
    if result is None:
      failed[device_id] = FailureReason.UNKNOWN
    elif result.success:
      succeeded.add(device_id)
    else:
      failed[device_id] = result.error

  return DeliveryOutcome(batch_index=index, target_kind=kind, succeeded=frozenset(succeeded), failed=failed, status=_status_for(succeeded=len(succeeded), failed=len(failed)))


class DeliveryStrategy(ABC):
  """Common contract shared by every target kind."""

  kind: TargetKind

  @abstractmethod
  def plan(self, target: DeliveryTarget, *, batch_size: int = MAX_IDS_PER_CALL) -> list[Any]:
    """Return the addressing units for a target, one per gateway call."""

  @abstractmethod
  def send(self, index: int, addressing: Any, message: NotificationMessage, gateway: GatewayClient) -> DeliveryOutcome:
    """Make one gateway call and parse its response. Gateway errors propagate."""

  @abstractmethod
  def failed_outcome(self, index: int, addressing: Any, reason: FailureReason, *, attempts: int) -> DeliveryOutcome:
    """Describe a batch whose call never produced a gateway response."""

  @abstractmethod
  def requested(self, target: DeliveryTarget) -> int:
    """Number of recipients the target addresses, as counted in totals."""

  def succeeded_count(self, outcome: DeliveryOutcome) -> int:
    return len(outcome.succeeded)


class DevicesStrategy(DeliveryStrategy):
  """One gateway call per batch of explicit device ids."""

  kind = TargetKind.DEVICES

  def plan(self, target: Devices, *, batch_size: int = MAX_IDS_PER_CALL) -> list[Batch]:
    return split(target.ids, batch_size)

  def send(self, index: int, addressing: Batch, message: NotificationMessage, gateway: GatewayClient) -> DeliveryOutcome:
    results = gateway.send_to_devices(addressing.ids, message)
    return parse_recipient_results(index, self.kind, addressing.ids, results)

  def failed_outcome(self, index: int, addressing: Batch, reason: FailureReason, *, attempts: int) -> DeliveryOutcome:
    return DeliveryOutcome(batch_index=index, target_kind=self.kind, failed=dict.fromkeys(addressing.ids, reason), status=OutcomeStatus.FAILED, error=reason, attempts=attempts)

  def requested(self, target: Devices) -> int:
    return len(target.ids)


class TopicStrategy(DeliveryStrategy):
  """A single publish; the gateway reports no per-device results."""

  kind = TargetKind.TOPIC

  def plan(self, target: Topic, *, batch_size: int = MAX_IDS_PER_CALL) -> list[str]:
    return [target.name]

  def send(self, index: int, addressing: str, message: NotificationMessage, gateway: GatewayClient) -> DeliveryOutcome:
    response = gateway.send_to_topic(addressing, message)
    return DeliveryOutcome(batch_index=index, target_kind=self.kind, status=OutcomeStatus.DELIVERED, message_id=response.message_id)

  def failed_outcome(self, index: int, addressing: str, reason: FailureReason, *, attempts: int) -> DeliveryOutcome:
    return DeliveryOutcome(batch_index=index, target_kind=self.kind, status=OutcomeStatus.FAILED, error=reason, attempts=attempts)

  def requested(self, target: Topic) -> int:
    return 0


class DeviceGroupStrategy(DeliveryStrategy):
  """A single send to a notification key, with optional partial-failure ids."""

  kind = TargetKind.DEVICE_GROUP

  def plan(self, target: DeviceGroup, *, batch_size: int = MAX_IDS_PER_CALL) -> list[DeviceGroup]:
    return [target]

  def send(self, index: int, addressing: DeviceGroup, message: NotificationMessage, gateway: GatewayClient) -> DeliveryOutcome:
    response = gateway.send_to_group(addressing.notification_key, message)

    # Group partial failures carry no reason; the gateway asks senders to retry them.
    failed = dict.fromkeys(response.failed_ids, FailureReason.UNAVAILABLE)
    failure_count = max(response.failure_count or 0, len(failed))
    if response.success_count is None:
      status = OutcomeStatus.DELIVERED if failure_count == 0 else OutcomeStatus.PARTIAL
    else:
      status = _status_for(succeeded=response.success_count, failed=failure_count)

    return DeliveryOutcome(batch_index=index, target_kind=self.kind, failed=failed, status=status, message_id=response.message_id, success_count=response.success_count)

  def failed_outcome(self, index: int, addressing: DeviceGroup, reason: FailureReason, *, attempts: int) -> DeliveryOutcome:
    return DeliveryOutcome(batch_index=index, target_kind=self.kind, status=OutcomeStatus.FAILED, error=reason, attempts=attempts, success_count=0)

  def requested(self, target: DeviceGroup) -> int:
    return target.member_count

  def succeeded_count(self, outcome: DeliveryOutcome) -> int:
    return outcome.success_count or 0


_STRATEGIES: dict[TargetKind, DeliveryStrategy] = {TargetKind.DEVICES: DevicesStrategy(), TargetKind.TOPIC: TopicStrategy(), TargetKind.DEVICE_GROUP: DeviceGroupStrategy()}


def strategy_for(target: DeliveryTarget) -> DeliveryStrategy:
  """Select the strategy for a target by its kind discriminant."""
  return _STRATEGIES[target.kind]
