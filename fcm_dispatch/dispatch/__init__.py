"""Notification dispatch core."""

from fcm_dispatch.dispatch.batcher import MAX_IDS_PER_CALL, split
from fcm_dispatch.dispatch.contracts import (
  Batch,
  DeliveryOutcome,
  DeliveryTarget,
  DeviceGroup,
  Devices,
  DispatchError,
  DispatchRequest,
  DispatchResult,
  FailureReason,
  GatewayClient,
  GatewayRejectedError,
  GatewayTransportError,
  InvalidMessageError,
  InvalidTargetError,
  NotificationMessage,
  OutcomeStatus,
  Priority,
  PushContent,
  RecipientResolver,
  Topic,
)
from fcm_dispatch.dispatch.coordinator import DispatchCoordinator
from fcm_dispatch.dispatch.message_builder import MessageBuilder, build_message
from fcm_dispatch.dispatch.reconciler import FailureReconciler
from fcm_dispatch.dispatch.retry import RetryPolicy
from fcm_dispatch.dispatch.topic_membership import TopicMembershipManager
from fcm_dispatch.dispatch.topics import slugify_topic

__all__ = [
  "MAX_IDS_PER_CALL",
  "Batch",
  "DeliveryOutcome",
  "DeliveryTarget",
  "DeviceGroup",
  "Devices",
  "DispatchCoordinator",
  "DispatchError",
  "DispatchRequest",
  "DispatchResult",
  "FailureReason",
  "FailureReconciler",
  "GatewayClient",
  "GatewayRejectedError",
  "GatewayTransportError",
  "InvalidMessageError",
  "InvalidTargetError",
  "MessageBuilder",
  "NotificationMessage",
  "OutcomeStatus",
  "Priority",
  "PushContent",
  "RecipientResolver",
  "RetryPolicy",
  "Topic",
  "TopicMembershipManager",
  "build_message",
  "slugify_topic",
  "split",
]
