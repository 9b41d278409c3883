"""Routes for dispatching push notifications and managing topic membership."""

from __future__ import annotations

import datetime
from typing import Annotated, Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field, model_validator

from fcm_dispatch.api.deps import get_coordinator, get_topic_manager, verify_api_secret
from fcm_dispatch.dispatch.contracts import DeliveryOutcome, DeliveryTarget, DeviceGroup, Devices, DispatchRequest, DispatchResult, Priority, PushContent, Topic
from fcm_dispatch.dispatch.coordinator import DispatchCoordinator
from fcm_dispatch.dispatch.topic_membership import TopicMembershipManager

router = APIRouter(dependencies=[Depends(verify_api_secret)])


class MessagePayload(BaseModel):
  """Notification content as sent by callers."""

  body: str = Field(min_length=1, max_length=4096)
  title: str | None = Field(default=None, max_length=1024)
  data: dict[str, str | int | float | bool] = Field(default_factory=dict)
  sound: str | None = Field(default=None, max_length=256)
  priority: Priority | None = None
  model_config = ConfigDict(extra="forbid")


class DevicesTargetPayload(BaseModel):
  kind: Literal["devices"]
  ids: list[str]
  model_config = ConfigDict(extra="forbid")


class TopicTargetPayload(BaseModel):
  """Topic addressed either by its name or by a human-readable label."""

  kind: Literal["topic"]
  name: str | None = None
  label: str | None = None
  model_config = ConfigDict(extra="forbid")

  @model_validator(mode="after")
  def _exactly_one_of_name_or_label(self) -> TopicTargetPayload:
    if (self.name is None) == (self.label is None):
      raise ValueError("Provide exactly one of 'name' or 'label'.")
    return self


class DeviceGroupTargetPayload(BaseModel):
  kind: Literal["device_group"]
  notification_key: str
  member_count: int = Field(ge=0)
  model_config = ConfigDict(extra="forbid")


TargetPayload = Annotated[DevicesTargetPayload | TopicTargetPayload | DeviceGroupTargetPayload, Field(discriminator="kind")]


class DispatchPayload(BaseModel):
  message: MessagePayload
  target: TargetPayload
  deadline_seconds: float | None = Field(default=None, gt=0)
  model_config = ConfigDict(extra="forbid")


class TopicMembershipPayload(BaseModel):
  ids: list[str]
  model_config = ConfigDict(extra="forbid")


class OutcomeResponse(BaseModel):
  batch_index: int
  target_kind: str
  status: str
  error: str | None
  attempts: int
  message_id: str | None
  succeeded: int
  failed: dict[str, str]


class DispatchResultResponse(BaseModel):
  status: str
  total_requested: int
  total_succeeded: int
  outcomes: list[OutcomeResponse]
  invalidations: list[str]
  retry_candidates: list[str]
  rejected: list[str]


def _to_target(payload: DevicesTargetPayload | TopicTargetPayload | DeviceGroupTargetPayload) -> DeliveryTarget:
  if isinstance(payload, DevicesTargetPayload):
    return Devices(ids=tuple(payload.ids))
  if isinstance(payload, TopicTargetPayload):
    return Topic.from_label(payload.label) if payload.label is not None else Topic(name=payload.name)
  return DeviceGroup(notification_key=payload.notification_key, member_count=payload.member_count)


def _outcome_response(outcome: DeliveryOutcome) -> OutcomeResponse:
  return OutcomeResponse(
    batch_index=outcome.batch_index,
    target_kind=outcome.target_kind.value,
    status=outcome.status.value,
    error=outcome.error.value if outcome.error else None,
    attempts=outcome.attempts,
    message_id=outcome.message_id,
    succeeded=len(outcome.succeeded),
    failed={device_id: reason.value for device_id, reason in outcome.failed.items()},
  )


def _result_response(result: DispatchResult) -> DispatchResultResponse:
  return DispatchResultResponse(
    status=result.status.value,
    total_requested=result.total_requested,
    total_succeeded=result.total_succeeded,
    outcomes=[_outcome_response(outcome) for outcome in result.outcomes],
    invalidations=sorted(result.invalidations),
    retry_candidates=sorted(result.retry_candidates),
    rejected=sorted(result.rejected),
  )


@router.post("/dispatch", response_model=DispatchResultResponse)
async def dispatch_notification(payload: DispatchPayload, coordinator: Annotated[DispatchCoordinator, Depends(get_coordinator)]) -> DispatchResultResponse:
  """Dispatch one notification; partial failures are reported in the body, not as errors."""
  requested_at = datetime.datetime.now(datetime.UTC)
  deadline = requested_at + datetime.timedelta(seconds=payload.deadline_seconds) if payload.deadline_seconds else None
  message = PushContent(body=payload.message.body, title=payload.message.title, data=payload.message.data, sound=payload.message.sound, priority=payload.message.priority)

  result = await coordinator.dispatch(DispatchRequest(message=message, target=_to_target(payload.target), requested_at=requested_at, deadline=deadline))
  return _result_response(result)


@router.post("/topics/{topic}/subscribe", response_model=DispatchResultResponse)
async def subscribe_to_topic(topic: str, payload: TopicMembershipPayload, manager: Annotated[TopicMembershipManager, Depends(get_topic_manager)]) -> DispatchResultResponse:
  """Subscribe device ids to a topic."""
  return _result_response(await manager.subscribe(payload.ids, Topic(name=topic)))


@router.post("/topics/{topic}/unsubscribe", response_model=DispatchResultResponse)
async def unsubscribe_from_topic(topic: str, payload: TopicMembershipPayload, manager: Annotated[TopicMembershipManager, Depends(get_topic_manager)]) -> DispatchResultResponse:
  """Unsubscribe device ids from a topic."""
  return _result_response(await manager.unsubscribe(payload.ids, Topic(name=topic)))
