"""Batch topic subscribe/unsubscribe calls and invalidate dead tokens found along the way."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Sequence

from starlette.concurrency import run_in_threadpool

from fcm_dispatch.dispatch.batcher import MAX_IDS_PER_CALL, split
from fcm_dispatch.dispatch.contracts import Batch, DeliveryOutcome, Devices, DispatchResult, GatewayClient, RecipientResolver, TargetKind, Topic
from fcm_dispatch.dispatch.reconciler import FailureReconciler
from fcm_dispatch.dispatch.retry import RetryPolicy, call_with_retry
from fcm_dispatch.dispatch.strategies import DevicesStrategy, parse_recipient_results

logger = logging.getLogger(__name__)


class TopicMembershipManager:
  """Manage which device ids are subscribed to a topic."""

  def __init__(self, gateway: GatewayClient, *, resolver: RecipientResolver | None = None, reconciler: FailureReconciler | None = None, retry_policy: RetryPolicy | None = None, max_in_flight: int = 10, batch_size: int = MAX_IDS_PER_CALL) -> None:
    self._gateway = gateway
    self._resolver = resolver
    self._reconciler = reconciler or FailureReconciler()
    self._retry_policy = retry_policy or RetryPolicy()
    self._max_in_flight = max_in_flight
    self._batch_size = batch_size
    # Batches that never got a response are described the same way device sends are.
    self._failure_shape = DevicesStrategy()

  async def subscribe(self, ids: Sequence[str], topic: Topic) -> DispatchResult:
    """Subscribe device ids to a topic."""
    return await self._apply("subscribe", ids, topic)

  async def unsubscribe(self, ids: Sequence[str], topic: Topic) -> DispatchResult:
    """Unsubscribe device ids from a topic."""
    return await self._apply("unsubscribe", ids, topic)

  async def _apply(self, action: str, ids: Sequence[str], topic: Topic) -> DispatchResult:
    topic.validate()
    devices = Devices(ids=tuple(ids))
    devices.validate()
    if not devices.ids:
      return DispatchResult(total_requested=0, total_succeeded=0)

    func = self._gateway.subscribe_to_topic if action == "subscribe" else self._gateway.unsubscribe_from_topic
    semaphore = asyncio.Semaphore(self._max_in_flight)

    async def _run(batch: Batch) -> DeliveryOutcome:
      async with semaphore:
        call = await call_with_retry(operation_name=f"{action}:{topic.name}[{batch.index}]", func=func, args=(batch.ids, topic.name), policy=self._retry_policy)
      if not call.ok:
        return dataclasses.replace(self._failure_shape.failed_outcome(batch.index, batch, call.failure.reason, attempts=call.attempts), target_kind=TargetKind.TOPIC)
      outcome = parse_recipient_results(batch.index, TargetKind.TOPIC, batch.ids, call.value)
      return dataclasses.replace(outcome, attempts=call.attempts)

    outcomes = tuple(await asyncio.gather(*[_run(batch) for batch in split(devices.ids, self._batch_size)]))
    summary = self._reconciler.summarize(outcomes)
    if summary.invalidations:
      await run_in_threadpool(self._reconciler.emit, summary.invalidations, self._resolver)

    total_succeeded = sum(len(outcome.succeeded) for outcome in outcomes)
    logger.info("Topic %s finished topic=%s requested=%d succeeded=%d invalidations=%d", action, topic.name, len(devices.ids), total_succeeded, len(summary.invalidations))
    return DispatchResult(
      total_requested=len(devices.ids),
      total_succeeded=total_succeeded,
      outcomes=outcomes,
      invalidations=summary.invalidations,
      retry_candidates=summary.retry_candidates,
      rejected=summary.rejected,
    )
