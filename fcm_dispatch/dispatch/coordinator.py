"""Dispatch coordinator: orchestrates build, batch, send and reconcile for one request."""

from __future__ import annotations

import asyncio
import dataclasses
import datetime
import logging
from typing import Any

from starlette.concurrency import run_in_threadpool

from fcm_dispatch.dispatch.batcher import MAX_IDS_PER_CALL
from fcm_dispatch.dispatch.contracts import DeliveryOutcome, DeliveryTarget, Devices, DispatchRequest, DispatchResult, FailureReason, GatewayClient, NotificationMessage, RecipientResolver
from fcm_dispatch.dispatch.message_builder import MessageBuilder
from fcm_dispatch.dispatch.reconciler import FailureReconciler
from fcm_dispatch.dispatch.retry import RetryPolicy, call_with_retry, deadline_passed
from fcm_dispatch.dispatch.strategies import DeliveryStrategy, strategy_for

logger = logging.getLogger(__name__)

DEFAULT_MAX_IN_FLIGHT = 10


class DispatchCoordinator:
  """Stateless across calls; everything a dispatch touches lives for that call only."""

  def __init__(
    self,
    gateway: GatewayClient,
    *,
    resolver: RecipientResolver | None = None,
    message_builder: MessageBuilder | None = None,
    reconciler: FailureReconciler | None = None,
    retry_policy: RetryPolicy | None = None,
    max_in_flight: int = DEFAULT_MAX_IN_FLIGHT,
    batch_size: int = MAX_IDS_PER_CALL,
    default_timeout: datetime.timedelta | None = None,
  ) -> None:
    if max_in_flight < 1:
      raise ValueError("max_in_flight must be at least 1.")
    if not 1 <= batch_size <= MAX_IDS_PER_CALL:
      raise ValueError(f"batch_size must be between 1 and {MAX_IDS_PER_CALL}.")
    self._gateway = gateway
    self._resolver = resolver
    self._message_builder = message_builder or MessageBuilder()
    self._reconciler = reconciler or FailureReconciler()
    self._retry_policy = retry_policy or RetryPolicy()
    self._max_in_flight = max_in_flight
    self._batch_size = batch_size
    self._default_timeout = default_timeout

  async def dispatch(self, request: DispatchRequest) -> DispatchResult:
    """Deliver one request and return once every batch has a terminal outcome.

    Raises InvalidTargetError or InvalidMessageError before any gateway call;
    every other failure is reported inside the result.
    """
    target = request.target
    target.validate()

    # An empty device list is a no-op, not an error.
    if isinstance(target, Devices) and not target.ids:
      logger.debug("Dispatch skipped; no device ids in target")
      return DispatchResult(total_requested=0, total_succeeded=0)

    message = self._message_builder.build(request.message)
    strategy = strategy_for(target)
    plan = strategy.plan(target, batch_size=self._batch_size)
    deadline = self._effective_deadline(request)

    logger.info("Dispatching kind=%s batches=%d requested=%d", target.kind.value, len(plan), strategy.requested(target))

    # One semaphore per request bounds in-flight gateway calls for this dispatch.
    semaphore = asyncio.Semaphore(self._max_in_flight)
    tasks = [self._run_batch(strategy, index, addressing, message, deadline, semaphore) for index, addressing in enumerate(plan)]
    outcomes = await asyncio.gather(*tasks)

    return await self._aggregate(strategy, target, tuple(outcomes))

  def dispatch_blocking(self, request: DispatchRequest) -> DispatchResult:
    """Run `dispatch` to completion for callers without a running event loop."""
    return asyncio.run(self.dispatch(request))

  def _effective_deadline(self, request: DispatchRequest) -> datetime.datetime | None:
    if request.deadline is not None or self._default_timeout is None:
      return request.deadline
    return request.requested_at + self._default_timeout

  async def _run_batch(self, strategy: DeliveryStrategy, index: int, addressing: Any, message: NotificationMessage, deadline: datetime.datetime | None, semaphore: asyncio.Semaphore) -> DeliveryOutcome:
    async with semaphore:
      # Batches that have not started by the deadline are never sent.
      if deadline_passed(deadline):
        logger.warning("Deadline passed before batch started: kind=%s batch=%d", strategy.kind.value, index)
        return strategy.failed_outcome(index, addressing, FailureReason.UNAVAILABLE, attempts=0)

      call = await call_with_retry(operation_name=f"{strategy.kind.value}[{index}]", func=strategy.send, args=(index, addressing, message, self._gateway), policy=self._retry_policy, deadline=deadline)

    if call.ok:
      return dataclasses.replace(call.value, attempts=call.attempts)
    return strategy.failed_outcome(index, addressing, call.failure.reason, attempts=call.attempts)

  async def _aggregate(self, strategy: DeliveryStrategy, target: DeliveryTarget, outcomes: tuple[DeliveryOutcome, ...]) -> DispatchResult:
    summary = self._reconciler.summarize(outcomes)
    total_succeeded = sum(strategy.succeeded_count(outcome) for outcome in outcomes)

    # Resolver calls may block on storage; keep them off the event loop.
    if summary.invalidations:
      await run_in_threadpool(self._reconciler.emit, summary.invalidations, self._resolver)

    result = DispatchResult(
      total_requested=strategy.requested(target),
      total_succeeded=total_succeeded,
      outcomes=outcomes,
      invalidations=summary.invalidations,
      retry_candidates=summary.retry_candidates,
      rejected=summary.rejected,
    )
    logger.info(
      "Dispatch finished kind=%s status=%s requested=%d succeeded=%d invalidations=%d retry_candidates=%d",
      target.kind.value,
      result.status.value,
      result.total_requested,
      result.total_succeeded,
      len(result.invalidations),
      len(result.retry_candidates),
    )
    return result
