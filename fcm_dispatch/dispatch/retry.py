"""Gateway call retry logic with retryable vs non-retryable failure classification."""

from __future__ import annotations

import asyncio
import datetime
import logging
import random
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from starlette.concurrency import run_in_threadpool

from fcm_dispatch.dispatch.contracts import FailureReason, GatewayRejectedError, GatewayTransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
  """Bounded exponential backoff for transport-level gateway failures."""

  max_attempts: int = 3
  initial_backoff_ms: int = 500
  max_backoff_ms: int = 8000
  jitter: bool = True

  def __post_init__(self) -> None:
    if self.max_attempts < 1:
      raise ValueError("max_attempts must be at least 1.")
    if self.initial_backoff_ms < 0 or self.max_backoff_ms < 0:
      raise ValueError("Backoff values must not be negative.")

  def backoff_ms(self, attempt: int) -> float:
    """Return the delay before the attempt following `attempt` (1-based)."""
    backoff = float(min(self.initial_backoff_ms * (2 ** (attempt - 1)), self.max_backoff_ms))
    if self.jitter and backoff > 0:
      # Add +/-25% jitter so concurrent batches do not retry in lockstep.
      jitter_range = backoff * 0.25
      backoff += random.uniform(-jitter_range, jitter_range)
    return backoff


@dataclass(frozen=True)
class GatewayFailureClassification:
  """Classification result for a failed gateway call."""

  retryable: bool
  reason: FailureReason
  category: str


@dataclass(frozen=True)
class GatewayCall:
  """Terminal state of a gateway call after retries."""

  value: Any = None
  failure: GatewayFailureClassification | None = None
  attempts: int = 0

  @property
  def ok(self) -> bool:
    return self.failure is None


def classify_gateway_failure(exc: BaseException) -> GatewayFailureClassification:
  """
  Classify an adapter exception as retryable or not.

  Retryable: transport errors (connection resets, 5xx, timeouts).
  Non-retryable: call-level rejections carrying a reason (rate limit, payload
  too large, dead group key) and anything the adapter did not classify.
  """
  if isinstance(exc, GatewayTransportError):
    return GatewayFailureClassification(retryable=True, reason=FailureReason.UNAVAILABLE, category="transport")

  if isinstance(exc, GatewayRejectedError):
    return GatewayFailureClassification(retryable=False, reason=exc.reason, category="rejected")

  return GatewayFailureClassification(retryable=False, reason=FailureReason.UNKNOWN, category=f"unexpected:{type(exc).__name__}")


def deadline_passed(deadline: datetime.datetime | None) -> bool:
  """Return True when a deadline is set and already in the past."""
  if deadline is None:
    return False
  # Naive deadlines are treated as UTC.
  if deadline.tzinfo is None:
    deadline = deadline.replace(tzinfo=datetime.UTC)
  return datetime.datetime.now(datetime.UTC) >= deadline


async def call_with_retry(*, operation_name: str, func: Callable[..., Any], args: tuple = (), policy: RetryPolicy, deadline: datetime.datetime | None = None) -> GatewayCall:
  """
  Run a blocking gateway call in the thread pool, retrying transport failures.

  Args:
    operation_name: Human-readable name for logging (e.g., "devices[2]")
    func: Blocking adapter callable
    args: Positional arguments for func
    policy: Attempt cap and backoff shape
    deadline: No attempt starts after this instant

  Returns:
    GatewayCall holding either the adapter's return value or the failure classification
  """
  attempt = 0

  while attempt < policy.max_attempts:
    attempt += 1

    try:
      value = await run_in_threadpool(func, *args)
      if attempt > 1:
        logger.info("Gateway call succeeded after retry: operation=%s, attempt=%d/%d", operation_name, attempt, policy.max_attempts)
      return GatewayCall(value=value, attempts=attempt)

    except Exception as exc:  # noqa: BLE001
      classification = classify_gateway_failure(exc)

      # Unexpected adapter errors keep their traceback; classified ones do not need it.
      logger.warning(
        "Gateway call failed: operation=%s, attempt=%d/%d, category=%s, reason=%s, retryable=%s, error=%s",
        operation_name,
        attempt,
        policy.max_attempts,
        classification.category,
        classification.reason.value,
        classification.retryable,
        exc,
        exc_info=classification.category.startswith("unexpected"),
      )

      # Non-retryable failure - record immediately.
      if not classification.retryable:
        return GatewayCall(failure=classification, attempts=attempt)

      # Retryable but out of attempts.
      if attempt >= policy.max_attempts:
        logger.error("Gateway call failed after %d attempts: operation=%s, category=%s - giving up", policy.max_attempts, operation_name, classification.category)
        return GatewayCall(failure=classification, attempts=attempt)

      backoff_ms = policy.backoff_ms(attempt)
      logger.info("Retrying gateway call after backoff: operation=%s, attempt=%d/%d, backoff_ms=%.1f", operation_name, attempt, policy.max_attempts, backoff_ms)
      await asyncio.sleep(backoff_ms / 1000.0)

      # A retry is a new call; do not start it once the deadline has passed.
      if deadline_passed(deadline):
        logger.warning("Deadline passed before retry: operation=%s, attempt=%d/%d", operation_name, attempt, policy.max_attempts)
        return GatewayCall(failure=GatewayFailureClassification(retryable=False, reason=FailureReason.UNAVAILABLE, category="deadline_expired"), attempts=attempt)

  # Unreachable with max_attempts >= 1.
  raise RuntimeError(f"Gateway call {operation_name} finished without a terminal state")
