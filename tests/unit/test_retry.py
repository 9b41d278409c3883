from __future__ import annotations

import datetime
import time

import pytest
from fcm_dispatch.dispatch.contracts import FailureReason, GatewayRejectedError, GatewayTransportError
from fcm_dispatch.dispatch.retry import RetryPolicy, call_with_retry, classify_gateway_failure, deadline_passed


def test_classify_transport_error_is_retryable():
  classification = classify_gateway_failure(GatewayTransportError("reset"))
  assert classification.retryable is True
  assert classification.reason is FailureReason.UNAVAILABLE


def test_classify_rejection_keeps_reason_and_is_not_retryable():
  classification = classify_gateway_failure(GatewayRejectedError(FailureReason.RATE_LIMITED))
  assert classification.retryable is False
  assert classification.reason is FailureReason.RATE_LIMITED


def test_classify_unexpected_error_is_unknown():
  classification = classify_gateway_failure(KeyError("x"))
  assert classification.retryable is False
  assert classification.reason is FailureReason.UNKNOWN


def test_backoff_grows_exponentially_and_caps():
  policy = RetryPolicy(initial_backoff_ms=100, max_backoff_ms=300, jitter=False)
  assert [policy.backoff_ms(attempt) for attempt in (1, 2, 3, 4)] == [100, 200, 300, 300]


def test_retry_policy_rejects_zero_attempts():
  with pytest.raises(ValueError):
    RetryPolicy(max_attempts=0)


def test_deadline_passed_handles_none_naive_and_aware():
  now = datetime.datetime.now(datetime.UTC)
  assert deadline_passed(None) is False
  assert deadline_passed(now - datetime.timedelta(seconds=1)) is True
  assert deadline_passed(now + datetime.timedelta(minutes=5)) is False
  assert deadline_passed((now - datetime.timedelta(seconds=1)).replace(tzinfo=None)) is True


@pytest.mark.anyio
async def test_call_with_retry_retries_transport_errors_until_exhausted(fast_retry):
  attempts = {"count": 0}

  def _flaky():
    attempts["count"] += 1
    raise GatewayTransportError("503")

  call = await call_with_retry(operation_name="test", func=_flaky, policy=fast_retry)

  assert attempts["count"] == 3
  assert call.ok is False
  assert call.attempts == 3
  assert call.failure.reason is FailureReason.UNAVAILABLE


@pytest.mark.anyio
async def test_call_with_retry_recovers_after_transient_failure(fast_retry):
  attempts = {"count": 0}

  def _recovering(value):
    attempts["count"] += 1
    if attempts["count"] == 1:
      raise GatewayTransportError("reset")
    return value

  call = await call_with_retry(operation_name="test", func=_recovering, args=("done",), policy=fast_retry)

  assert call.ok is True
  assert call.value == "done"
  assert call.attempts == 2


@pytest.mark.anyio
async def test_call_with_retry_does_not_retry_rejections(fast_retry):
  attempts = {"count": 0}

  def _rejected():
    attempts["count"] += 1
    raise GatewayRejectedError(FailureReason.MESSAGE_TOO_LARGE)

  call = await call_with_retry(operation_name="test", func=_rejected, policy=fast_retry)

  assert attempts["count"] == 1
  assert call.failure.reason is FailureReason.MESSAGE_TOO_LARGE


@pytest.mark.anyio
async def test_call_with_retry_stops_when_deadline_passes_between_attempts(fast_retry):
  attempts = {"count": 0}
  deadline = datetime.datetime.now(datetime.UTC) + datetime.timedelta(milliseconds=50)

  def _slow_failure():
    attempts["count"] += 1
    # Outlive the deadline so the retry must not start.
    time.sleep(0.1)
    raise GatewayTransportError("timeout")

  call = await call_with_retry(operation_name="test", func=_slow_failure, policy=fast_retry, deadline=deadline)

  assert attempts["count"] == 1
  assert call.failure.category == "deadline_expired"
  assert call.failure.reason is FailureReason.UNAVAILABLE
