"""Classify per-recipient gateway failures and emit invalidation events."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from fcm_dispatch.dispatch.contracts import DeliveryOutcome, FailureReason, RecipientResolver

logger = logging.getLogger(__name__)

INVALIDATING_REASONS = frozenset({FailureReason.INVALID_TOKEN, FailureReason.NOT_REGISTERED})
TRANSIENT_REASONS = frozenset({FailureReason.RATE_LIMITED, FailureReason.UNAVAILABLE})
CALLER_DEFECT_REASONS = frozenset({FailureReason.MESSAGE_TOO_LARGE})


@dataclass(frozen=True)
class Reconciliation:
  """Device ids grouped by what the caller should do with them."""

  invalidations: frozenset[str] = frozenset()
  retry_candidates: frozenset[str] = frozenset()
  rejected: frozenset[str] = frozenset()


class FailureReconciler:
  """Turns batch outcomes into invalidations and retry candidates."""

  def summarize(self, outcomes: Iterable[DeliveryOutcome]) -> Reconciliation:
    """Group failed ids by reason class; unknown failures land in none of the groups."""
    invalidations: set[str] = set()
    retry_candidates: set[str] = set()
    rejected: set[str] = set()

    for outcome in outcomes:
      for device_id, reason in outcome.failed.items():
        if reason in INVALIDATING_REASONS:
          invalidations.add(device_id)
        elif reason in TRANSIENT_REASONS:
          retry_candidates.add(device_id)
        elif reason in CALLER_DEFECT_REASONS:
          rejected.add(device_id)

    return Reconciliation(invalidations=frozenset(invalidations), retry_candidates=frozenset(retry_candidates), rejected=frozenset(rejected))

  def reconcile(self, outcomes: Iterable[DeliveryOutcome]) -> frozenset[str]:
    """Return the device ids that should be removed from the registry."""
    return self.summarize(outcomes).invalidations

  def emit(self, invalidations: Iterable[str], resolver: RecipientResolver | None) -> int:
    """Notify the resolver of dead ids; resolver errors are logged, never raised."""
    if resolver is None:
      return 0

    emitted = 0
    for device_id in sorted(invalidations):
      try:
        resolver.invalidate(device_id)
        emitted += 1
      except Exception as exc:  # noqa: BLE001
        logger.error("Failed invalidating device id=%s error=%s", device_id, exc, exc_info=True)

    if emitted:
      logger.info("Invalidated %d device ids", emitted)
    return emitted
