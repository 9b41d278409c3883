"""Split device-id sequences into gateway-compliant batches."""

from __future__ import annotations

from collections.abc import Sequence

from fcm_dispatch.dispatch.contracts import Batch

# The gateway rejects calls addressing more recipients than this outright.
MAX_IDS_PER_CALL = 1000


def split(ids: Sequence[str], max_per_batch: int = MAX_IDS_PER_CALL) -> list[Batch]:
  """Split ids into ordered batches of at most `max_per_batch` entries."""
  if max_per_batch < 1:
    raise ValueError("max_per_batch must be at least 1.")

  return [Batch(index=index, ids=tuple(ids[start : start + max_per_batch])) for index, start in enumerate(range(0, len(ids), max_per_batch))]
