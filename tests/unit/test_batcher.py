from __future__ import annotations

import math

import pytest
from fcm_dispatch.dispatch.batcher import MAX_IDS_PER_CALL, split


def _ids(count: int) -> list[str]:
  return [f"token-{index}" for index in range(count)]


@pytest.mark.parametrize("count", [1, 999, 1000, 1001, 2500, 4000])
def test_split_produces_ceil_batches_preserving_order(count):
  ids = _ids(count)

  batches = split(ids)

  assert len(batches) == math.ceil(count / MAX_IDS_PER_CALL)
  assert all(len(batch.ids) <= MAX_IDS_PER_CALL for batch in batches)
  assert [device_id for batch in batches for device_id in batch.ids] == ids
  assert [batch.index for batch in batches] == list(range(len(batches)))


def test_split_2500_ids_into_1000_1000_500():
  assert [len(batch.ids) for batch in split(_ids(2500))] == [1000, 1000, 500]


def test_split_empty_input_yields_no_batches():
  assert split([]) == []


def test_split_respects_custom_batch_size():
  batches = split(["a", "b", "c", "d", "e"], 2)
  assert [batch.ids for batch in batches] == [("a", "b"), ("c", "d"), ("e",)]


@pytest.mark.parametrize("size", [0, -1])
def test_split_rejects_non_positive_batch_size(size):
  with pytest.raises(ValueError):
    split(["a"], size)
