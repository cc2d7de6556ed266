"""
Shard Counter: per-shard k-mer counts.

A code belongs to shard (code & (shards - 1)). Shard ownership depends only
on the code, so two shards never hold the same key and no locking is needed
as long as each ShardCounter is driven by a single worker.
"""

from __future__ import annotations

from typing import Dict, List

import numpy as np


def partition_batch(batch: np.ndarray, shards: int) -> List[np.ndarray]:
    """
    Split a batch into one sub-batch per shard (used by direct routing).

    Window order is kept inside each sub-batch.
    """
    sids = (batch & np.uint64(shards - 1)).astype(np.int64, copy=False)
    return [batch[sids == sid] for sid in range(shards)]


class ShardCounter:
    """
    Owns the count map for one shard.

    consume() accepts any batch; codes owned by other shards are dropped,
    since in broadcast routing they reach their own shard as well.
    """

    def __init__(self, shard_id: int, shards: int):
        if not 0 <= shard_id < shards:
            raise ValueError(f"shard id {shard_id} outside [0, {shards}).")
        self.shard_id = shard_id
        self.shards = shards
        self.counts: Dict[int, int] = {}
        self.batches = 0
        self.kept = 0
        self._mask = np.uint64(shards - 1)
        self._sid = np.uint64(shard_id)

    def consume(self, batch: np.ndarray) -> int:
        """Count the codes of 'batch' owned by this shard; returns how many were kept."""
        self.batches += 1
        if batch.size == 0:
            return 0
        mine = batch[(batch & self._mask) == self._sid]
        if mine.size == 0:
            return 0
        codes, hits = np.unique(mine, return_counts=True)
        counts = self.counts
        for code, n in zip(codes.tolist(), hits.tolist()):
            counts[code] = counts.get(code, 0) + n
        self.kept += int(mine.size)
        return int(mine.size)

    @property
    def distinct(self) -> int:
        return len(self.counts)

    @property
    def total(self) -> int:
        return sum(self.counts.values())
