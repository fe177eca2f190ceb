# MIT License
# Copyright (c) 2025 Hashborn

"""
Reward Rate Ledger

Append-only history of reward-rate changes. Each checkpoint holds the rate in
force from its effective_at until the next checkpoint.

    integral(t0, t1) = sum(rate_i * overlap([t0, t1), [start_i, start_i+1)))

Lookups use binary search over checkpoint times, so the cost depends on the
number of rate changes inside the window, never on elapsed time.
"""

import bisect
import logging
from typing import List, Optional
from ...protocol.types.common import InvalidRate, NonMonotonicTime
from ...protocol.types.deposit import RateCheckpoint
from ..storage.db import StorageDB

logger = logging.getLogger(__name__)


class RateLedger:
    def __init__(self, initial_rate: int, start: int, db: Optional[StorageDB] = None):
        """
        Args:
            initial_rate: Rate seeded as the first checkpoint
            start: Timestamp of the seed checkpoint
            db: Optional storage; existing checkpoints there take precedence
        """
        self.db = db
        self._checkpoints: List[RateCheckpoint] = []
        # Parallel list of effective_at for bisect
        self._times: List[int] = []

        if db is not None:
            for effective_at, rate in db.get_checkpoints():
                self._push(RateCheckpoint(effective_at=effective_at, rate=rate))

        if self._checkpoints:
            logger.info(f"Rate ledger loaded with {len(self._checkpoints)} checkpoint(s)")
        else:
            self._validate_rate(initial_rate)
            self._append(RateCheckpoint(effective_at=start, rate=initial_rate))
            logger.info(f"Rate ledger seeded: rate={initial_rate} at t={start}")

    @staticmethod
    def _validate_rate(rate) -> None:
        if isinstance(rate, bool) or not isinstance(rate, int):
            raise InvalidRate(f"Rate must be an integer amount, got {rate!r}")
        if rate < 0:
            raise InvalidRate(f"Rate must be non-negative, got {rate}")

    def _push(self, checkpoint: RateCheckpoint) -> None:
        self._checkpoints.append(checkpoint)
        self._times.append(checkpoint.effective_at)

    def _append(self, checkpoint: RateCheckpoint) -> None:
        seq = len(self._checkpoints)
        self._push(checkpoint)
        if self.db is not None:
            self.db.append_checkpoint(seq, checkpoint.effective_at, checkpoint.rate)

    @property
    def checkpoints(self) -> List[RateCheckpoint]:
        return list(self._checkpoints)

    @property
    def latest(self) -> RateCheckpoint:
        return self._checkpoints[-1]

    @property
    def start(self) -> int:
        return self._times[0]

    @property
    def current_rate(self) -> int:
        return self.latest.rate

    def append_rate(self, new_rate: int, now: int) -> RateCheckpoint:
        """
        Records a new rate effective at now.

        Raises:
            InvalidRate: rate is negative or not an integer
            NonMonotonicTime: now precedes the latest checkpoint
        """
        self._validate_rate(new_rate)
        if now < self.latest.effective_at:
            raise NonMonotonicTime(
                f"Checkpoint at t={now} precedes latest checkpoint at t={self.latest.effective_at}"
            )

        checkpoint = RateCheckpoint(effective_at=now, rate=new_rate)
        self._append(checkpoint)
        logger.info(f"Rate updated: {self._checkpoints[-2].rate} -> {new_rate} at t={now}")
        return checkpoint

    def _index_at(self, t: int) -> int:
        """Index of the checkpoint in force at t (last one with effective_at <= t)."""
        if t < self._times[0]:
            raise NonMonotonicTime(f"t={t} precedes the first checkpoint at t={self._times[0]}")
        return bisect.bisect_right(self._times, t) - 1

    def rate_at(self, t: int) -> int:
        return self._checkpoints[self._index_at(t)].rate

    def integral(self, t0: int, t1: int) -> int:
        """
        Exact sum of rate * duration over [t0, t1).

        Raises:
            NonMonotonicTime: t1 < t0, or t0 precedes the first checkpoint
        """
        if t1 < t0:
            raise NonMonotonicTime(f"Interval end t={t1} precedes start t={t0}")
        if t0 == t1:
            return 0

        i = self._index_at(t0)
        total = 0
        cursor = t0
        last = len(self._checkpoints) - 1
        while cursor < t1:
            seg_end = self._times[i + 1] if i < last else t1
            seg_end = min(seg_end, t1)
            if seg_end > cursor:
                total += self._checkpoints[i].rate * (seg_end - cursor)
                cursor = seg_end
            i += 1
            if i > last:
                break
        return total

    def __len__(self) -> int:
        return len(self._checkpoints)
