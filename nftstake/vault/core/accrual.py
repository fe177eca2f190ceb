# MIT License
# Copyright (c) 2025 Hashborn

"""
Reward Accrual

Pure functions turning a deposit record plus the rate ledger into the reward
owed at a query time. Nothing here mutates state; the same calls back both
read-only earnings queries and settlement during claim/withdraw.

    DEPOSITED: (integral(accrual_start, now)               + carry) // time_unit
    EXITING:   (integral(accrual_start, exit_requested_at) + carry) // time_unit
    EMPTY:     0

carry is the remainder left by the previous settlement, so repeated claims
never lose the fractional part of a reward unit.
"""

from typing import Iterable, Tuple
from ...protocol.types.common import DepositState, NonMonotonicTime
from ...protocol.types.deposit import DepositRecord
from .ledger import RateLedger


def settle_window(ledger: RateLedger, start: int, end: int, time_unit: int = 1,
                  carry: int = 0) -> Tuple[int, int]:
    """
    Settles a single token over [start, end).

    Returns:
        (amount, remainder): whole reward units and the rate-seconds left over
    """
    if end < start:
        raise NonMonotonicTime(f"Window end t={end} precedes start t={start}")
    return divmod(ledger.integral(start, end) + carry, time_unit)


def earned(record: DepositRecord, ledger: RateLedger, now: int, time_unit: int = 1) -> int:
    if record.state == DepositState.EMPTY:
        return 0

    if now < record.last_touched():
        raise NonMonotonicTime(
            f"t={now} precedes last update t={record.last_touched()} of token {record.token_id}",
            token_id=record.token_id,
        )

    # Frozen at exit time
    end = record.exit_requested_at if record.state == DepositState.EXITING else now
    amount, _ = settle_window(ledger, record.accrual_start, end, time_unit, record.carry)
    return amount


def earned_total(records: Iterable[DepositRecord], ledger: RateLedger, now: int, time_unit: int = 1) -> int:
    return sum(earned(r, ledger, now, time_unit) for r in records)
