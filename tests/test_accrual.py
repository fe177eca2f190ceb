"""Tests for reward accrual over deposit records."""
import pytest

from nftstake.protocol.types.common import DepositState, NonMonotonicTime
from nftstake.protocol.types.deposit import DepositRecord
from nftstake.vault.core.accrual import earned, earned_total, settle_window
from nftstake.vault.core.ledger import RateLedger


@pytest.fixture
def ledger():
    ledger = RateLedger(100, start=0)
    ledger.append_rate(600, 60)
    ledger.append_rate(1200, 180)
    return ledger


def deposited(token_id=1, start=0):
    return DepositRecord(token_id=token_id, depositor="alice",
                         state=DepositState.DEPOSITED, accrual_start=start)


def exiting(token_id=1, start=0, exit_at=100):
    return DepositRecord(token_id=token_id, depositor="alice", state=DepositState.EXITING,
                         accrual_start=start, exit_requested_at=exit_at)


def test_empty_record_earns_nothing(ledger):
    assert earned(DepositRecord.empty(1), ledger, 10**6) == 0


def test_deposited_record_integrates_to_now(ledger):
    assert earned(deposited(start=30), ledger, 360) == 30 * 100 + 120 * 600 + 180 * 1200


def test_zero_length_window(ledger):
    assert earned(deposited(start=200), ledger, 200) == 0


def test_monotonic_while_deposited(ledger):
    record = deposited(start=10)
    values = [earned(record, ledger, t) for t in range(10, 400, 7)]
    assert values == sorted(values)


def test_frozen_while_exiting(ledger):
    record = exiting(start=0, exit_at=100)
    expected = 60 * 100 + 40 * 600
    assert earned(record, ledger, 100) == expected
    assert earned(record, ledger, 5000) == expected


def test_now_before_last_update_rejected(ledger):
    with pytest.raises(NonMonotonicTime):
        earned(deposited(start=100), ledger, 99)
    with pytest.raises(NonMonotonicTime):
        earned(exiting(start=0, exit_at=100), ledger, 50)


def test_time_unit_scaling(ledger):
    # 100 per 10 seconds
    assert earned(deposited(start=0), ledger, 50, time_unit=10) == 500
    # Floor of the whole window, not per segment
    assert settle_window(ledger, 55, 65, time_unit=10)[0] == (5 * 100 + 5 * 600) // 10


def test_earned_total(ledger):
    records = [deposited(1, 0), exiting(2, 0, 60), DepositRecord.empty(3)]
    assert earned_total(records, ledger, 120) == (60 * 100 + 60 * 600) + 60 * 100


def test_settle_window_rejects_reversed(ledger):
    with pytest.raises(NonMonotonicTime):
        settle_window(ledger, 10, 5)


def test_settle_window_returns_remainder(ledger):
    amount, remainder = settle_window(ledger, 0, 7, time_unit=60)
    assert (amount, remainder) == (11, 40)
    # The remainder of one window completes the next one
    assert settle_window(ledger, 7, 14, time_unit=60, carry=remainder) == (12, 20)


def test_carry_counts_toward_earned(ledger):
    record = deposited(start=0)
    record.carry = 59
    assert earned(record, ledger, 1, time_unit=60) == 2
    assert earned(record, ledger, 0, time_unit=60) == 0
