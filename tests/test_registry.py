"""
Tests for the vault registry state machine.

Tests:
- EMPTY -> DEPOSITED -> EXITING -> EMPTY lifecycle
- Claim windows and accrual reset
- Precondition failures per transition
- All-or-nothing batches
- Persistence of records
"""
import pytest

from nftstake.protocol.types.common import (
    DepositState,
    AlreadyDeposited,
    InvalidState,
    NotDepositor,
    UnbondingNotElapsed,
    NonMonotonicTime,
)
from nftstake.vault.core.registry import VaultRegistry
from nftstake.vault.storage.db import StorageDB


@pytest.fixture
def registry(memory_db):
    return VaultRegistry(memory_db)


def test_unknown_token_is_empty(registry):
    record = registry.get(42)
    assert record.state == DepositState.EMPTY
    assert record.depositor is None
    assert registry.all_records() == []


def test_full_lifecycle(registry):
    record = registry.deposit(1, "alice", 100)
    assert record.state == DepositState.DEPOSITED
    assert record.accrual_start == 100
    assert record.exit_requested_at is None

    window = registry.record_claim(1, "alice", 150)
    assert (window.start, window.end) == (100, 150)
    assert registry.get(1).accrual_start == 150
    assert registry.get(1).state == DepositState.DEPOSITED

    record = registry.request_exit(1, "alice", 200)
    assert record.state == DepositState.EXITING
    assert record.exit_requested_at == 200

    released = registry.finalize_withdrawal(1, "alice", 210, unbonding_delay=10)
    assert released.depositor == "alice"
    assert released.state == DepositState.EXITING
    assert registry.get(1).state == DepositState.EMPTY

    # Token id is reusable once cleared
    again = registry.deposit(1, "bob", 300)
    assert again.depositor == "bob"


def test_double_deposit_rejected(registry):
    registry.deposit(1, "alice", 0)
    with pytest.raises(AlreadyDeposited):
        registry.deposit(1, "bob", 5)

    registry.request_exit(1, "alice", 10)
    with pytest.raises(AlreadyDeposited):
        registry.deposit(1, "alice", 20)


def test_exit_requires_depositor(registry):
    registry.deposit(1, "alice", 0)
    with pytest.raises(NotDepositor):
        registry.request_exit(1, "mallory", 10)
    assert registry.get(1).state == DepositState.DEPOSITED


def test_exit_requires_deposited_state(registry):
    with pytest.raises(InvalidState):
        registry.request_exit(1, "alice", 10)

    registry.deposit(1, "alice", 0)
    registry.request_exit(1, "alice", 10)
    with pytest.raises(InvalidState):
        registry.request_exit(1, "alice", 20)


def test_claim_while_exiting_rejected(registry):
    registry.deposit(1, "alice", 0)
    registry.request_exit(1, "alice", 10)

    with pytest.raises(InvalidState, match="paused"):
        registry.record_claim(1, "alice", 20)


def test_claim_by_non_depositor_rejected(registry):
    registry.deposit(1, "alice", 0)
    with pytest.raises(NotDepositor):
        registry.record_claim(1, "mallory", 20)
    assert registry.get(1).accrual_start == 0


def test_withdrawal_gated_by_unbonding_delay(registry):
    registry.deposit(1, "alice", 0)
    registry.request_exit(1, "alice", 100)

    with pytest.raises(UnbondingNotElapsed):
        registry.finalize_withdrawal(1, "alice", 149, unbonding_delay=50)
    assert registry.get(1).state == DepositState.EXITING

    registry.finalize_withdrawal(1, "alice", 150, unbonding_delay=50)
    assert registry.get(1).state == DepositState.EMPTY


def test_withdrawal_requires_exit(registry):
    registry.deposit(1, "alice", 0)
    with pytest.raises(InvalidState):
        registry.finalize_withdrawal(1, "alice", 1000, unbonding_delay=0)


def test_withdrawal_by_non_depositor_rejected(registry):
    registry.deposit(1, "alice", 0)
    registry.request_exit(1, "alice", 0)
    with pytest.raises(NotDepositor):
        registry.finalize_withdrawal(1, "mallory", 1000, unbonding_delay=0)


def test_time_going_backwards_rejected(registry):
    registry.deposit(1, "alice", 100)
    with pytest.raises(NonMonotonicTime):
        registry.record_claim(1, "alice", 99)
    with pytest.raises(NonMonotonicTime):
        registry.request_exit(1, "alice", 99)

    registry.request_exit(1, "alice", 200)
    with pytest.raises(NonMonotonicTime):
        registry.finalize_withdrawal(1, "alice", 150, unbonding_delay=0)


# ═══════════════════════════════════════════════════════════════════
# BATCHES
# ═══════════════════════════════════════════════════════════════════

def test_batch_deposit_all_or_nothing(registry):
    registry.deposit(3, "bob", 0)

    with pytest.raises(AlreadyDeposited):
        registry.deposit_many([1, 2, 3], "alice", 10)

    assert registry.get(1).state == DepositState.EMPTY
    assert registry.get(2).state == DepositState.EMPTY
    assert registry.get(3).depositor == "bob"


def test_batch_exit_all_or_nothing(registry):
    registry.deposit_many([1, 2], "alice", 0)
    registry.deposit(3, "bob", 0)

    with pytest.raises(NotDepositor):
        registry.request_exit_many([1, 2, 3], "alice", 10)

    assert all(registry.get(t).state == DepositState.DEPOSITED for t in (1, 2, 3))


def test_batch_claim_all_or_nothing(registry):
    registry.deposit_many([1, 2], "alice", 0)
    registry.request_exit(2, "alice", 5)

    with pytest.raises(InvalidState):
        registry.record_claim_many([1, 2], "alice", 10)
    assert registry.get(1).accrual_start == 0


def test_duplicate_ids_in_batch_rejected(registry):
    with pytest.raises(InvalidState, match="Duplicate"):
        registry.deposit_many([1, 1], "alice", 0)
    assert registry.get(1).state == DepositState.EMPTY


def test_deposits_of(registry):
    registry.deposit_many([1, 2], "alice", 0)
    registry.deposit(3, "bob", 0)

    assert [r.token_id for r in registry.deposits_of("alice")] == [1, 2]
    assert [r.token_id for r in registry.deposits_of("bob")] == [3]
    assert registry.count_by_state(DepositState.DEPOSITED) == 3


def test_snapshot_restore(registry):
    registry.deposit(1, "alice", 0)
    snap = registry.snapshot()

    registry.request_exit(1, "alice", 10)
    registry.deposit(2, "alice", 10)
    registry.restore(snap)

    assert registry.get(1).state == DepositState.DEPOSITED
    assert registry.get(2).state == DepositState.EMPTY


# ═══════════════════════════════════════════════════════════════════
# PERSISTENCE
# ═══════════════════════════════════════════════════════════════════

def test_records_persist_and_clear(tmp_path):
    db_path = str(tmp_path / "vault.db")
    db = StorageDB(db_path)
    registry = VaultRegistry(db)
    registry.deposit_many([1, 2], "alice", 0)
    registry.request_exit(2, "alice", 50)
    registry.persist()
    db.close()

    db = StorageDB(db_path)
    reloaded = VaultRegistry(db)
    assert reloaded.get(1).state == DepositState.DEPOSITED
    assert reloaded.get(2).exit_requested_at == 50

    reloaded.finalize_withdrawal(2, "alice", 60, unbonding_delay=10)
    reloaded.persist()
    assert db.get_state("dep:2") is None
    assert [r.token_id for r in VaultRegistry(db).all_records()] == [1]
    db.close()



# ═══════════════════════════════════════════════════════════════════
# SETTLEMENT REMAINDER
# ═══════════════════════════════════════════════════════════════════

def test_claim_window_hands_over_carry(registry):
    registry.deposit(1, "alice", 0)
    registry.set_carry(1, 40)

    window = registry.record_claim(1, "alice", 100)
    assert window.carry == 40
    assert registry.get(1).carry == 0

    registry.set_carry(1, 7)
    registry.persist()
    assert VaultRegistry(registry.db).get(1).carry == 7


def test_retain_survives_restore(registry):
    snap = registry.snapshot()
    record = registry.deposit(3, "alice", 10)
    registry.restore(snap)
    assert registry.get(3).is_empty

    registry.retain(record)
    registry.persist()
    kept = VaultRegistry(registry.db).get(3)
    assert kept.state == DepositState.DEPOSITED
    assert kept.depositor == "alice"
