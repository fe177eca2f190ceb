# MIT License
# Copyright (c) 2025 Hashborn

from typing import Dict, List, Set
import logging
from ...protocol.types.common import (
    DepositState,
    AlreadyDeposited,
    InvalidState,
    NotDepositor,
    UnbondingNotElapsed,
    NonMonotonicTime,
)
from ...protocol.types.deposit import DepositRecord, ClaimWindow
from ..storage.db import StorageDB

logger = logging.getLogger(__name__)


class VaultRegistry:
    """
    Owns every DepositRecord and enforces the per-token state machine:

        EMPTY -> (deposit) -> DEPOSITED -> (request_exit) -> EXITING
              -> (finalize_withdrawal, after delay) -> EMPTY

    Batched operations check every token before mutating any of them.
    """

    def __init__(self, db: StorageDB, records: Dict[int, DepositRecord] = None):
        self.db = db
        # Cache for modified/accessed records: token_id -> DepositRecord
        self._records: Dict[int, DepositRecord] = records if records is not None else {}
        # Cleared since last persist
        self._cleared: Set[int] = set()

    def snapshot(self) -> Dict:
        return {
            "records": {k: v.model_copy() for k, v in self._records.items()},
            "cleared": set(self._cleared),
        }

    def restore(self, snap: Dict) -> None:
        self._records = snap["records"]
        self._cleared = snap["cleared"]

    def get(self, token_id: int) -> DepositRecord:
        if token_id in self._records:
            return self._records[token_id]
        if token_id in self._cleared:
            return DepositRecord.empty(token_id)

        raw_json = self.db.get_state(f"dep:{token_id}")
        if raw_json:
            record = DepositRecord.model_validate_json(raw_json)
            self._records[token_id] = record
            return record

        return DepositRecord.empty(token_id)

    def _set(self, record: DepositRecord) -> None:
        self._cleared.discard(record.token_id)
        self._records[record.token_id] = record

    def _clear(self, token_id: int) -> None:
        self._records.pop(token_id, None)
        self._cleared.add(token_id)

    def all_records(self) -> List[DepositRecord]:
        """Loads all non-empty records from DB + cache overlay."""
        final: Dict[int, DepositRecord] = {}
        for k, v in self.db.get_state_by_prefix("dep:").items():
            token_id = int(k.split(":")[1])
            final[token_id] = DepositRecord.model_validate_json(v)

        for token_id in self._cleared:
            final.pop(token_id, None)
        for token_id, record in self._records.items():
            final[token_id] = record

        return [r for _, r in sorted(final.items()) if not r.is_empty]

    def deposits_of(self, depositor: str) -> List[DepositRecord]:
        return [r for r in self.all_records() if r.depositor == depositor]

    def persist(self) -> None:
        """Writes modified records to DB and drops cleared ones."""
        for token_id in self._cleared:
            self.db.delete_state(f"dep:{token_id}")
        for token_id, record in self._records.items():
            self.db.set_state(f"dep:{token_id}", record.model_dump_json())
        self._cleared.clear()

    # --- Precondition checks (no mutation) ---

    @staticmethod
    def _unique(token_ids: List[int]) -> List[int]:
        ids = list(token_ids)
        if len(set(ids)) != len(ids):
            raise InvalidState(f"Duplicate token ids in batch: {ids}")
        return ids

    def _check_owned(self, record: DepositRecord, caller: str, expected: DepositState) -> None:
        if record.state != expected:
            raise InvalidState(
                f"Token {record.token_id} is {record.state.value}, expected {expected.value}",
                token_id=record.token_id,
            )
        if record.depositor != caller:
            raise NotDepositor(f"{caller} is not the depositor of token {record.token_id}",
                               token_id=record.token_id)

    def _check_deposit(self, token_id: int) -> DepositRecord:
        record = self.get(token_id)
        if not record.is_empty:
            raise AlreadyDeposited(f"Token {token_id} is already {record.state.value}", token_id=token_id)
        return record

    def _check_exit(self, token_id: int, caller: str, now: int) -> DepositRecord:
        record = self.get(token_id)
        self._check_owned(record, caller, DepositState.DEPOSITED)
        if now < record.accrual_start:
            raise NonMonotonicTime(f"t={now} precedes accrual start t={record.accrual_start}",
                                   token_id=token_id)
        return record

    def _check_withdrawal(self, token_id: int, caller: str, now: int, unbonding_delay: int) -> DepositRecord:
        record = self.get(token_id)
        self._check_owned(record, caller, DepositState.EXITING)
        if now < record.exit_requested_at:
            raise NonMonotonicTime(f"t={now} precedes exit request t={record.exit_requested_at}",
                                   token_id=token_id)
        unlock_at = record.exit_requested_at + unbonding_delay
        if now < unlock_at:
            raise UnbondingNotElapsed(
                f"Token {token_id} unlocks at t={unlock_at} ({unlock_at - now}s remaining)",
                token_id=token_id,
            )
        return record

    def _check_claim(self, token_id: int, caller: str, now: int) -> DepositRecord:
        record = self.get(token_id)
        if record.state == DepositState.EXITING:
            raise InvalidState(
                f"Reward generation is paused for token {token_id} once exit has begun",
                token_id=token_id,
            )
        self._check_owned(record, caller, DepositState.DEPOSITED)
        if now < record.accrual_start:
            raise NonMonotonicTime(f"t={now} precedes accrual start t={record.accrual_start}",
                                   token_id=token_id)
        return record

    # --- Batched transitions ---

    def deposit_many(self, token_ids: List[int], depositor: str, now: int) -> List[DepositRecord]:
        ids = self._unique(token_ids)
        for token_id in ids:
            self._check_deposit(token_id)

        created = []
        for token_id in ids:
            record = DepositRecord(
                token_id=token_id,
                depositor=depositor,
                state=DepositState.DEPOSITED,
                accrual_start=now,
                exit_requested_at=None,
            )
            self._set(record)
            created.append(record)
        logger.debug(f"Deposited {ids} for {depositor} at t={now}")
        return created

    def request_exit_many(self, token_ids: List[int], caller: str, now: int) -> List[DepositRecord]:
        ids = self._unique(token_ids)
        records = [self._check_exit(token_id, caller, now) for token_id in ids]

        for record in records:
            record.state = DepositState.EXITING
            record.exit_requested_at = now
            self._set(record)
        logger.debug(f"Exit requested for {ids} by {caller} at t={now}")
        return records

    def finalize_withdrawal_many(self, token_ids: List[int], caller: str, now: int,
                                 unbonding_delay: int) -> List[DepositRecord]:
        """Clears the records and returns copies of them as they were before clearing."""
        ids = self._unique(token_ids)
        records = [self._check_withdrawal(token_id, caller, now, unbonding_delay) for token_id in ids]

        released = []
        for record in records:
            released.append(record.model_copy())
            self._clear(record.token_id)
        logger.debug(f"Withdrawal finalized for {ids} by {caller} at t={now}")
        return released

    def record_claim_many(self, token_ids: List[int], caller: str, now: int) -> List[ClaimWindow]:
        ids = self._unique(token_ids)
        records = [self._check_claim(token_id, caller, now) for token_id in ids]

        windows = []
        for record in records:
            windows.append(ClaimWindow(token_id=record.token_id, start=record.accrual_start,
                                       end=now, carry=record.carry))
            record.accrual_start = now
            record.carry = 0
            self._set(record)
        return windows

    # --- Single-token transitions ---

    def deposit(self, token_id: int, depositor: str, now: int) -> DepositRecord:
        return self.deposit_many([token_id], depositor, now)[0]

    def request_exit(self, token_id: int, caller: str, now: int) -> DepositRecord:
        return self.request_exit_many([token_id], caller, now)[0]

    def finalize_withdrawal(self, token_id: int, caller: str, now: int,
                            unbonding_delay: int) -> DepositRecord:
        return self.finalize_withdrawal_many([token_id], caller, now, unbonding_delay)[0]

    def record_claim(self, token_id: int, caller: str, now: int) -> ClaimWindow:
        return self.record_claim_many([token_id], caller, now)[0]

    def set_carry(self, token_id: int, carry: int) -> None:
        """Stores the settlement remainder of a token claimed in the current operation."""
        record = self.get(token_id)
        record.carry = carry
        self._set(record)

    def retain(self, record: DepositRecord) -> None:
        """Re-inserts a record after a rollback, for tokens whose custody could not be undone."""
        self._set(record.model_copy())

    def count_by_state(self, state: DepositState) -> int:
        return sum(1 for r in self.all_records() if r.state == state)
