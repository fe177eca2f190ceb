# MIT License
# Copyright (c) 2025 Hashborn

from contextlib import contextmanager
from typing import Optional, List, Dict, Any, Iterable, Callable
import logging
import threading
from ...protocol.types.common import (
    ActionType,
    DepositState,
    StakingError,
    CustodyTransferFailed,
    CustodyRollbackFailed,
    InvalidState,
    NonMonotonicTime,
    PayoutFailed,
    SystemPaused,
    Unauthorized,
)
from ...protocol.types.deposit import DepositRecord, RateCheckpoint
from ...protocol.config.params import VaultConfig
from ..storage.db import StorageDB
from ..observability import metrics
from .accrual import earned, earned_total, settle_window
from .assets import CustodyAsset, RewardAsset, PauseFlag, AdminRegistry
from .events import EventBus, VaultEvent
from .ledger import RateLedger
from .registry import VaultRegistry

logger = logging.getLogger(__name__)


class StakingController:
    """
    Public surface of the vault.

    Every operation takes the caller identity and an explicit timestamp.
    Batches are all-or-nothing: on any failure the registry is restored and
    completed custody transfers are reversed before the error propagates.
    """

    def __init__(self,
                 ledger: RateLedger,
                 registry: VaultRegistry,
                 config: VaultConfig,
                 custody: CustodyAsset,
                 reward: RewardAsset,
                 pause_flag: PauseFlag,
                 admins: AdminRegistry,
                 vault_address: str = "vault",
                 events: Optional[EventBus] = None):
        self.ledger = ledger
        self.registry = registry
        self.config = config
        self.custody = custody
        self.reward = reward
        self.pause_flag = pause_flag
        self.admins = admins
        self.vault_address = vault_address
        self.events = events if events is not None else EventBus()
        self._lock = threading.RLock()

    @classmethod
    def create(cls,
               config: VaultConfig,
               db: StorageDB,
               custody: CustodyAsset,
               reward: RewardAsset,
               admins: Iterable[str],
               start: int,
               vault_address: str = "vault",
               events: Optional[EventBus] = None) -> 'StakingController':
        """Wires ledger, registry and pause flag on top of a single StorageDB."""
        ledger = RateLedger(config.initial_rate, start, db=db)
        registry = VaultRegistry(db)
        return cls(
            ledger=ledger,
            registry=registry,
            config=config,
            custody=custody,
            reward=reward,
            pause_flag=PauseFlag(db),
            admins=AdminRegistry(admins),
            vault_address=vault_address,
            events=events,
        )

    # --- Internals ---

    @contextmanager
    def _operation(self, action: ActionType, caller: str, now: Optional[int] = None):
        """
        Serializes the operation and rolls the registry back on failure.

        Yields the VaultEvent the operation fills in; it is published once the
        lock is released, with the error code set if the operation was rejected.
        """
        event = VaultEvent(action=action, caller=caller, timestamp=now)
        error = None

        with self._lock:
            snap = self.registry.snapshot()
            try:
                yield event
            except StakingError as e:
                self.registry.restore(snap)
                if isinstance(e, CustodyRollbackFailed) and e.retained:
                    for record in e.retained:
                        self.registry.retain(record)
                    self.registry.persist()
                metrics.record_failure(action.value, e.code)
                logger.warning(f"{action.value} by {caller} rejected: {e.message}")
                event.error = e.code
                error = e
            except Exception:
                self.registry.restore(snap)
                metrics.record_failure(action.value, "INTERNAL")
                raise
            else:
                self.registry.persist()
                metrics.record_operation(action.value)

        self.events.publish(event)
        if error is not None:
            raise error

    def _batch(self, token_ids: Iterable[int]) -> List[int]:
        ids = [int(t) for t in token_ids]
        if not ids:
            raise InvalidState("Empty token batch")
        if len(ids) > self.config.max_batch_size:
            raise InvalidState(f"Batch of {len(ids)} exceeds max_batch_size {self.config.max_batch_size}")
        return ids

    def _require_admin(self, caller: str) -> None:
        if not self.admins.is_admin(caller):
            raise Unauthorized(f"{caller} is not an administrator")

    def _pay(self, to: str, amount: int) -> None:
        if amount == 0:
            return
        if not self.reward.pay(to, amount):
            raise PayoutFailed(f"Reward payout of {amount} to {to} was rejected")
        metrics.record_payout(amount)

    def _undo_moves(self, token_ids: List[int], move: Callable[[int], bool]) -> List[int]:
        """Moves tokens back in reverse order; returns the ids that could not be moved."""
        stranded = []
        for token_id in reversed(token_ids):
            if not move(token_id):
                logger.error(f"Rollback transfer of token {token_id} was rejected")
                stranded.append(token_id)
        return stranded

    # --- Depositor operations ---

    def stake(self, caller: str, token_ids: Iterable[int], now: int) -> List[DepositRecord]:
        with self._operation(ActionType.STAKE, caller, now) as event:
            if self.pause_flag.is_paused():
                raise SystemPaused("Staking is paused")
            ids = self._batch(token_ids)
            event.token_ids = ids
            if now < self.ledger.start:
                raise NonMonotonicTime(f"t={now} precedes vault start t={self.ledger.start}")

            records = self.registry.deposit_many(ids, caller, now)

            for token_id in ids:
                if self.custody.owner_of(token_id) != caller:
                    raise CustodyTransferFailed(f"{caller} does not own token {token_id}", token_id=token_id)

            transferred = []
            try:
                for token_id in ids:
                    if not self.custody.transfer_to_vault(token_id, caller):
                        raise CustodyTransferFailed(
                            f"Transfer of token {token_id} to the vault was rejected", token_id=token_id
                        )
                    transferred.append(token_id)
            except CustodyTransferFailed as e:
                stranded = self._undo_moves(
                    transferred, lambda t: self.custody.transfer_to_owner(t, caller)
                )
                if stranded:
                    # Stranded tokens stay in the vault, so their deposits stay on record
                    raise CustodyRollbackFailed(
                        f"{e.message}; tokens {stranded} could not be returned to {caller}",
                        stranded=stranded,
                        retained=[r for r in records if r.token_id in stranded],
                    ) from e
                raise

            logger.info(f"{caller} staked {ids} at t={now}")
            records = [r.model_copy() for r in records]

        return records

    def unstake(self, caller: str, token_ids: Iterable[int], now: int) -> List[DepositRecord]:
        with self._operation(ActionType.UNSTAKE, caller, now) as event:
            ids = self._batch(token_ids)
            event.token_ids = ids
            records = self.registry.request_exit_many(ids, caller, now)
            frozen = earned_total(records, self.ledger, now, self.config.time_unit)
            event.amount = frozen
            logger.info(f"{caller} requested exit for {ids} at t={now}, frozen reward {frozen}")
            records = [r.model_copy() for r in records]

        return records

    def claim(self, caller: str, token_ids: Iterable[int], now: int) -> int:
        """Settles every token in the batch and pays the total in one request."""
        with self._operation(ActionType.CLAIM, caller, now) as event:
            ids = self._batch(token_ids)
            event.token_ids = ids
            windows = self.registry.record_claim_many(ids, caller, now)

            total = 0
            for w in windows:
                amount, remainder = settle_window(
                    self.ledger, w.start, w.end, self.config.time_unit, w.carry
                )
                self.registry.set_carry(w.token_id, remainder)
                total += amount

            self._pay(caller, total)
            event.amount = total
            logger.info(f"{caller} claimed {total} for {ids} at t={now}")

        return total

    def withdraw(self, caller: str, token_ids: Iterable[int], now: int) -> int:
        """
        Returns custody after the unbonding delay.

        With config.settle_on_withdraw the reward frozen at exit time is paid
        in the same operation, after every token is back with its depositor;
        otherwise it is forfeited with the record. A rejected return or payout
        pulls the already-returned tokens back into the vault.
        Returns the amount paid.
        """
        with self._operation(ActionType.WITHDRAW, caller, now) as event:
            ids = self._batch(token_ids)
            event.token_ids = ids
            released = self.registry.finalize_withdrawal_many(
                ids, caller, now, self.config.unbonding_delay
            )

            pending = []
            for token_id in ids:
                holder = self.custody.owner_of(token_id)
                if holder == caller:
                    # Left with the depositor by an earlier rollback that could not complete
                    continue
                if holder != self.vault_address:
                    raise CustodyTransferFailed(f"Vault does not hold token {token_id}", token_id=token_id)
                pending.append(token_id)

            returned = []
            try:
                for token_id in pending:
                    if not self.custody.transfer_to_owner(token_id, caller):
                        raise CustodyTransferFailed(
                            f"Transfer of token {token_id} back to {caller} was rejected", token_id=token_id
                        )
                    returned.append(token_id)

                payout = 0
                if self.config.settle_on_withdraw:
                    payout = earned_total(released, self.ledger, now, self.config.time_unit)
                    self._pay(caller, payout)
            except (CustodyTransferFailed, PayoutFailed) as e:
                stranded = self._undo_moves(
                    returned, lambda t: self.custody.transfer_to_vault(t, caller)
                )
                if stranded:
                    raise CustodyRollbackFailed(
                        f"{e.message}; tokens {stranded} stay with {caller} while still exiting",
                        stranded=stranded,
                    ) from e
                raise

            event.amount = payout
            logger.info(f"{caller} withdrew {ids} at t={now}, settled {payout}")

        return payout

    # --- Admin operations ---

    def update_rate(self, caller: str, new_rate: int, now: int) -> RateCheckpoint:
        with self._operation(ActionType.UPDATE_RATE, caller, now) as event:
            self._require_admin(caller)
            checkpoint = self.ledger.append_rate(new_rate, now)
            event.rate = new_rate

        return checkpoint

    def pause(self, caller: str, now: Optional[int] = None) -> None:
        with self._operation(ActionType.PAUSE, caller, now):
            self._require_admin(caller)
            if self.pause_flag.is_paused():
                raise InvalidState("Staking is already paused")
            self.pause_flag.set_paused(True)
            logger.info(f"Staking paused by {caller}")

    def unpause(self, caller: str, now: Optional[int] = None) -> None:
        with self._operation(ActionType.UNPAUSE, caller, now):
            self._require_admin(caller)
            if not self.pause_flag.is_paused():
                raise InvalidState("Staking is not paused")
            self.pause_flag.set_paused(False)
            logger.info(f"Staking unpaused by {caller}")

    # --- Read-only queries ---

    def earning_info(self, token_ids: Iterable[int], now: int) -> int:
        with self._lock:
            records = [self.registry.get(int(t)) for t in token_ids]
            return earned_total(records, self.ledger, now, self.config.time_unit)

    def earned(self, token_id: int, now: int) -> int:
        with self._lock:
            return earned(self.registry.get(token_id), self.ledger, now, self.config.time_unit)

    def vault_info(self, token_id: int) -> DepositRecord:
        with self._lock:
            return self.registry.get(token_id).model_copy()

    def deposits_of(self, owner: str) -> List[DepositRecord]:
        with self._lock:
            return [r.model_copy() for r in self.registry.deposits_of(owner)]

    def current_rate(self, now: int) -> int:
        return self.ledger.rate_at(now)

    def is_paused(self) -> bool:
        return self.pause_flag.is_paused()

    def status(self, now: int) -> Dict[str, Any]:
        with self._lock:
            return {
                "network": self.config.network_id,
                "vault_address": self.vault_address,
                "paused": self.is_paused(),
                "rate": self.ledger.rate_at(max(now, self.ledger.start)),
                "time_unit": self.config.time_unit,
                "unbonding_delay": self.config.unbonding_delay,
                "settle_on_withdraw": self.config.settle_on_withdraw,
                "checkpoints": len(self.ledger),
                "deposited": self.registry.count_by_state(DepositState.DEPOSITED),
                "exiting": self.registry.count_by_state(DepositState.EXITING),
            }
