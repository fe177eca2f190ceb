# MIT License
# Copyright (c) 2025 Hashborn

"""
External collaborators of the staking engine.

The controller only sees four capabilities:

- CustodyAsset:  transfer_to_vault / transfer_to_owner / owner_of
- RewardAsset:   pay (authorization enforced by the asset itself)
- PauseFlag:     is_paused / set_paused
- AdminRegistry: is_admin

NFTCollection and RewardToken are in-memory asset ledgers; the controller
talks to them through handles bound to the vault's own identity.
"""

import logging
from typing import Dict, Optional, Set, Iterable
from ..storage.db import StorageDB

logger = logging.getLogger(__name__)


class CustodyAsset:
    def transfer_to_vault(self, token_id: int, from_: str) -> bool:
        raise NotImplementedError

    def transfer_to_owner(self, token_id: int, to: str) -> bool:
        raise NotImplementedError

    def owner_of(self, token_id: int) -> Optional[str]:
        raise NotImplementedError


class RewardAsset:
    def pay(self, to: str, amount: int) -> bool:
        raise NotImplementedError


class NFTCollection:
    """Minimal non-fungible token ledger with per-token and operator approvals."""

    def __init__(self, name: str = "NFTCollection"):
        self.name = name
        self._owners: Dict[int, str] = {}
        self._approvals: Dict[int, str] = {}
        self._operators: Dict[str, Set[str]] = {}

    def mint(self, to: str, token_id: int) -> None:
        if token_id in self._owners:
            raise ValueError(f"Token {token_id} already minted")
        self._owners[token_id] = to
        logger.debug(f"{self.name}: minted token {token_id} to {to}")

    def owner_of(self, token_id: int) -> Optional[str]:
        return self._owners.get(token_id)

    def approve(self, owner: str, spender: str, token_id: int) -> None:
        if self._owners.get(token_id) != owner:
            raise ValueError(f"{owner} does not own token {token_id}")
        self._approvals[token_id] = spender

    def set_approval_for_all(self, owner: str, operator: str, approved: bool) -> None:
        ops = self._operators.setdefault(owner, set())
        if approved:
            ops.add(operator)
        else:
            ops.discard(operator)

    def _is_authorized(self, spender: str, owner: str, token_id: int) -> bool:
        return (
            spender == owner
            or self._approvals.get(token_id) == spender
            or spender in self._operators.get(owner, set())
        )

    def transfer_from(self, spender: str, from_: str, to: str, token_id: int) -> bool:
        owner = self._owners.get(token_id)
        if owner is None or owner != from_:
            logger.debug(f"{self.name}: transfer of {token_id} rejected, {from_} is not the owner")
            return False
        if not self._is_authorized(spender, owner, token_id):
            logger.debug(f"{self.name}: transfer of {token_id} rejected, {spender} not approved")
            return False

        self._owners[token_id] = to
        self._approvals.pop(token_id, None)
        return True

    def custody_handle(self, vault: str) -> 'CustodyHandle':
        return CustodyHandle(self, vault)


class CustodyHandle(CustodyAsset):
    """NFTCollection seen from the vault identity."""

    def __init__(self, collection: NFTCollection, vault: str):
        self.collection = collection
        self.vault = vault

    def transfer_to_vault(self, token_id: int, from_: str) -> bool:
        return self.collection.transfer_from(self.vault, from_, self.vault, token_id)

    def transfer_to_owner(self, token_id: int, to: str) -> bool:
        return self.collection.transfer_from(self.vault, self.vault, to, token_id)

    def owner_of(self, token_id: int) -> Optional[str]:
        return self.collection.owner_of(token_id)


class RewardToken:
    """Mintable reward token; only registered controllers may mint."""

    def __init__(self, name: str = "RwdToken", owner: Optional[str] = None):
        self.name = name
        self.owner = owner
        self._balances: Dict[str, int] = {}
        self._controllers: Set[str] = set()
        self.total_supply = 0

    def add_controller(self, controller: str) -> None:
        self._controllers.add(controller)
        logger.info(f"{self.name}: controller added {controller}")

    def remove_controller(self, controller: str) -> None:
        self._controllers.discard(controller)
        logger.info(f"{self.name}: controller removed {controller}")

    def is_controller(self, identity: str) -> bool:
        return identity in self._controllers

    def mint(self, caller: str, to: str, amount: int) -> bool:
        if not self.is_controller(caller):
            logger.warning(f"{self.name}: mint by non-controller {caller} refused")
            return False
        if amount < 0:
            return False
        self._balances[to] = self._balances.get(to, 0) + amount
        self.total_supply += amount
        return True

    def balance_of(self, address: str) -> int:
        return self._balances.get(address, 0)

    def reward_handle(self, vault: str) -> 'RewardHandle':
        return RewardHandle(self, vault)


class RewardHandle(RewardAsset):
    def __init__(self, token: RewardToken, vault: str):
        self.token = token
        self.vault = vault

    def pay(self, to: str, amount: int) -> bool:
        return self.token.mint(self.vault, to, amount)


class PauseFlag:
    def __init__(self, db: Optional[StorageDB] = None, paused: bool = False):
        self.db = db
        self._paused = paused
        if db is not None:
            raw = db.get_state("paused")
            if raw is not None:
                self._paused = raw == "1"

    def is_paused(self) -> bool:
        return self._paused

    def set_paused(self, paused: bool) -> None:
        self._paused = paused
        if self.db is not None:
            self.db.set_state("paused", "1" if paused else "0")


class AdminRegistry:
    def __init__(self, admins: Iterable[str] = ()):
        self._admins: Set[str] = set(admins)

    def is_admin(self, caller: str) -> bool:
        return caller in self._admins
