# MIT License
# Copyright (c) 2025 Hashborn

"""
Accrual and custody engine.
"""

from .ledger import RateLedger
from .registry import VaultRegistry
from .accrual import earned, earned_total, settle_window
from .controller import StakingController

__all__ = [
    "RateLedger",
    "VaultRegistry",
    "earned",
    "earned_total",
    "settle_window",
    "StakingController",
]
