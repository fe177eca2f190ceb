# MIT License
# Copyright (c) 2025 Hashborn

from enum import Enum
from typing import List


class DepositState(str, Enum):
    EMPTY = "EMPTY"
    DEPOSITED = "DEPOSITED"
    EXITING = "EXITING"


class ActionType(str, Enum):
    STAKE = "STAKE"
    UNSTAKE = "UNSTAKE"
    CLAIM = "CLAIM"
    WITHDRAW = "WITHDRAW"

    # Admin-only
    UPDATE_RATE = "UPDATE_RATE"
    PAUSE = "PAUSE"
    UNPAUSE = "UNPAUSE"


class ProtocolError(Exception):
    pass


class StakingError(ProtocolError):
    """Base class for every rejection raised by the staking engine."""
    code = "STAKING_ERROR"

    def __init__(self, message: str = "", token_id: int = None):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.token_id = token_id


class AlreadyDeposited(StakingError):
    code = "ALREADY_DEPOSITED"


class InvalidState(StakingError):
    code = "INVALID_STATE"


class NotDepositor(StakingError):
    code = "NOT_DEPOSITOR"


class UnbondingNotElapsed(StakingError):
    code = "UNBONDING_NOT_ELAPSED"


class CustodyTransferFailed(StakingError):
    code = "CUSTODY_TRANSFER_FAILED"


class CustodyRollbackFailed(CustodyTransferFailed):
    """
    A batch failed and some already-moved tokens could not be moved back.

    stranded lists those token ids. retained holds the deposit records the
    registry keeps so stranded tokens stay withdrawable by their depositor.
    """
    code = "CUSTODY_ROLLBACK_FAILED"

    def __init__(self, message: str = "", stranded: List[int] = None, retained: list = None):
        super().__init__(message, token_id=stranded[0] if stranded else None)
        self.stranded = list(stranded or [])
        self.retained = list(retained or [])


class PayoutFailed(StakingError):
    code = "PAYOUT_FAILED"


class SystemPaused(StakingError):
    code = "SYSTEM_PAUSED"


class Unauthorized(StakingError):
    code = "UNAUTHORIZED"


class NonMonotonicTime(StakingError):
    code = "NON_MONOTONIC_TIME"


class InvalidRate(StakingError):
    code = "INVALID_RATE"


class AuthenticationFailed(StakingError):
    code = "AUTHENTICATION_FAILED"
